"""Pydantic schemas for request/response validation."""
from tracklab.schemas.abtest import (
    ABTestWrite,
    ConditionEntry,
    ConditionKind,
    ConditionSet,
    Creative,
    ExecuteRequest,
    LogImpressionRequest,
    OtherCondition,
)
from tracklab.schemas.project import ProjectCreate, ProjectUpdate
from tracklab.schemas.tracking import TrackEventRequest

__all__ = [
    "ABTestWrite", "ConditionEntry", "ConditionKind", "ConditionSet", "Creative",
    "ExecuteRequest", "LogImpressionRequest", "OtherCondition",
    "ProjectCreate", "ProjectUpdate", "TrackEventRequest",
]
