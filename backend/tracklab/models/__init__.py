"""Database models."""
from tracklab.models.project import Project
from tracklab.models.abtest import ABTest
from tracklab.models.logs import ImpressionLog, EventLog

__all__ = ["Project", "ABTest", "ImpressionLog", "EventLog"]
