"""A/B test request/response schemas."""
import enum
import re
from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from tracklab.services.url_patterns import url_pattern_error


class ConditionKind(str, enum.Enum):
    """How a targeting entry compares its value with the visitor's."""
    EXACT = "exact"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    REGEX = "regex"
    ONE_OF = "oneOf"
    NOT_REGEX = "notRegex"
    NOT_STARTS_WITH = "notStartsWith"
    NOT_ENDS_WITH = "notEndsWith"
    NOT_CONTAINS = "notContains"
    NOT_ONE_OF = "notOneOf"


MEMBERSHIP_KINDS = frozenset({ConditionKind.ONE_OF, ConditionKind.NOT_ONE_OF})
REGEX_KINDS = frozenset({ConditionKind.REGEX, ConditionKind.NOT_REGEX})


class ConditionEntry(BaseModel):
    """One targeting rule on a device/browser/os/language axis."""

    value: str = ""
    condition: ConditionKind = ConditionKind.EXACT
    values: List[str] = Field(default_factory=list)

    @field_validator("value", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("values", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @property
    def is_active(self) -> bool:
        """Blank rows are ignored; membership rules may carry only `values`."""
        if self.value.strip():
            return True
        return self.condition in MEMBERSHIP_KINDS and bool(self.values)


class OtherCondition(BaseModel):
    """Minimum visit count plus referrer pattern, both must hold."""

    visit_count: str = Field("0", alias="visitCount")
    referrer: str = ""

    @field_validator("visit_count", "referrer", mode="before")
    @classmethod
    def stringify(cls, v):
        return "" if v is None else str(v)

    class Config:
        populate_by_name = True


class ConditionSet(BaseModel):
    """OR within an axis, AND across axes, AND across `other` entries."""

    device: List[ConditionEntry] = Field(default_factory=list)
    browser: List[ConditionEntry] = Field(default_factory=list)
    os: List[ConditionEntry] = Field(default_factory=list)
    language: List[ConditionEntry] = Field(default_factory=list)
    other: List[OtherCondition] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def none_lists(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class Creative(BaseModel):
    """One variant of an A/B test, addressed by its list position."""

    name: str = ""
    distribution: float = Field(0, ge=0)
    is_original: bool = Field(False, alias="isOriginal")
    css: str = ""
    javascript: str = ""
    image_url: Optional[str] = Field(None, alias="imageUrl")

    @field_validator("name", "css", "javascript", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("distribution", mode="before")
    @classmethod
    def missing_weight(cls, v):
        return 0 if v is None else v

    class Config:
        populate_by_name = True


def _regex_error(pattern: str) -> Optional[str]:
    try:
        re.compile(pattern)
    except re.error as e:
        return str(e)
    return None


class ABTestWrite(BaseModel):
    """Body of create and update requests."""

    project_id: UUID = Field(..., alias="projectId")
    name: str
    active: bool = False
    cv_code: str = Field(..., alias="cvCode")
    target_url: str = Field("", alias="targetUrl")
    exclude_url: str = Field("", alias="excludeUrl")
    start_date: Optional[datetime] = Field(None, alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")
    session_duration: Optional[int] = Field(None, alias="sessionDuration", ge=1)
    conditions: ConditionSet = Field(default_factory=ConditionSet)
    creatives: List[Creative]

    @field_validator("name", "cv_code")
    @classmethod
    def not_blank(cls, v, info):
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} is required")
        return v.strip()

    @field_validator("target_url", "exclude_url", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def blank_date(cls, v):
        return None if v == "" else v

    @field_validator("creatives")
    @classmethod
    def at_least_one_creative(cls, v):
        if not v:
            raise ValueError("At least one creative is required")
        return v

    @model_validator(mode="after")
    def patterns_compile(self):
        for axis in ("device", "browser", "os", "language"):
            for entry in getattr(self.conditions, axis):
                if entry.condition in REGEX_KINDS and entry.value:
                    error = _regex_error(entry.value)
                    if error:
                        raise ValueError(f"Invalid regex in {axis} condition {entry.value!r}: {error}")

        url_patterns = [("targetUrl", self.target_url), ("excludeUrl", self.exclude_url)]
        url_patterns += [("other.referrer", entry.referrer) for entry in self.conditions.other]
        for field_name, pattern in url_patterns:
            error = url_pattern_error(pattern)
            if error:
                raise ValueError(f"Invalid URL pattern in {field_name} {pattern!r}: {error}")
        return self

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "projectId": "123e4567-e89b-12d3-a456-426614174000",
                "name": "Red headline",
                "cvCode": "purchase",
                "targetUrl": "/products/",
                "conditions": {
                    "device": [{"value": "SP", "condition": "exact"}],
                    "other": [{"visitCount": "2", "referrer": ""}]
                },
                "creatives": [
                    {"name": "original", "distribution": 1, "isOriginal": True},
                    {"name": "red", "distribution": 1, "css": "h1{color:red}"}
                ]
            }
        }


class ExecuteRequest(BaseModel):
    """Signed body of POST /api/abtests/execute."""

    project_id: str = Field(..., alias="projectId")
    url: str
    user_agent: Optional[str] = Field(None, alias="userAgent")
    language: Optional[str] = None
    visit_count: Any = Field(None, alias="visitCount")
    referrer: Optional[str] = None

    class Config:
        populate_by_name = True


class LogImpressionRequest(BaseModel):
    """Signed body of POST /api/abtests/log-impression."""

    project_id: str = Field(..., alias="projectId")
    api_key: str = Field(..., alias="apiKey", min_length=1)
    abtest_id: str = Field(..., alias="abtestId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)
    creative_index: int = Field(..., alias="creativeIndex")
    creative_name: Optional[str] = Field(None, alias="creativeName")
    is_original: Optional[bool] = Field(False, alias="isOriginal")
    url: str
    user_agent: Optional[str] = Field(None, alias="userAgent")
    language: Optional[str] = None

    class Config:
        populate_by_name = True
