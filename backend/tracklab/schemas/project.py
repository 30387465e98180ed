"""Project request schemas."""
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from urllib.parse import urlsplit

from tracklab.services.origins import is_valid_origin_entry


def _validate_origins(entries: List[str]) -> List[str]:
    cleaned = []
    for entry in entries:
        if not is_valid_origin_entry(entry):
            raise ValueError(
                f'Invalid origin: "{entry}". Expected https://example.com or https://*.example.com'
            )
        cleaned.append(entry.strip())
    return cleaned


class ProjectCreate(BaseModel):
    """Register a site for tracking."""

    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., description="Canonical site URL")
    allowed_origins: List[str] = Field(default_factory=list, alias="allowedOrigins")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v):
        if not v.strip():
            raise ValueError("name is required")
        if "<script" in v.lower():
            raise ValueError("name must not contain scripts")
        return v.strip()

    @field_validator("url")
    @classmethod
    def valid_url(cls, v):
        parts = urlsplit(v.strip())
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("url must be an http(s) URL")
        return v.strip()

    @field_validator("allowed_origins")
    @classmethod
    def valid_origins(cls, v):
        return _validate_origins(v)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "name": "Shop",
                "url": "https://shop.example.com",
                "allowedOrigins": ["https://shop.example.com", "https://*.example.com"]
            }
        }


class ProjectUpdate(BaseModel):
    """Replace a project's origin allow-list."""

    allowed_origins: Optional[List[str]] = Field(None, alias="allowedOrigins")

    @field_validator("allowed_origins")
    @classmethod
    def valid_origins(cls, v):
        return None if v is None else _validate_origins(v)

    class Config:
        populate_by_name = True
