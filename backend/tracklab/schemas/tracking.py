"""Event tracking schemas."""
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional


class TrackEventRequest(BaseModel):
    """Signed body of POST /track (page views, custom events, page_leave beacons)."""

    project_id: str = Field(..., alias="projectId")
    api_key: str = Field(..., alias="apiKey", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)
    url: str = Field(..., min_length=1)
    event: str = Field(..., min_length=1, max_length=255)
    language: Optional[str] = None
    exit_timestamp: Optional[datetime] = Field(None, alias="exitTimestamp")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "projectId": "123e4567-e89b-12d3-a456-426614174000",
                "apiKey": "…",
                "userId": "user_k2j3h4_1700000000000",
                "url": "https://shop.example.com/products/1",
                "event": "page_view",
                "_ts": 1700000000000,
                "_sig": "…"
            }
        }
