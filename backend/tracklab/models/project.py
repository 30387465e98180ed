"""Project model."""
from sqlalchemy import Column, String, DateTime, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from tracklab.database import Base
from tracklab.models.types import JSONColumn


class Project(Base):
    """A tracked site. `api_key` is both the SDK credential and the HMAC secret."""

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    url = Column(String(2048), nullable=False)
    api_key = Column(String(128), unique=True, nullable=False, index=True)
    # Exact origins ("https://example.com") or wildcard sub-domains ("https://*.example.com")
    allowed_origins = Column(JSONColumn, default=list, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    abtests = relationship(
        "ABTest",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ABTest.created_at"
    )

    def __repr__(self):
        return f"<Project {self.id} url={self.url}>"
