"""A/B test model."""
from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from tracklab.database import Base
from tracklab.models.types import JSONColumn


def _empty_conditions():
    return {"device": [], "browser": [], "os": [], "language": [], "other": []}


class ABTest(Base):
    """A/B test with targeting conditions and an ordered list of creatives.

    Creatives are addressed by list position (``creativeIndex``) in session
    caches and impression logs, so reordering them reinterprets old logs.
    """

    __tablename__ = "abtests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    active = Column(Boolean, default=False, nullable=False)
    cv_code = Column(String(255), nullable=False)  # event name counted as a conversion
    target_url = Column(Text, default="", nullable=False)
    exclude_url = Column(Text, default="", nullable=False)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    session_duration = Column(Integer, default=720, nullable=False)  # minutes
    conditions = Column(JSONColumn, default=_empty_conditions, nullable=False)
    creatives = Column(JSONColumn, default=list, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    project = relationship("Project", back_populates="abtests")
    impressions = relationship("ImpressionLog", back_populates="abtest", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<ABTest {self.name} active={self.active}>"
