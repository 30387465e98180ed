"""Append-only tracking logs."""
from sqlalchemy import Column, String, Integer, Boolean, Text, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from tracklab.database import Base


class ImpressionLog(Base):
    """A visitor was shown a creative of an A/B test."""

    __tablename__ = "abtest_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    abtest_id = Column(Uuid, ForeignKey("abtests.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    creative_index = Column(Integer, nullable=False)
    creative_name = Column(String(255), default="")  # snapshot, survives creative reordering
    is_original = Column(Boolean, default=False, nullable=False)
    url = Column(Text)
    device = Column(String(20))
    browser = Column(String(100))
    os = Column(String(100))
    language = Column(String(50))
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    abtest = relationship("ABTest", back_populates="impressions")

    def __repr__(self):
        return f"<ImpressionLog {self.abtest_id} creative={self.creative_index}>"


class EventLog(Base):
    """Page view or custom event reported by the SDK."""

    __tablename__ = "event_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    url = Column(Text, nullable=False)
    event = Column(String(255), nullable=False, index=True)
    device = Column(String(20))
    browser = Column(String(100))
    os = Column(String(100))
    language = Column(String(50))
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    exit_timestamp = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<EventLog {self.event} user={self.user_id}>"
