"""Persistent store access used by the assignment and tracking paths."""
import functools
import uuid
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tracklab.errors import InfrastructureError
from tracklab.middleware.logging import get_logger
from tracklab.models import ABTest, EventLog, ImpressionLog, Project

logger = get_logger()


def parse_uuid(value) -> Optional[uuid.UUID]:
    """Parse an id from the wire; None when it is not a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def _store_call(func):
    """Turn database driver failures into InfrastructureError."""
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("store_unavailable", operation=func.__name__, error=str(e))
            raise InfrastructureError("Store unavailable") from e
    return wrapper


class TrackerStore:
    """Queries and append-only writes for projects, tests and logs."""

    def __init__(self, db: Session):
        self.db = db

    @_store_call
    def find_project_by_id(self, project_id) -> Optional[Project]:
        pid = parse_uuid(project_id)
        if pid is None:
            return None
        return self.db.get(Project, pid)

    @_store_call
    def find_project_by_credentials(self, project_id, api_key: str) -> Optional[Project]:
        pid = parse_uuid(project_id)
        if pid is None or not api_key:
            return None
        return self.db.query(Project).filter(
            Project.id == pid,
            Project.api_key == api_key
        ).first()

    @_store_call
    def find_active_tests(self, project_id) -> List[ABTest]:
        """Active tests of a project in creation order."""
        pid = parse_uuid(project_id)
        if pid is None:
            return []
        return self.db.query(ABTest).filter(
            ABTest.project_id == pid,
            ABTest.active == True  # noqa: E712
        ).order_by(ABTest.created_at.asc(), ABTest.id.asc()).all()

    @_store_call
    def find_test_by_id(self, abtest_id) -> Optional[ABTest]:
        tid = parse_uuid(abtest_id)
        if tid is None:
            return None
        return self.db.get(ABTest, tid)

    @_store_call
    def record_impression(self, entry: ImpressionLog) -> None:
        self.db.add(entry)
        self.db.commit()

    @_store_call
    def record_event(self, entry: EventLog) -> None:
        self.db.add(entry)
        self.db.commit()
