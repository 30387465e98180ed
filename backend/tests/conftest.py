"""Shared fixtures: in-memory SQLite, mocked Redis, signed-request helpers."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["ENVIRONMENT"] = "development"
os.environ["ALLOWED_ORIGINS"] = ""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

import tracklab.models  # noqa: F401
from tracklab.config import get_settings
from tracklab.database import Base, SessionLocal, engine, get_db
from tracklab.main import app
from tracklab.models import ABTest, Project
from tracklab.services.rate_limiter import RateLimiter, get_rate_limiter
from tracklab.services.signature import sign_payload

API_KEY = "a" * 64
ADMIN_HEADERS = {"x-api-key": "test-admin-key"}


@pytest.fixture
def db():
    """Create test database session."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def mock_redis():
    """Redis mock whose counters always report the first request."""
    redis_mock = MagicMock()
    redis_mock.get.return_value = None
    redis_mock.pipeline.return_value.execute.return_value = [1, True]
    return redis_mock


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def client(db, mock_redis, settings):
    limiter = RateLimiter(mock_redis, limit=60, window=60)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_settings] = lambda: settings

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def project(db):
    project = Project(
        name="Shop",
        url="https://shop.example.com",
        api_key=API_KEY,
        allowed_origins=[]
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def make_abtest(db, project):
    """Factory for stored A/B tests; created_at increases with each call."""
    created = []

    def _make(**overrides):
        data = dict(
            project_id=project.id,
            name=f"test-{len(created)}",
            active=True,
            cv_code="purchase",
            target_url="",
            exclude_url="",
            session_duration=720,
            conditions={},
            creatives=[
                {"name": "orig", "distribution": 1, "isOriginal": True, "css": "", "javascript": ""},
                {"name": "B", "distribution": 1, "isOriginal": False, "css": "body{color:red}", "javascript": ""},
            ],
            created_at=datetime(2024, 1, 1) + timedelta(minutes=len(created)),
        )
        data.update(overrides)
        abtest = ABTest(**data)
        db.add(abtest)
        db.commit()
        db.refresh(abtest)
        created.append(abtest)
        return abtest

    return _make


def signed(payload, api_key=API_KEY, timestamp=None):
    """Sign a body the way the SDK does."""
    return sign_payload(payload, api_key, timestamp=timestamp)
