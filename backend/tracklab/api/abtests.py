"""A/B test endpoints.

SDK-facing (signed, origin-checked):
- POST /api/abtests/execute
- POST /api/abtests/log-impression

Preview (unsigned, used by the SDK's gh_id / gh_creative mode):
- GET /api/abtests/{abtest_id}/creative/{creative_index}

Management (admin key): list, create, read, update, toggle, delete.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from tracklab.api.common import client_ip, enforce_rate_limit, naive_utc, parse_payload
from tracklab.config import Settings, get_settings
from tracklab.database import get_db
from tracklab.errors import AuthError, NotFoundError, ValidationError
from tracklab.middleware.auth import SignedRequest, require_admin, verified_sdk_request
from tracklab.middleware.logging import get_logger
from tracklab.models import ABTest, ImpressionLog
from tracklab.schemas.abtest import ABTestWrite, ExecuteRequest, LogImpressionRequest
from tracklab.services.assignment import AssignmentService, VisitorContext
from tracklab.services.devices import profile_user_agent
from tracklab.services.rate_limiter import RateLimiter, get_rate_limiter
from tracklab.services.store import TrackerStore, parse_uuid

router = APIRouter()
logger = get_logger()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def abtest_to_dict(abtest: ABTest) -> Dict[str, Any]:
    return {
        "id": str(abtest.id),
        "projectId": str(abtest.project_id),
        "name": abtest.name,
        "active": abtest.active,
        "cvCode": abtest.cv_code,
        "targetUrl": abtest.target_url,
        "excludeUrl": abtest.exclude_url,
        "startDate": _iso(abtest.start_date),
        "endDate": _iso(abtest.end_date),
        "sessionDuration": abtest.session_duration,
        "conditions": abtest.conditions,
        "creatives": abtest.creatives,
        "createdAt": _iso(abtest.created_at),
        "updatedAt": _iso(abtest.updated_at),
    }


def _apply_write(abtest: ABTest, data: ABTestWrite, settings: Settings) -> None:
    abtest.project_id = data.project_id
    abtest.name = data.name
    abtest.active = data.active
    abtest.cv_code = data.cv_code
    abtest.target_url = data.target_url
    abtest.exclude_url = data.exclude_url
    abtest.start_date = naive_utc(data.start_date)
    abtest.end_date = naive_utc(data.end_date)
    abtest.session_duration = data.session_duration or settings.default_session_duration
    abtest.conditions = data.conditions.model_dump(by_alias=True, mode="json")
    abtest.creatives = [c.model_dump(by_alias=True, mode="json") for c in data.creatives]


def _get_abtest_or_404(db: Session, abtest_id: str) -> ABTest:
    abtest = TrackerStore(db).find_test_by_id(abtest_id)
    if abtest is None:
        raise NotFoundError("ABTest not found")
    return abtest


@router.post("/api/abtests/execute")
async def execute_abtest(
    request: Request,
    signed: SignedRequest = Depends(verified_sdk_request),
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
    settings: Settings = Depends(get_settings)
):
    """
    Pick the A/B test and creative for a page view.

    Returns ``{"matched": false}`` or the assignment with its creative.
    """
    body = parse_payload(ExecuteRequest, signed.payload)
    enforce_rate_limit(limiter, f"{signed.project.id}:{client_ip(request)}")

    service = AssignmentService(
        TrackerStore(db),
        default_session_duration=settings.default_session_duration
    )
    result = service.execute(VisitorContext(
        project_id=str(signed.project.id),
        url=body.url,
        user_agent=body.user_agent,
        language=body.language,
        visit_count=body.visit_count,
        referrer=body.referrer,
    ))
    return result.to_wire()


@router.post("/api/abtests/log-impression")
async def log_impression(
    signed: SignedRequest = Depends(verified_sdk_request),
    db: Session = Depends(get_db)
):
    """Record that a visitor received a fresh assignment."""
    body = parse_payload(LogImpressionRequest, signed.payload)
    store = TrackerStore(db)

    project = store.find_project_by_credentials(body.project_id, body.api_key)
    if project is None:
        logger.warning("impression_invalid_credentials", project_id=body.project_id)
        raise AuthError("Invalid credentials", code="INVALID_CREDENTIALS", status_code=403)

    abtest = store.find_test_by_id(body.abtest_id)
    if abtest is None or abtest.project_id != project.id:
        raise NotFoundError("ABTest not found")
    if body.creative_index < 0 or body.creative_index >= len(abtest.creatives or []):
        raise NotFoundError("Creative not found")

    profile = profile_user_agent(body.user_agent)
    store.record_impression(ImpressionLog(
        project_id=project.id,
        abtest_id=abtest.id,
        user_id=body.user_id,
        creative_index=body.creative_index,
        creative_name=body.creative_name or "",
        is_original=bool(body.is_original),
        url=body.url,
        device=profile.device,
        browser=profile.browser,
        os=profile.os,
        language=body.language or "unknown",
    ))

    logger.info(
        "impression_recorded",
        project_id=str(project.id),
        abtest_id=str(abtest.id),
        creative_index=body.creative_index
    )
    return {"status": "ok"}


@router.get("/api/abtests/{abtest_id}/creative/{creative_index}")
async def get_forced_creative(
    abtest_id: str,
    creative_index: str,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """Return one creative of a test regardless of targeting (preview mode)."""
    service = AssignmentService(
        TrackerStore(db),
        default_session_duration=settings.default_session_duration
    )
    return service.preview(abtest_id, creative_index)


@router.get("/api/abtests", dependencies=[Depends(require_admin)])
async def list_abtests(
    project_id: Optional[str] = Query(None, alias="projectId"),
    db: Session = Depends(get_db)
):
    """List a project's tests, newest first."""
    pid = parse_uuid(project_id) if project_id else None
    if pid is None:
        raise ValidationError("projectId is required")

    abtests = db.query(ABTest).filter(
        ABTest.project_id == pid
    ).order_by(ABTest.created_at.desc()).all()
    return [abtest_to_dict(a) for a in abtests]


@router.post("/api/abtests", dependencies=[Depends(require_admin)])
async def create_abtest(
    data: ABTestWrite,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    if TrackerStore(db).find_project_by_id(data.project_id) is None:
        raise NotFoundError("Project not found")

    abtest = ABTest()
    _apply_write(abtest, data, settings)
    db.add(abtest)
    db.commit()
    db.refresh(abtest)

    logger.info("abtest_created", abtest_id=str(abtest.id), project_id=str(abtest.project_id))
    return abtest_to_dict(abtest)


@router.get("/api/abtests/{abtest_id}", dependencies=[Depends(require_admin)])
async def get_abtest(abtest_id: str, db: Session = Depends(get_db)):
    return abtest_to_dict(_get_abtest_or_404(db, abtest_id))


@router.put("/api/abtests/{abtest_id}", dependencies=[Depends(require_admin)])
async def update_abtest(
    abtest_id: str,
    data: ABTestWrite,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """Replace a test's configuration.

    Creatives are matched to historical logs by position; callers that
    reorder or remove creatives change what old impression rows refer to.
    """
    abtest = _get_abtest_or_404(db, abtest_id)
    if len(data.creatives) < len(abtest.creatives or []):
        logger.warning(
            "abtest_creatives_shrunk",
            abtest_id=abtest_id,
            before=len(abtest.creatives or []),
            after=len(data.creatives)
        )

    _apply_write(abtest, data, settings)
    abtest.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(abtest)
    return abtest_to_dict(abtest)


@router.put("/api/abtests/{abtest_id}/toggle", dependencies=[Depends(require_admin)])
async def toggle_abtest(abtest_id: str, db: Session = Depends(get_db)):
    abtest = _get_abtest_or_404(db, abtest_id)
    abtest.active = not abtest.active
    abtest.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(abtest)

    logger.info("abtest_toggled", abtest_id=abtest_id, active=abtest.active)
    return abtest_to_dict(abtest)


@router.delete("/api/abtests/{abtest_id}", dependencies=[Depends(require_admin)])
async def delete_abtest(abtest_id: str, db: Session = Depends(get_db)):
    abtest = _get_abtest_or_404(db, abtest_id)
    db.delete(abtest)
    db.commit()

    logger.info("abtest_deleted", abtest_id=abtest_id)
    return {"success": True}
