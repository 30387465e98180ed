"""Event tracking endpoint for page views and custom events."""
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tracklab.api.common import client_ip, enforce_rate_limit, naive_utc, parse_payload
from tracklab.database import get_db
from tracklab.errors import AuthError
from tracklab.middleware.auth import SignedRequest, verified_sdk_request
from tracklab.middleware.logging import get_logger
from tracklab.models import EventLog
from tracklab.schemas.tracking import TrackEventRequest
from tracklab.services.devices import profile_user_agent
from tracklab.services.rate_limiter import RateLimiter, get_rate_limiter
from tracklab.services.store import TrackerStore

router = APIRouter()
logger = get_logger()


def normalize_url(url: str) -> str:
    """Host + path without scheme, "www." or trailing slash, lowercased."""
    parts = urlsplit(url.strip() if "://" in url else f"http://{url.strip()}")
    host = (parts.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{host}{parts.path}".rstrip("/")


def primary_language(accept_language: str) -> str:
    """'en-US,en;q=0.9' -> 'en'."""
    first = (accept_language or "").split(",")[0].split(";")[0].strip()
    return first.split("-")[0].lower() or "unknown"


@router.post("/track")
async def track_event(
    request: Request,
    signed: SignedRequest = Depends(verified_sdk_request),
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """
    Store one SDK event.

    Accepts JSON sent with any Content-Type so navigator.sendBeacon exit
    events (text/plain Blobs) are recorded too.
    """
    body = parse_payload(TrackEventRequest, signed.payload)
    enforce_rate_limit(limiter, f"{signed.project.id}:{client_ip(request)}")
    store = TrackerStore(db)

    project = store.find_project_by_credentials(body.project_id, body.api_key)
    if project is None:
        logger.warning("track_invalid_credentials", project_id=body.project_id)
        raise AuthError("Invalid credentials", code="INVALID_CREDENTIALS", status_code=403)

    if not normalize_url(body.url).startswith(normalize_url(project.url)):
        logger.warning("track_url_mismatch", project_id=str(project.id), url=body.url)
        raise AuthError("URL mismatch", code="URL_MISMATCH", status_code=403)

    profile = profile_user_agent(request.headers.get("user-agent"))
    language = body.language or primary_language(request.headers.get("accept-language", ""))

    store.record_event(EventLog(
        project_id=project.id,
        user_id=body.user_id,
        url=body.url,
        event=body.event,
        device=profile.device,
        browser=profile.browser,
        os=profile.os,
        language=language,
        exit_timestamp=naive_utc(body.exit_timestamp),
    ))

    logger.info("event_tracked", project_id=str(project.id), tracked_event=body.event)
    return {"status": "ok"}
