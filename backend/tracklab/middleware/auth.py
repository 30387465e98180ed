"""Request authentication.

Two schemes live here:

- Admin endpoints (project and A/B test management) take the shared
  ``ADMIN_API_KEY`` in the ``x-api-key`` header.
- SDK endpoints carry an HMAC signature in the body (``_ts`` / ``_sig``) and
  are subject to the project's origin allow-list. The signature is checked
  first because it resolves the project the origin check needs.
"""
import hmac
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from tracklab.config import Settings, get_settings
from tracklab.database import get_db
from tracklab.errors import AuthError, ValidationError
from tracklab.middleware.logging import get_logger
from tracklab.models.project import Project
from tracklab.services import origins, signature
from tracklab.services.store import TrackerStore

logger = get_logger()

# API key header
api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)


@dataclass
class SignedRequest:
    """Decoded SDK body whose signature and origin have been checked."""
    payload: Dict[str, Any]
    project: Project
    origin: Optional[str] = None


async def require_admin(
    api_key: Optional[str] = Security(api_key_header),
    settings: Settings = Depends(get_settings)
) -> None:
    """
    Dependency guarding management endpoints.

    Usage:
        @router.post("/api/projects", dependencies=[Depends(require_admin)])

    Raises:
        AuthError: 401 if the key is missing or wrong
    """
    if not api_key:
        raise AuthError("Missing API key", code="ADMIN_KEY_MISSING", headers={"WWW-Authenticate": "ApiKey"})

    if not hmac.compare_digest(api_key.encode("utf-8"), settings.admin_api_key.encode("utf-8")):
        raise AuthError("Invalid API key", code="ADMIN_KEY_INVALID", headers={"WWW-Authenticate": "ApiKey"})


async def read_json_body(request: Request) -> Dict[str, Any]:
    """
    Decode a JSON object body regardless of Content-Type.

    navigator.sendBeacon posts a Blob, which often arrives as text/plain or
    application/octet-stream, so the Content-Type header is not trusted.
    """
    raw = await request.body()
    if not raw or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise ValidationError("Request body must be JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def authenticate_sdk_payload(
    payload: Dict[str, Any],
    origin: Optional[str],
    store: TrackerStore,
    settings: Settings
) -> SignedRequest:
    """
    Verify signature, then origin, for one SDK payload.

    Raises:
        AuthError: 401 for signature failures, 403 for a disallowed origin
    """
    try:
        verified = signature.verify(
            payload,
            store.find_project_by_id,
            window_ms=settings.signing_window_ms
        )
    except signature.SignatureError as e:
        logger.warning(
            "signature_rejected",
            project_id=str(payload.get("projectId")),
            reason=e.failure.value,
            code=e.code
        )
        raise AuthError(str(e), code=e.code, status_code=401)

    project = verified.project
    allowed = origins.is_allowed(
        origin,
        project,
        global_origins=settings.global_allowed_origins,
        production=settings.is_production
    )
    if not allowed:
        logger.warning(
            "origin_rejected",
            project_id=str(project.id),
            origin=origin,
            allowed_origins=list(project.allowed_origins or [])
        )
        raise AuthError("Origin not allowed", code="ORIGIN_NOT_ALLOWED", status_code=403)

    return SignedRequest(payload=payload, project=project, origin=origin)


async def verified_sdk_request(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
) -> SignedRequest:
    """
    Dependency for signed SDK endpoints.

    Usage:
        @router.post("/api/abtests/execute")
        async def execute(signed: SignedRequest = Depends(verified_sdk_request)):
            project = signed.project
    """
    payload = await read_json_body(request)
    return authenticate_sdk_payload(
        payload,
        request.headers.get("origin"),
        TrackerStore(db),
        settings
    )
