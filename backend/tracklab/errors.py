"""Error taxonomy shared by services and API routes.

Every error carries an HTTP status and a machine-readable code. Routes raise
them directly; `register_error_handlers` renders them as
``{"error": <message>, "code": <code>}``.
"""
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tracklab.middleware.logging import get_logger

logger = get_logger()


class TrackerError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers


class ValidationError(TrackerError):
    """Missing or malformed request field."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthError(TrackerError):
    """Bad credentials, signature or origin (401 or 403)."""

    status_code = 401
    code = "UNAUTHORIZED"


class NotFoundError(TrackerError):
    """Unknown project, A/B test or creative index."""

    status_code = 404
    code = "NOT_FOUND"


class RateLimitError(TrackerError):
    status_code = 429
    code = "RATE_LIMITED"


class InfrastructureError(TrackerError):
    """Persistent store unavailable."""

    status_code = 500
    code = "INFRASTRUCTURE_ERROR"


async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "request_error",
            path=request.url.path,
            code=exc.code,
            error=exc.message
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
        headers=exc.headers
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/query validation failures are 400s in the same error shape."""
    details = [
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "code": ValidationError.code, "details": details}
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TrackerError, tracker_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
