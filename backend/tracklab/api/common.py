"""Helpers shared by the SDK-facing routers."""
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type, TypeVar

from fastapi import Request
from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from tracklab.errors import RateLimitError, ValidationError
from tracklab.middleware.logging import get_logger
from tracklab.services.rate_limiter import RateLimiter

logger = get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model: Type[ModelT], payload: Dict[str, Any]) -> ModelT:
    """Validate an already-authenticated body, mapping failures to 400."""
    try:
        return model.model_validate(payload)
    except SchemaValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError(f"Missing or invalid parameters: {', '.join(fields)}")


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(limiter: RateLimiter, key: str) -> int:
    """Count a request; raise 429 when over the limit. Returns remaining."""
    allowed, count = limiter.check_rate_limit(key)
    if not allowed:
        logger.warning("rate_limit_exceeded", key=key, count=count)
        raise RateLimitError(
            "Too many tracking requests",
            headers={"X-RateLimit-Limit": str(limiter.limit), "X-RateLimit-Remaining": "0"}
        )
    return max(0, limiter.limit - count)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store datetimes as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
