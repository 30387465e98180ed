"""Health check endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text

from tracklab.database import get_db
from tracklab.services.rate_limiter import RateLimiter, get_rate_limiter

router = APIRouter()


@router.get("/health")
@router.head("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": "tracklab-backend"}


@router.get("/health/detailed")
async def detailed_health_check(
    db: Session = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    """
    Detailed health check: the store backs every assignment, Redis backs the
    tracking rate limit.
    """
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown"
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    try:
        limiter.redis.ping()
        checks["redis"] = "healthy"
    except Exception as e:
        checks["redis"] = f"unhealthy: {str(e)}"

    overall_status = "healthy" if all(
        v == "healthy" for v in checks.values()
    ) else "degraded"

    return {
        "status": overall_status,
        "checks": checks
    }
