"""Main FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from tracklab.config import get_settings
from tracklab.errors import register_error_handlers
from tracklab.middleware.logging import LoggingMiddleware
from tracklab.api import abtests, health, projects, tracker
from tracklab.database import engine, Base
import tracklab.models  # noqa: F401  registers tables on Base.metadata

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    Base.metadata.create_all(bind=engine)
    logging.info("Database tables verified/created on startup")

    if settings.is_production and settings.admin_api_key == "admin-key-change-in-production":
        logging.warning("ADMIN_API_KEY still has its default value")

    yield  # App runs here

    logging.info("Shutting down TrackLab")


app = FastAPI(
    title="TrackLab",
    description="Web analytics tracker with signed A/B test assignment",
    version="0.1.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# The SDK runs on customer sites, so CORS reflects any origin here; the
# per-project allow-list is enforced by the SDK endpoints themselves.
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=".*",
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Trace-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining"]
)

# Logging middleware
app.add_middleware(LoggingMiddleware)

register_error_handlers(app)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(abtests.router, tags=["abtests"])
app.include_router(tracker.router, tags=["tracking"])
app.include_router(projects.router, tags=["projects"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "TrackLab",
        "version": "0.1.0",
        "docs": "/docs" if settings.debug else "disabled",
        "endpoints": {
            "health": "/health",
            "execute": "POST /api/abtests/execute",
            "log_impression": "POST /api/abtests/log-impression",
            "track": "POST /track"
        }
    }


# uvicorn tracklab.main:app --reload
