"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "TrackLab"
    debug: bool = False
    environment: str = "development"  # "production" makes empty origin lists fail closed

    # Database
    database_url: str

    # Redis
    redis_url: str

    # Admin API key for project / A/B test management
    admin_api_key: str = "admin-key-change-in-production"

    # Global origin allow-list, comma separated. Used when a project has none.
    allowed_origins: str = ""

    # Request signing
    signing_window_ms: int = 300_000  # 5 minutes

    # A/B tests
    default_session_duration: int = 720  # minutes

    # Tracking rate limit (per project and client IP)
    tracking_rate_limit: int = 60
    tracking_rate_window: int = 60  # seconds

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def global_allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
