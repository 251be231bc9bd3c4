"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from studytrack.config import settings

    # Access settings
    db_url = settings.POSTGRES_URL
    batch = settings.SWEEP_BATCH_SIZE
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings

from studytrack.enums.api import RateLimitType


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Study Tracker"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "studytrack"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "studytrack"

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def POSTGRES_URL_SYNC(self) -> str:
        """Sync PostgreSQL connection URL for Alembic migrations."""
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Redis (activity stats cache, notification pub/sub)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"

    # Owner scoping. Authentication lives upstream; when API_KEY is empty
    # the key check is skipped (development mode).
    API_KEY: str = ""
    DEFAULT_TIMEZONE: str = "UTC"

    # Sessions
    SESSION_MIN_PLANNED_MINUTES: int = 1
    SESSION_MAX_PLANNED_MINUTES: int = 480  # 8 hours
    SESSION_NOTES_MAX_LENGTH: int = 1000

    # Recurrence / overdue sweep
    SWEEP_ENABLED: bool = True
    SWEEP_INTERVAL_MINUTES: int = 60
    SWEEP_BATCH_SIZE: int = 200

    # Streaks
    STREAK_MILESTONES: list[int] = [7, 14, 30, 60, 100, 365]

    # Heatmap activity levels (ratio of the busiest day)
    ACTIVITY_LEVEL_HIGH: float = 0.75
    ACTIVITY_LEVEL_MEDIUM_HIGH: float = 0.5
    ACTIVITY_LEVEL_MEDIUM: float = 0.25

    # Notifications (fire-and-forget Redis pub/sub)
    NOTIFICATIONS_ENABLED: bool = True
    NOTIFICATION_CHANNEL: str = "studytrack:events"

    # Derived per-user stats cache
    ACTIVITY_STATS_CACHE_TTL: int = 300

    # Rate limiting
    RATE_LIMITING_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"
    RATE_LIMIT_WRITE: str = "60/minute"
    RATE_LIMIT_ANALYTICS: str = "30/minute"
    RATE_LIMIT_BATCH: str = "5/minute"

    def get_rate_limit(self, rate_limit_type: RateLimitType) -> str:
        """Map a RateLimitType to its configured limit string."""
        limits = {
            RateLimitType.DEFAULT: self.RATE_LIMIT_DEFAULT,
            RateLimitType.WRITE: self.RATE_LIMIT_WRITE,
            RateLimitType.ANALYTICS: self.RATE_LIMIT_ANALYTICS,
            RateLimitType.BATCH: self.RATE_LIMIT_BATCH,
        }
        return limits.get(rate_limit_type, self.RATE_LIMIT_DEFAULT)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
