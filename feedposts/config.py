"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from feedposts.errors import ConfigurationError


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="FEEDPOSTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "json"
    log_file: Path | None = Field(
        default=None,
        description="Also write log lines to this file",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./feedposts.db",
        description="Async database URL (SQLAlchemy format)",
    )
    db_pool_size: int = Field(
        default=90,
        description="Maximum concurrent database connections",
    )

    # Bluesky
    bsky_host: str = Field(default="https://bsky.social")
    bsky_identifier: str | None = Field(default=None)
    bsky_password: str | None = Field(default=None)
    session_refresh_minutes: float = Field(
        default=118,
        description="Interval between session token refreshes",
    )
    http_timeout_seconds: float = Field(default=30.0)
    fetch_retry_attempts: int = Field(
        default=3,
        description="Attempts per page request before giving up on a feed",
    )

    # Pipeline
    workers: int = Field(default=10)
    dispatch_rate_per_second: float = Field(default=10.0)
    queue_size: int | None = Field(
        default=None,
        description="Bound of the work queue (defaults to the worker count)",
    )
    page_limit: int = Field(default=100, ge=1, le=100)
    invalid_cursor_markers: list[str] = Field(
        default=["null"],
        description="Substrings that mark a cursor as terminal",
    )

    # Input
    input_file: Path | None = Field(default=None)
    input_dir: Path | None = Field(default=None)

    @field_validator(
        "db_pool_size",
        "workers",
        "fetch_retry_attempts",
        "session_refresh_minutes",
        "http_timeout_seconds",
        "dispatch_rate_per_second",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @model_validator(mode="after")
    def default_queue_size(self) -> "Settings":
        if self.queue_size is None:
            self.queue_size = self.workers
        elif self.queue_size <= 0:
            raise ValueError("queue_size must be positive")
        return self


def load_settings(**overrides) -> Settings:
    """Build settings, turning validation failures into ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"invalid settings: {e}") from e


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
