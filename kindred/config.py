"""
Kindred — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

REALTIME_BACKENDS = ("memory", "redis")


class Settings(BaseSettings):
    """Central configuration for the Kindred match service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_ECHO: bool = False

    # ------------------------------------------------------------------ #
    # Realtime channel
    # ------------------------------------------------------------------ #
    REALTIME_BACKEND: str = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    REALTIME_OUTBOX_SIZE: int = 100

    # ------------------------------------------------------------------ #
    # Match engine / chat
    # ------------------------------------------------------------------ #
    MESSAGE_MAX_LENGTH: int = 1000
    MATCH_TX_MAX_ATTEMPTS: int = 3
    TX_RETRY_BACKOFF_SECONDS: float = 0.05

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def uses_redis(self) -> bool:
        return self.REALTIME_BACKEND == "redis"

    @field_validator(
        "MESSAGE_MAX_LENGTH",
        "MATCH_TX_MAX_ATTEMPTS",
        "REALTIME_OUTBOX_SIZE",
    )
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @field_validator("REALTIME_BACKEND")
    @classmethod
    def _known_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in REALTIME_BACKENDS:
            raise ValueError(
                f"REALTIME_BACKEND must be one of {REALTIME_BACKENDS}, got {v!r}"
            )
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from kindred.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
