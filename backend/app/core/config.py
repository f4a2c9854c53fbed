"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Every channel endpoint lives here and is handed to the channel
constructors by the registry builder; channels never read these
values on their own, so tests can point them at fake endpoints.

Usage:
    from backend.app.core.config import settings
    print(settings.UPLOAD_SERVER_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Submission Gateway"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Delivery channels (registry order: direct → proxies → relay → local) ──
    UPLOAD_SERVER_URL: str = "http://localhost:3000/upload"
    LOCAL_PROXY_URL: Optional[str] = "http://localhost:8000/api/v1/relay/upload"
    FUNCTION_PROXY_URL: Optional[str] = None  # e.g. /.netlify/functions/upload-proxy
    CORS_PROXY_BASES: List[str] = []  # e.g. ["https://cors-anywhere.herokuapp.com/"]
    CORS_PROXY_ORIGIN: Optional[str] = None  # Origin header sent through CORS relays
    NOTIFICATION_RELAY_URL: Optional[str] = None  # metadata-only channel; omitted if unset
    NOTIFICATION_CHAT_ID: Optional[str] = None
    ENABLE_LOCAL_FALLBACK: bool = True
    LOCAL_OBJECT_ORIGIN: str = "http://localhost:8000"

    # ── Orchestration ──
    CHANNEL_TIMEOUT_SECONDS: float = 30.0  # per-channel attempt bound
    PROGRESS_STEP: float = 10.0
    PROGRESS_INTERVAL_SECONDS: float = 0.5
    PROGRESS_CEILING: float = 90.0  # must stay below 100
    MAX_UPLOAD_BYTES: int = 25 * 1024 * 1024

    # ── Upload relay (local proxy endpoint) ──
    RELAY_UPSTREAM_URL: str = "http://localhost:3000/upload"
    RELAY_TIMEOUT_SECONDS: float = 30.0

    @field_validator("PROGRESS_CEILING")
    @classmethod
    def ceiling_below_complete(cls, v: float) -> float:
        # 100 is reserved for a recorded success
        if not 0 < v < 100:
            raise ValueError("PROGRESS_CEILING must be between 0 and 100 exclusive")
        return v

    @field_validator("CHANNEL_TIMEOUT_SECONDS", "PROGRESS_STEP", "PROGRESS_INTERVAL_SECONDS", "RELAY_TIMEOUT_SECONDS")
    @classmethod
    def positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("CORS_PROXY_BASES")
    @classmethod
    def drop_blank_relays(cls, v: List[str]) -> List[str]:
        return [base.strip() for base in v if base and base.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
