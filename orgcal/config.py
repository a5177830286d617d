# orgcal/config.py

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Single project config. Reads environment variables.
    Pydantic v2 + pydantic-settings.
    """
    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
    )

    # --- Core ---
    ENVIRONMENT: str = Field("dev", description="Application environment (dev, test, prod)")

    # --- Database ---
    DATABASE_URL: str = Field(..., description="Async database connection URL (e.g., postgresql+asyncpg://...)")

    # --- Redis / Celery ---
    REDIS_URL: str = Field("redis://redis:6379/0", description="URL for Redis connection")
    CELERY_BROKER_URL: Optional[str] = Field(None, description="Celery broker URL (defaults to REDIS_URL)")
    CELERY_RESULT_BACKEND: Optional[str] = Field(None, description="Celery result backend URL (defaults to REDIS_URL)")

    # --- JWT ---
    JWT_SECRET_KEY: str = Field(..., description="Secret key for signing JWT tokens")
    JWT_ALGORITHM: str = Field("HS256", description="Algorithm for JWT signing")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60 * 24 * 7, description="JWT access token lifetime in minutes")

    # --- Time normalization ---
    # Stored timestamps are naive local wall-clock values; this is local minus UTC.
    LOCAL_UTC_OFFSET_HOURS: int = Field(9, description="Offset of the stored local wall-clock from UTC, in hours")

    # --- Reminder engine ---
    REMINDER_HORIZON_HOURS: int = Field(48, description="Lookahead horizon for the event backfill and the series sweep")
    SERIES_SWEEP_INTERVAL_MINUTES: int = Field(60, description="Beat interval of the periodic series sweep")
    IMMEDIATE_FIRE_DELAY_SECONDS: int = Field(5, description="Delay used when a trigger time has already passed")
    NOTIFICATION_DEDUP_HOURS: int = Field(4, description="Window in which an identical reminder notification is suppressed")
    CANCEL_NOTIFICATION_WINDOW_MINUTES: int = Field(10, description="Unread reminder notifications younger than this are removed on cancel")
    JOB_MAX_RETRIES: int = Field(2, description="Retry limit for a failing reminder job")
    RUN_BACKFILL_ON_STARTUP: bool = Field(True, description="Schedule reminders for existing events when the API starts")

    # --- Live updates ---
    LIVE_CHANNEL: str = Field("orgcal:live", description="Redis pub/sub channel for change notices")
    LIVE_HEARTBEAT_SECONDS: int = Field(30, description="SSE keepalive interval")
    LIVE_SESSION_QUEUE_SIZE: int = Field(256, description="Pending messages per open session before it is evicted")
    LIVE_RELAY_ENABLED: bool = Field(True, description="Relay change notices through Redis so workers reach web sessions")

    # --- Delivery providers ---
    EMAIL_PROVIDER: str = Field("noop", description="Email channel ('noop')")
    PUSH_PROVIDER: str = Field("noop", description="Push channel ('noop')")

    @model_validator(mode='after')
    def set_celery_defaults(self) -> 'Settings':
        if self.CELERY_BROKER_URL is None:
            log.debug("Setting CELERY_BROKER_URL default from REDIS_URL")
            self.CELERY_BROKER_URL = self.REDIS_URL
        if self.CELERY_RESULT_BACKEND is None:
            log.debug("Setting CELERY_RESULT_BACKEND default from REDIS_URL")
            self.CELERY_RESULT_BACKEND = self.REDIS_URL
        return self

    @property
    def local_utc_offset(self) -> timedelta:
        return timedelta(hours=self.LOCAL_UTC_OFFSET_HOURS)


try:
    settings = Settings()
    log.info("Settings loaded successfully for ENVIRONMENT=%s", settings.ENVIRONMENT)
    log.debug("Loaded settings: DB URL=%s..., Redis URL=%s",
              str(settings.DATABASE_URL)[:25] if settings.DATABASE_URL else "None",
              settings.REDIS_URL)
except Exception:
    log.exception("Failed to instantiate Settings.")
    raise
