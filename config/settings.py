"""
config/settings.py
Application settings loaded from environment variables.
Uses Pydantic BaseSettings for validation and type safety.
"""

from functools import lru_cache
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "Wellness Booking Notifications"
    APP_ENV: str = "development"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # ── Server ───────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # ── Database ─────────────────────────────────────────────
    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30

    # ── Redis / Celery ───────────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    # ── Email (Resend) ───────────────────────────────────────
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "notifications@roamwellness.com"
    EMAIL_FROM_NAME: str = "ROAM Wellness"

    # ── SMS (Twilio) ─────────────────────────────────────────
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_FROM_NUMBER: str = ""
    SMS_DELIVERY_ENABLED: bool = False

    # ── Notification pipeline ────────────────────────────────
    NOTIFICATION_TIMEZONE: str = "UTC"
    NOTIFICATION_MAX_IN_FLIGHT: int = 100
    NOTIFICATION_DRAIN_TIMEOUT_SECONDS: float = 30.0
    REMINDER_HOUR_UTC: int = 15

    # ── Frontend ─────────────────────────────────────────────
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    @field_validator("NOTIFICATION_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def email_sender(self) -> str:
        return f"{self.EMAIL_FROM_NAME} <{self.EMAIL_FROM}>"

    @property
    def notification_tz(self) -> ZoneInfo:
        return ZoneInfo(self.NOTIFICATION_TIMEZONE)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance, call this everywhere."""
    return Settings()


settings = get_settings()
