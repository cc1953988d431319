"""
Application settings configuration for the notification core.

Centralized settings loaded from environment variables.
"""

from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


DEFAULT_EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"
DEFAULT_EXPO_RECEIPTS_URL = "https://exp.host/--/api/v2/push/getReceipts"


class AppSettings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment Variables:
        NOTIFICATIONS_ENABLED: Global kill-switch for push sends (default: True)
        NOTIFICATION_SCHEDULER_ENABLED: Run scheduled notification jobs (default: True)
        NOTIFICATION_INACTIVITY_ENABLED: Run the inactivity re-engagement job (default: False)
        NOTIFICATION_DAILY_CAP: Max non-urgent sends per user per local day (default: 10)
        NOTIFICATION_DEFAULT_TIMEZONE: Fallback IANA zone for users (default: America/New_York)
        NOTIFICATION_BATCH_LIMIT: Upper bound on scheduler candidate queries (default: 1000)
        EXPO_PUSH_URL: Expo push send endpoint
        EXPO_RECEIPTS_URL: Expo push receipts endpoint
        EXPO_ACCESS_TOKEN: Optional Expo access token (enhanced push security)
        EXPO_REQUEST_TIMEOUT_SECONDS: Per-request timeout against Expo (default: 10)
        NOTIFICATION_INBOX_EXPIRY_DAYS: Days an in-app inbox item stays visible (default: 30)
        REDIS_URL: Redis connection URL for dedupe and cap counters
            Leave empty to use the in-process cache (single worker only).
    """

    # Feature switches
    notifications_enabled: bool = Field(
        default=True,
        validation_alias="NOTIFICATIONS_ENABLED",
        description="Global kill-switch. When False every send is suppressed."
    )

    scheduler_enabled: bool = Field(
        default=True,
        validation_alias="NOTIFICATION_SCHEDULER_ENABLED",
        description="When False, cron-triggered jobs are skipped (event-triggered jobs still run)"
    )

    inactivity_enabled: bool = Field(
        default=False,
        validation_alias="NOTIFICATION_INACTIVITY_ENABLED",
        description="Enable the 48h / 7d re-engagement job"
    )

    # Gatekeeper policy
    daily_cap: int = Field(
        default=10,
        validation_alias="NOTIFICATION_DAILY_CAP",
        ge=1,
        le=1000,
    )

    default_timezone: str = Field(
        default="America/New_York",
        validation_alias="NOTIFICATION_DEFAULT_TIMEZONE",
        description="IANA timezone used when a user's timezone is missing or invalid"
    )

    batch_limit: int = Field(
        default=1000,
        validation_alias="NOTIFICATION_BATCH_LIMIT",
        ge=1,
    )

    inbox_expiry_days: int = Field(
        default=30,
        validation_alias="NOTIFICATION_INBOX_EXPIRY_DAYS",
        ge=1,
    )

    # Expo push gateway
    expo_push_url: str = Field(
        default=DEFAULT_EXPO_PUSH_URL,
        validation_alias="EXPO_PUSH_URL",
    )

    expo_receipts_url: str = Field(
        default=DEFAULT_EXPO_RECEIPTS_URL,
        validation_alias="EXPO_RECEIPTS_URL",
    )

    expo_access_token: Optional[str] = Field(
        default=None,
        validation_alias="EXPO_ACCESS_TOKEN",
        description="Bearer token for Expo enhanced push security"
    )

    expo_request_timeout_seconds: float = Field(
        default=10.0,
        validation_alias="EXPO_REQUEST_TIMEOUT_SECONDS",
        gt=0,
        le=120,
    )

    # Gate cache backend
    # Empty: in-process cache (single worker, tests)
    # "redis://host:6379/0": shared counters across workers
    redis_url: str = Field(
        default="",
        validation_alias="REDIS_URL",
        description="Redis URL for dedupe keys and daily cap counters"
    )

    class Config:
        env_file = ".env"
        extra = "ignore"

    @field_validator("default_timezone")
    @classmethod
    def validate_default_timezone(cls, v: str) -> str:
        """Validate that the fallback timezone is a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"NOTIFICATION_DEFAULT_TIMEZONE is not a valid IANA zone: {v}") from e
        return v

    @property
    def redis_configured(self) -> bool:
        """Check if a shared Redis cache is configured."""
        return bool(self.redis_url)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get cached application settings instance.

    Returns:
        AppSettings: Configured application settings from environment
    """
    return AppSettings()
