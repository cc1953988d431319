"""
Notification preference reader.

Produces an immutable per-user snapshot of notification settings for the
gatekeeper and the scheduler. Preferences are written by the settings API;
this service only reads them, with a short-lived cache in front of the
database.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from backend.src.models.notification_preference import (
    NotificationPreference,
    DEFAULT_QUIET_HOURS_START,
    DEFAULT_QUIET_HOURS_END,
    DEFAULT_DIGEST_TIME_LOCAL,
    DEFAULT_RECAP_DAY_OF_WEEK,
)
from backend.src.models.user import User
from backend.src.services.exceptions import NotFoundError, NotificationCacheError
from backend.src.services.notification_categories import (
    CATEGORY_CONFIG,
    NotificationCategory,
    get_category_config,
)
from backend.src.utils.logging_config import get_logger
from backend.src.utils.notification_cache import NotificationCache, preference_cache_key
from backend.src.utils.timezone_utils import DEFAULT_TIMEZONE, resolve_timezone


logger = get_logger("services")


PREFERENCE_CACHE_TTL_SECONDS = 300


@dataclass(frozen=True)
class UserNotificationPreferences:
    """
    Resolved notification settings for one user.

    Attributes:
        user_id: Owning user
        master_enabled: Master switch
        category_toggles: preference_field -> enabled
        quiet_hours_enabled: Whether quiet hours apply
        quiet_start / quiet_end: "HH:mm" local
        digest_time_local: "HH:mm" local
        recap_day_of_week: ISO weekday (1 = Monday)
        timezone: Valid IANA zone (already resolved with fallback)
    """
    user_id: int
    master_enabled: bool = True
    category_toggles: Dict[str, bool] = field(default_factory=dict)
    quiet_hours_enabled: bool = True
    quiet_start: str = DEFAULT_QUIET_HOURS_START
    quiet_end: str = DEFAULT_QUIET_HOURS_END
    digest_time_local: str = DEFAULT_DIGEST_TIME_LOCAL
    recap_day_of_week: int = DEFAULT_RECAP_DAY_OF_WEEK
    timezone: str = DEFAULT_TIMEZONE

    def is_category_enabled(self, category: NotificationCategory) -> bool:
        """Check the per-category toggle (registry default when unset)."""
        config = get_category_config(category)
        return self.category_toggles.get(config.preference_field, config.default_enabled)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserNotificationPreferences":
        return cls(**data)


def build_preferences(
    user: User,
    preference: Optional[NotificationPreference],
    default_timezone: str = DEFAULT_TIMEZONE,
) -> UserNotificationPreferences:
    """
    Build a snapshot from a user and their (optional) preference row.

    A missing row yields registry defaults with quiet hours 22:00-08:00.

    Args:
        user: User entity (source of the timezone)
        preference: Preference row, or None
        default_timezone: Fallback zone for missing/invalid user timezones

    Returns:
        UserNotificationPreferences snapshot
    """
    tz = resolve_timezone(user.timezone, default_timezone)

    if preference is None:
        return UserNotificationPreferences(
            user_id=user.id,
            category_toggles={
                config.preference_field: config.default_enabled
                for config in CATEGORY_CONFIG.values()
            },
            timezone=tz,
        )

    return UserNotificationPreferences(
        user_id=user.id,
        master_enabled=preference.all_notifications_enabled,
        category_toggles={
            config.preference_field: bool(getattr(preference, config.preference_field))
            for config in CATEGORY_CONFIG.values()
        },
        quiet_hours_enabled=preference.quiet_hours_enabled,
        quiet_start=preference.quiet_hours_start or DEFAULT_QUIET_HOURS_START,
        quiet_end=preference.quiet_hours_end or DEFAULT_QUIET_HOURS_END,
        digest_time_local=preference.digest_time_local or DEFAULT_DIGEST_TIME_LOCAL,
        recap_day_of_week=preference.recap_day_of_week or DEFAULT_RECAP_DAY_OF_WEEK,
        timezone=tz,
    )


class NotificationPreferenceService:
    """
    Read-through cache of user notification preferences.

    Cache failures never block a read; the database is the source of truth.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[NotificationCache] = None,
        default_timezone: str = DEFAULT_TIMEZONE,
    ):
        self.db = db
        self.cache = cache
        self.default_timezone = default_timezone

    def get_preferences(self, user_id: int) -> UserNotificationPreferences:
        """
        Get the preference snapshot for a user.

        Args:
            user_id: User's internal ID

        Returns:
            UserNotificationPreferences

        Raises:
            NotFoundError: If the user does not exist
        """
        cached = self._read_cache(user_id)
        if cached is not None:
            return cached

        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("User", user_id)

        preference = (
            self.db.query(NotificationPreference)
            .filter(NotificationPreference.user_id == user_id)
            .first()
        )
        prefs = build_preferences(user, preference, self.default_timezone)
        self._write_cache(prefs)
        return prefs

    def invalidate_preference_cache(self, user_id: int) -> None:
        """Drop the cached snapshot (call after preferences change)."""
        if self.cache is None:
            return
        try:
            self.cache.delete(preference_cache_key(user_id))
        except NotificationCacheError as e:
            logger.warning(
                f"Failed to invalidate preference cache: {e}",
                extra={"user_id": user_id},
            )

    def _read_cache(self, user_id: int) -> Optional[UserNotificationPreferences]:
        if self.cache is None:
            return None
        try:
            data = self.cache.get_json(preference_cache_key(user_id))
        except NotificationCacheError as e:
            logger.warning(
                f"Preference cache read failed, using database: {e}",
                extra={"user_id": user_id},
            )
            return None
        return UserNotificationPreferences.from_dict(data) if data else None

    def _write_cache(self, prefs: UserNotificationPreferences) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set_json(
                preference_cache_key(prefs.user_id),
                prefs.to_dict(),
                PREFERENCE_CACHE_TTL_SECONDS,
            )
        except NotificationCacheError as e:
            logger.warning(
                f"Preference cache write failed: {e}",
                extra={"user_id": prefs.user_id},
            )
