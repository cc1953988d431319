"""
Notification category registry.

Single source of truth for per-category delivery policy: urgency, channel,
dedupe window, TTL, deep link and the preference toggle that controls it.
The registry is immutable and validated at import time, so a misconfigured
category fails the process on startup rather than at send time.
"""

import enum
from dataclasses import dataclass
from datetime import timedelta
from types import MappingProxyType
from typing import Mapping, Optional


class NotificationCategory(str, enum.Enum):
    """Kinds of push notification the system can send."""
    SETTLEMENT = "SETTLEMENT"
    PVP_CHALLENGE = "PVP_CHALLENGE"
    SLIP_EXPIRING = "SLIP_EXPIRING"
    GAME_REMINDER = "GAME_REMINDER"
    SOCIAL = "SOCIAL"
    LEADERBOARD = "LEADERBOARD"
    DAILY_DIGEST = "DAILY_DIGEST"
    WEEKLY_RECAP = "WEEKLY_RECAP"
    WIN_STREAK = "WIN_STREAK"
    INACTIVITY = "INACTIVITY"


class Urgency(str, enum.Enum):
    """
    Delivery urgency.

    - HIGH: Bypasses quiet hours and is exempt from the daily cap
    - MEDIUM / LOW: Subject to quiet hours and counted against the cap
    """
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# Rank used to check that cap priorities follow urgency
_URGENCY_RANK = {Urgency.HIGH: 0, Urgency.MEDIUM: 1, Urgency.LOW: 2}


@dataclass(frozen=True)
class CategoryConfig:
    """
    Delivery policy for one notification category.

    Attributes:
        urgency: Urgency tier
        default_enabled: Toggle value for users without a preference row
        channel_id: Android notification channel (unique)
        cap_priority: Importance rank, lower is more important (unique)
        dedupe_window: How long an identical dedupe key is suppressed
        ttl_seconds: Gateway time-to-live for undelivered messages
        deep_link_pattern: In-app route; "{entity_id}" is substituted
        preference_field: NotificationPreference column holding the toggle
    """
    urgency: Urgency
    default_enabled: bool
    channel_id: str
    cap_priority: int
    dedupe_window: timedelta
    ttl_seconds: int
    deep_link_pattern: str
    preference_field: str


CATEGORY_CONFIG: Mapping[NotificationCategory, CategoryConfig] = MappingProxyType({
    NotificationCategory.SETTLEMENT: CategoryConfig(
        urgency=Urgency.HIGH,
        default_enabled=True,
        channel_id="match-settlement",
        cap_priority=1,
        dedupe_window=timedelta(seconds=60),
        ttl_seconds=86400,
        deep_link_pattern="/match/{entity_id}",
        preference_field="settlement_enabled",
    ),
    NotificationCategory.PVP_CHALLENGE: CategoryConfig(
        urgency=Urgency.HIGH,
        default_enabled=True,
        channel_id="pvp-challenge",
        cap_priority=2,
        dedupe_window=timedelta(minutes=5),
        ttl_seconds=86400,
        deep_link_pattern="/challenge/join?code={entity_id}",
        preference_field="pvp_challenge_enabled",
    ),
    NotificationCategory.SLIP_EXPIRING: CategoryConfig(
        urgency=Urgency.HIGH,
        default_enabled=True,
        channel_id="slip-expiring",
        cap_priority=3,
        dedupe_window=timedelta(minutes=10),
        ttl_seconds=900,
        deep_link_pattern="/slip/{entity_id}",
        preference_field="slip_expiring_enabled",
    ),
    NotificationCategory.GAME_REMINDER: CategoryConfig(
        urgency=Urgency.MEDIUM,
        default_enabled=True,
        channel_id="game-reminders",
        cap_priority=4,
        dedupe_window=timedelta(hours=2),
        ttl_seconds=7200,
        deep_link_pattern="/event/{entity_id}",
        preference_field="game_reminder_enabled",
    ),
    NotificationCategory.SOCIAL: CategoryConfig(
        urgency=Urgency.MEDIUM,
        default_enabled=True,
        channel_id="social",
        cap_priority=5,
        dedupe_window=timedelta(hours=1),
        ttl_seconds=43200,
        deep_link_pattern="/users/{entity_id}",
        preference_field="social_enabled",
    ),
    NotificationCategory.LEADERBOARD: CategoryConfig(
        urgency=Urgency.MEDIUM,
        default_enabled=True,
        channel_id="leaderboard",
        cap_priority=6,
        dedupe_window=timedelta(hours=24),
        ttl_seconds=43200,
        deep_link_pattern="/(tabs)/leaderboard",
        preference_field="leaderboard_enabled",
    ),
    NotificationCategory.DAILY_DIGEST: CategoryConfig(
        urgency=Urgency.LOW,
        default_enabled=True,
        channel_id="daily-digest",
        cap_priority=7,
        dedupe_window=timedelta(hours=24),
        ttl_seconds=43200,
        deep_link_pattern="/(tabs)/events",
        preference_field="daily_digest_enabled",
    ),
    NotificationCategory.WEEKLY_RECAP: CategoryConfig(
        urgency=Urgency.LOW,
        default_enabled=True,
        channel_id="weekly-recap",
        cap_priority=8,
        dedupe_window=timedelta(days=7),
        ttl_seconds=86400,
        deep_link_pattern="/(tabs)/leaderboard",
        preference_field="weekly_recap_enabled",
    ),
    NotificationCategory.WIN_STREAK: CategoryConfig(
        urgency=Urgency.LOW,
        default_enabled=True,
        channel_id="win-streak",
        cap_priority=9,
        dedupe_window=timedelta(hours=24),
        ttl_seconds=43200,
        deep_link_pattern="/(tabs)/matches",
        preference_field="win_streak_enabled",
    ),
    NotificationCategory.INACTIVITY: CategoryConfig(
        urgency=Urgency.LOW,
        default_enabled=True,
        channel_id="re-engagement",
        cap_priority=10,
        dedupe_window=timedelta(hours=48),
        ttl_seconds=86400,
        deep_link_pattern="/(tabs)/home",
        preference_field="inactivity_enabled",
    ),
})


def validate_registry(registry: Mapping[NotificationCategory, CategoryConfig] = CATEGORY_CONFIG) -> None:
    """
    Check the structural invariants of a category registry.

    Args:
        registry: Mapping to validate (defaults to the live registry)

    Raises:
        RuntimeError: If a category is missing, or priorities, channels or
            preference fields collide, or priorities do not follow urgency
    """
    missing = [c.value for c in NotificationCategory if c not in registry]
    if missing:
        raise RuntimeError(f"Categories missing from registry: {', '.join(missing)}")

    configs = list(registry.values())

    priorities = [c.cap_priority for c in configs]
    if any(p <= 0 for p in priorities):
        raise RuntimeError("cap_priority must be positive")
    if len(set(priorities)) != len(priorities):
        raise RuntimeError("cap_priority values must be unique")

    channels = [c.channel_id for c in configs]
    if len(set(channels)) != len(channels):
        raise RuntimeError("channel_id values must be unique")

    fields = [c.preference_field for c in configs]
    if len(set(fields)) != len(fields):
        raise RuntimeError("preference_field values must be unique")

    # Every HIGH priority must sort before every MEDIUM, and MEDIUM before LOW
    by_priority = sorted(configs, key=lambda c: c.cap_priority)
    ranks = [_URGENCY_RANK[c.urgency] for c in by_priority]
    if ranks != sorted(ranks):
        raise RuntimeError("cap_priority ordering must follow urgency (HIGH < MEDIUM < LOW)")


validate_registry()


def get_category_config(category: NotificationCategory) -> CategoryConfig:
    """Return the delivery policy for a category."""
    return CATEGORY_CONFIG[NotificationCategory(category)]


def get_urgency_for_category(category: NotificationCategory) -> Urgency:
    return get_category_config(category).urgency


def is_cap_exempt(category: NotificationCategory) -> bool:
    """HIGH urgency categories never count against the daily cap."""
    return get_urgency_for_category(category) == Urgency.HIGH


def build_deep_link(category: NotificationCategory, entity_id: Optional[str] = None) -> str:
    """
    Build the in-app route for a notification.

    Args:
        category: Notification category
        entity_id: Entity the notification points at (empty when absent)

    Returns:
        Deep-link path with "{entity_id}" substituted
    """
    pattern = get_category_config(category).deep_link_pattern
    return pattern.replace("{entity_id}", str(entity_id) if entity_id is not None else "")
