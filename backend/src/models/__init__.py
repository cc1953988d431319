"""
SQLAlchemy models for the notification core.

This module provides the declarative base class and imports all models
to ensure they are registered with SQLAlchemy's metadata.
"""

from sqlalchemy.orm import declarative_base

# All models inherit from this Base class
Base = declarative_base()


# Import all models here so they are registered with Base.metadata

# Users and their push settings
from backend.src.models.user import User, UserStatus
from backend.src.models.notification_preference import NotificationPreference
from backend.src.models.device_token import DeviceToken

# Gatekeeper audit trail
from backend.src.models.notification_send_log import NotificationSendLog, SendLogStatus

# In-app inbox
from backend.src.models.notification_inbox_item import NotificationInboxItem

# Domain read models used by the scheduler
from backend.src.models.sports_event import SportsEvent, EventStatus
from backend.src.models.slip import Slip, SlipPick, SlipStatus
from backend.src.models.match import Match, MatchStatus
from backend.src.models.leaderboard import (
    Leaderboard,
    LeaderboardEntry,
    LeaderboardStatus,
    LeaderboardTimeframe,
)

__all__ = [
    "Base",
    "User",
    "UserStatus",
    "NotificationPreference",
    "DeviceToken",
    "NotificationSendLog",
    "SendLogStatus",
    "NotificationInboxItem",
    "SportsEvent",
    "EventStatus",
    "Slip",
    "SlipPick",
    "SlipStatus",
    "Match",
    "MatchStatus",
    "Leaderboard",
    "LeaderboardEntry",
    "LeaderboardStatus",
    "LeaderboardTimeframe",
]
