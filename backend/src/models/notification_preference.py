"""
NotificationPreference model for per-user push settings.

Owned by the settings API; the notification core reads it only. A user
without a row is treated as having every default below.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from backend.src.models import Base


DEFAULT_QUIET_HOURS_START = "22:00"
DEFAULT_QUIET_HOURS_END = "08:00"
DEFAULT_DIGEST_TIME_LOCAL = "18:00"
DEFAULT_RECAP_DAY_OF_WEEK = 1  # Monday (ISO)


class NotificationPreference(Base):
    """
    Per-user notification preferences.

    Attributes:
        user_id: Owning user (unique)
        all_notifications_enabled: Master switch; False suppresses everything
        *_enabled: One toggle per notification category (named by the
            category registry's preference_field)
        quiet_hours_enabled: Whether the quiet window applies at all
        quiet_hours_start / quiet_hours_end: "HH:mm" in the user's local time;
            start > end denotes an overnight window, start == end is empty
        digest_time_local: "HH:mm" local hour for the daily digest
        recap_day_of_week: ISO weekday (1 = Monday) for the weekly recap

    Relationships:
        user: Owning User (one-to-one)
    """

    __tablename__ = "notification_preferences"

    # Primary key
    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True
    )

    # Master switch
    all_notifications_enabled = Column(Boolean, default=True, nullable=False)

    # Category toggles
    settlement_enabled = Column(Boolean, default=True, nullable=False)
    pvp_challenge_enabled = Column(Boolean, default=True, nullable=False)
    slip_expiring_enabled = Column(Boolean, default=True, nullable=False)
    game_reminder_enabled = Column(Boolean, default=True, nullable=False)
    social_enabled = Column(Boolean, default=True, nullable=False)
    leaderboard_enabled = Column(Boolean, default=True, nullable=False)
    daily_digest_enabled = Column(Boolean, default=True, nullable=False)
    weekly_recap_enabled = Column(Boolean, default=True, nullable=False)
    win_streak_enabled = Column(Boolean, default=True, nullable=False)
    inactivity_enabled = Column(Boolean, default=True, nullable=False)

    # Quiet hours
    quiet_hours_enabled = Column(Boolean, default=True, nullable=False)
    quiet_hours_start = Column(String(5), default=DEFAULT_QUIET_HOURS_START, nullable=False)
    quiet_hours_end = Column(String(5), default=DEFAULT_QUIET_HOURS_END, nullable=False)

    # Scheduled content
    digest_time_local = Column(String(5), default=DEFAULT_DIGEST_TIME_LOCAL, nullable=False)
    recap_day_of_week = Column(Integer, default=DEFAULT_RECAP_DAY_OF_WEEK, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    user = relationship("User", back_populates="preference")
