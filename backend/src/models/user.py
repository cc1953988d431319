"""
User model as seen by the notification core.

Users are owned by the account subsystem. The notification core only reads
the fields it needs to target, localize and gate pushes: timezone, lifecycle
status, last activity and the current win streak.

Design Rationale:
- timezone is a raw IANA string as provided by the client; it is resolved
  (with a fallback) at read time, never trusted blindly
- status gates every scheduled job (only ACTIVE users are candidates)
- last_active_at drives the inactivity cohorts
- current_streak is maintained by settlement and read by the win-streak job
"""

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.orm import relationship

from backend.src.models import Base

if TYPE_CHECKING:
    from backend.src.models.device_token import DeviceToken
    from backend.src.models.notification_preference import NotificationPreference


class UserStatus(enum.Enum):
    """
    User account lifecycle status.

    State transitions:
    - active → suspended (moderation)
    - active → deleted (account closed)
    """
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class User(Base):
    """
    Application user (read model).

    Attributes:
        id: Primary key
        username: Display handle
        timezone: IANA timezone string (may be missing or invalid)
        status: Lifecycle status (only ACTIVE users receive scheduled pushes)
        last_active_at: Last time the user opened the app (UTC)
        current_streak: Consecutive settled wins
        created_at: Creation timestamp

    Relationships:
        preference: Notification preference row (one-to-one, optional)
        device_tokens: Registered push tokens (one-to-many)
    """

    __tablename__ = "users"

    # Primary key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    username = Column(String(50), unique=True, nullable=False, index=True)
    timezone = Column(String(64), nullable=True)

    # State
    status = Column(
        Enum(UserStatus, name="user_status", create_constraint=True),
        default=UserStatus.ACTIVE,
        nullable=False,
        index=True
    )
    last_active_at = Column(DateTime, nullable=True, index=True)
    current_streak = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    preference = relationship(
        "NotificationPreference",
        back_populates="user",
        uselist=False,
    )
    device_tokens = relationship(
        "DeviceToken",
        back_populates="user",
        lazy="dynamic",
    )

    @property
    def is_active_user(self) -> bool:
        """Check if the user can receive scheduled notifications."""
        return self.status == UserStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', status={self.status})>"
