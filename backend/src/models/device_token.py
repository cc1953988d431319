"""
DeviceToken model for Expo push tokens.

Stores one Expo push token per device. Tokens are registered by the mobile
client; the notification core only reads them and soft-deletes them when the
gateway reports the device as unregistered.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from backend.src.models import Base


class DeviceToken(Base):
    """
    Expo push token for a specific user device.

    Attributes:
        token: Expo push token ("ExponentPushToken[...]"), globally unique
        platform: "ios" or "android"
        is_active: False once the gateway reported DeviceNotRegistered
        last_used_at: Last time the app refreshed this token
        deactivated_at: When the token was soft-deleted

    Lifecycle:
        Created when the user grants push permission on a device.
        Deactivated (never hard-deleted) on DeviceNotRegistered receipts.

    Relationships:
        user: Owning User (many-to-one)
    """

    __tablename__ = "user_device_tokens"

    # Primary key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Owning user
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Token data
    token = Column(String(255), nullable=False, unique=True)
    platform = Column(String(20), nullable=True)

    # State
    is_active = Column(Boolean, default=True, nullable=False)
    last_used_at = Column(DateTime, default=datetime.utcnow, nullable=True)
    deactivated_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="device_tokens")

    __table_args__ = (
        Index("ix_user_device_tokens_user_active", "user_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<DeviceToken(id={self.id}, user_id={self.user_id}, active={self.is_active})>"
