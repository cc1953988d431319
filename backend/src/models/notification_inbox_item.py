"""
NotificationInboxItem model: the in-app notification inbox.

An item is written when a notification is dispatched, when it is held back
by quiet hours, and when a HIGH or MEDIUM urgency notification hits the daily
cap. The app reads these when it next opens, independent of push delivery.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index

from backend.src.models import Base


class NotificationInboxItem(Base):
    """
    In-app inbox entry for one user.

    Attributes:
        user_id: Recipient user
        category: Category name (NotificationCategory value)
        urgency: Urgency of the category at write time
        title / body: Rendered content
        icon_type: Client icon variant from the template
        entity_id: Domain entity the item points at
        deep_link_url: In-app route opened on tap
        read_at: When the user viewed the item (null = unread)
        expires_at: After this instant the item is no longer shown

    Lifecycle:
        Created by the gatekeeper. read_at is set by the app.
    """

    __tablename__ = "notification_inbox_items"

    # Primary key
    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Classification
    category = Column(String(30), nullable=False)
    urgency = Column(String(10), nullable=False)

    # Content
    title = Column(String(200), nullable=False)
    body = Column(String(500), nullable=False)
    icon_type = Column(String(30), nullable=True)
    entity_id = Column(String(64), nullable=True)
    deep_link_url = Column(String(255), nullable=True)

    # Read tracking
    read_at = Column(DateTime, nullable=True)

    # Timestamps
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Unread listing per user, newest first
    __table_args__ = (
        Index(
            "ix_notification_inbox_items_user_unread",
            "user_id",
            "read_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationInboxItem(id={self.id}, user_id={self.user_id}, "
            f"category='{self.category}')>"
        )
