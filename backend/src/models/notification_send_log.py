"""
NotificationSendLog model: the audit trail of every gatekeeper decision.

One row is written per device message handed to the push gateway, one FAILED
row when a user had no usable device, and one SUPPRESSED row for every request
the gatekeeper turned down. Receipt reconciliation is the only writer of the
SENT → DELIVERED | FAILED transition.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, JSON, Enum
from sqlalchemy.dialects.postgresql import JSONB

from backend.src.models import Base


class SendLogStatus(str, enum.Enum):
    """
    Send log status enumeration.

    - SENT: Gateway accepted the message and issued a ticket
    - DELIVERED: Receipt reported "ok"
    - FAILED: Gateway rejected the message, the request failed, or the
      receipt reported an error
    - SUPPRESSED: Gatekeeper declined to send (see suppression_reason)
    """
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    SUPPRESSED = "suppressed"


class NotificationSendLog(Base):
    """
    Record of a single notification decision or device message.

    Attributes:
        user_id: Recipient user
        category: Category name (NotificationCategory value)
        urgency: Urgency of the category at send time
        status: SendLogStatus
        suppression_reason: SendOutcome value for SUPPRESSED rows
        dedupe_key: Business-level dedupe key of the request
        template_id: Template used to render title and body
        entity_id: Domain entity the notification points at
        title / body: Rendered content
        expo_ticket_id: Ticket issued by the gateway (SENT rows)
        device_token: Exact token the message was addressed to
        expo_receipt_status: "ok" or the receipt error code
        redeliver_after: For quiet-hours suppressions, the UTC instant the
            user's quiet window ends (deferred redelivery state)
        metadata_json: Request metadata and gateway error details
        sent_at: When the gateway call was made

    Lifecycle:
        Created by the gatekeeper. SENT rows are resolved exactly once by
        receipt reconciliation.
    """

    __tablename__ = "notification_send_logs"

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
    status = Column(
        Enum(SendLogStatus, native_enum=False),
        nullable=False,
        default=SendLogStatus.SENT,
        index=True
    )
    suppression_reason = Column(String(40), nullable=True)

    # Request identity
    dedupe_key = Column(String(255), nullable=False, index=True)
    template_id = Column(String(64), nullable=False)
    entity_id = Column(String(64), nullable=True)

    # Rendered content
    title = Column(String(200), nullable=True)
    body = Column(String(500), nullable=True)

    # Gateway tracking
    expo_ticket_id = Column(String(64), nullable=True, index=True)
    device_token = Column(String(255), nullable=True)
    expo_receipt_status = Column(String(64), nullable=True)

    # Deferred redelivery
    redeliver_after = Column(DateTime, nullable=True)

    metadata_json = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=True)

    # Timestamps
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Receipt polling scans SENT rows with a ticket, oldest first
    __table_args__ = (
        Index("ix_notification_send_logs_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<NotificationSendLog(id={self.id}, user_id={self.user_id}, "
            f"category='{self.category}', status={self.status})>"
        )
