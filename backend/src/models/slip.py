"""
Slip and SlipPick models (read models for the scheduler).

A slip is a user's set of picks; each pick references one sports event.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from backend.src.models import Base


class SlipStatus(str, enum.Enum):
    """Lifecycle of a slip."""
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    WON = "WON"
    LOST = "LOST"
    VOID = "VOID"


class Slip(Base):
    """
    A user's slip.

    Attributes:
        user_id: Owning user
        status: SlipStatus value

    Relationships:
        picks: Picks on this slip (one-to-many)
    """

    __tablename__ = "slips"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), default=SlipStatus.DRAFT.value, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    picks = relationship("SlipPick", back_populates="slip")


class SlipPick(Base):
    """A single pick on a slip, referencing one sports event."""

    __tablename__ = "slip_picks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slip_id = Column(Integer, ForeignKey("slips.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("sports_events.id"), nullable=False, index=True)

    slip = relationship("Slip", back_populates="picks")
