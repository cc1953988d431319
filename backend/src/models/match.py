"""
Match model (read model for the scheduler).

A head-to-head match between two users, each playing their own slip.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from backend.src.models import Base


class MatchStatus(str, enum.Enum):
    """Lifecycle of a head-to-head match."""
    PENDING = "pending"
    MATCHED = "matched"
    LOCKED = "locked"
    SETTLED = "settled"
    CANCELLED = "cancelled"


class Match(Base):
    """
    Head-to-head match.

    Attributes:
        creator_id / opponent_id: Participating users (opponent may be unset)
        creator_slip_id / opponent_slip_id: Each side's slip
        status: MatchStatus value
        slip_deadline_at: Last moment picks can be edited (UTC)
    """

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    opponent_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    creator_slip_id = Column(Integer, ForeignKey("slips.id"), nullable=True)
    opponent_slip_id = Column(Integer, ForeignKey("slips.id"), nullable=True)
    status = Column(String(20), default=MatchStatus.PENDING.value, nullable=False, index=True)
    slip_deadline_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
