"""
Leaderboard and LeaderboardEntry models (read models for the scheduler).

Boards are computed by the ranking subsystem; the scheduler reads the active
weekly board for recap stats and proximity nudges.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from backend.src.models import Base


class LeaderboardTimeframe(str, enum.Enum):
    """Aggregation window of a leaderboard."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    ALL_TIME = "ALL_TIME"


class LeaderboardStatus(str, enum.Enum):
    """Lifecycle of a leaderboard period."""
    ACTIVE = "active"
    CLOSED = "closed"


class Leaderboard(Base):
    """
    A leaderboard for one period.

    Relationships:
        entries: Ranked entries (one-to-many)
    """

    __tablename__ = "leaderboards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timeframe = Column(String(20), nullable=False, index=True)
    status = Column(String(20), default=LeaderboardStatus.ACTIVE.value, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    entries = relationship("LeaderboardEntry", back_populates="leaderboard")


class LeaderboardEntry(Base):
    """
    A user's position on a leaderboard.

    Attributes:
        rank: Current rank (1 = top)
        previous_rank: Rank at the previous computation (may be unset)
        score: Points
        wins / losses: Settled results within the period
    """

    __tablename__ = "leaderboard_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    leaderboard_id = Column(
        Integer,
        ForeignKey("leaderboards.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rank = Column(Integer, nullable=False)
    previous_rank = Column(Integer, nullable=True)
    score = Column(Float, default=0, nullable=False)
    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)

    leaderboard = relationship("Leaderboard", back_populates="entries")

    __table_args__ = (
        Index("ix_leaderboard_entries_board_rank", "leaderboard_id", "rank"),
        UniqueConstraint("leaderboard_id", "user_id", name="uq_leaderboard_entries_board_user"),
    )
