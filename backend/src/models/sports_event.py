"""
SportsEvent model (read model for the scheduler).

Events are ingested by the odds/events subsystem. The scheduler only queries
them by status and start time.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Index

from backend.src.models import Base


class EventStatus(str, enum.Enum):
    """Lifecycle of a sports event."""
    SCHEDULED = "SCHEDULED"
    LIVE = "LIVE"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"


class SportsEvent(Base):
    """
    A scheduled sports event.

    Attributes:
        sport: Sport key (e.g., "NFL")
        home_team_name / away_team_name: Display names
        status: EventStatus value
        scheduled_at: Start time (UTC)
    """

    __tablename__ = "sports_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sport = Column(String(20), nullable=True)
    home_team_name = Column(String(100), nullable=False)
    away_team_name = Column(String(100), nullable=False)
    status = Column(String(20), default=EventStatus.SCHEDULED.value, nullable=False)
    scheduled_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_sports_events_status_scheduled", "status", "scheduled_at"),
    )
