"""
Repository layer for data access.

Usage:
    from app.repositories import EventRepository, MatchRepository
    from app.core.database import SessionLocal

    db = SessionLocal()
    event = EventRepository(db).find_with_season(event_id)
    db.close()
"""

from app.repositories.base import BaseRepository
from app.repositories.event_repository import EventRepository
from app.repositories.match_repository import MatchRepository
from app.repositories.alliance_repository import AllianceRepository, EventRankingRepository
from app.repositories.event_team_repository import EventTeamRepository

__all__ = [
    "BaseRepository",
    "EventRepository",
    "MatchRepository",
    "AllianceRepository",
    "EventRankingRepository",
    "EventTeamRepository",
]
