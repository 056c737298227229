"""
Models Module

Usage:
    from app.models import Event, Match, EventStatus
"""
from app.models.models import (
    Base,
    # Enums
    EventStatus,
    EVENT_STATUS_ORDER,
    TournamentLevel,
    MatchWinner,
    DataSource,
    EventTeamStatus,
    # Tables
    Season,
    Event,
    Match,
    Alliance,
    EventRanking,
    EventTeam,
    ScheduleDeviation,
)

__all__ = [
    "Base",
    "EventStatus",
    "EVENT_STATUS_ORDER",
    "TournamentLevel",
    "MatchWinner",
    "DataSource",
    "EventTeamStatus",
    "Season",
    "Event",
    "Match",
    "Alliance",
    "EventRanking",
    "EventTeam",
    "ScheduleDeviation",
]
