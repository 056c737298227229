"""
Normalized data returned by every event data client.

All datetimes are naive UTC. Team lists are flat, ordered and free of empty
(null or zero) slots.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from app.models import MatchWinner


@dataclass
class ApiEvent:
    """An event as published by a data source."""
    event_code: str
    name: str
    start_time: datetime
    end_time: datetime
    time_zone: str  # IANA id
    city: Optional[str] = None
    district_code: Optional[str] = None


@dataclass
class ApiTeam:
    team_number: int
    nickname: Optional[str] = None
    full_name: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    country: Optional[str] = None


@dataclass
class ScheduledMatch:
    """One qualification match from the published schedule."""
    match_number: int
    scheduled_start_time: datetime
    red_alliance_teams: List[int] = field(default_factory=list)
    blue_alliance_teams: List[int] = field(default_factory=list)


@dataclass
class MatchResult:
    """Timing data for a qualification match that has been played (or started)."""
    match_number: int
    actual_start_time: Optional[datetime] = None
    post_result_time: Optional[datetime] = None
    match_video_link: Optional[str] = None


@dataclass
class PlayoffMatch:
    """
    A playoff match merged from the playoff schedule and results.

    Team lists are None when the source has not assigned teams yet.
    """
    match_number: int
    match_name: Optional[str] = None
    scheduled_start_time: Optional[datetime] = None
    actual_start_time: Optional[datetime] = None
    post_result_time: Optional[datetime] = None
    red_alliance_teams: Optional[List[int]] = None
    blue_alliance_teams: Optional[List[int]] = None
    winner: Optional[MatchWinner] = None
    match_video_link: Optional[str] = None


@dataclass
class QualRanking:
    rank: int
    team_number: int
    sort_orders: List[float] = field(default_factory=list)  # sortOrder1..6
    wins: Optional[int] = None
    ties: Optional[int] = None
    losses: Optional[int] = None
    qual_average: Optional[float] = None
    disqualifications: Optional[int] = None
    matches_played: Optional[int] = None


@dataclass
class ApiAlliance:
    name: str
    team_numbers: List[int] = field(default_factory=list)


@dataclass
class Award:
    name: str
    team_number: Optional[int] = None

    @property
    def is_event_winner(self) -> bool:
        """Winner/Winning awards given to a team mark the event as over."""
        if self.team_number is None:
            return False
        return "Winner" in self.name or "Winning" in self.name
