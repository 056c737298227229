"""
Database models for the event sync service.

An Event owns its Matches, Alliances, EventRankings, EventTeams and
ScheduleDeviations. During a sync pass the engine is the only writer for an
event; the status only ever moves forward through EVENT_STATUS_ORDER.

All DateTime columns hold naive UTC values.
"""
import enum
import logging
from typing import Optional

from sqlalchemy import (
    Column, String, Float, Integer, DateTime, ForeignKey, Boolean, Text,
    Index, JSON, Enum
)
from sqlalchemy.orm import relationship, declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


# =============================================================================
# ENUMS
# =============================================================================

class EventStatus(str, enum.Enum):
    NOT_STARTED = "NotStarted"
    AWAITING_QUALS = "AwaitingQuals"
    QUALS_IN_PROGRESS = "QualsInProgress"
    AWAITING_ALLIANCES = "AwaitingAlliances"
    AWAITING_PLAYOFFS = "AwaitingPlayoffs"
    PLAYOFFS_IN_PROGRESS = "PlayoffsInProgress"
    WINNER_DETERMINED = "WinnerDetermined"
    COMPLETED = "Completed"

    @property
    def ordinal(self) -> int:
        return EVENT_STATUS_ORDER.index(self)


EVENT_STATUS_ORDER = (
    EventStatus.NOT_STARTED,
    EventStatus.AWAITING_QUALS,
    EventStatus.QUALS_IN_PROGRESS,
    EventStatus.AWAITING_ALLIANCES,
    EventStatus.AWAITING_PLAYOFFS,
    EventStatus.PLAYOFFS_IN_PROGRESS,
    EventStatus.WINNER_DETERMINED,
    EventStatus.COMPLETED,
)


class TournamentLevel(str, enum.Enum):
    QUALIFICATION = "Qualification"
    PLAYOFF = "Playoff"


class MatchWinner(str, enum.Enum):
    RED = "Red"
    BLUE = "Blue"
    TRUE_TIE = "TrueTie"


class DataSource(str, enum.Enum):
    FRC_EVENTS = "FrcEvents"
    FTC_EVENTS = "FtcEvents"


class EventTeamStatus:
    NOT_ARRIVED = "NotArrived"
    DROPPED = "Dropped"


# =============================================================================
# SEASON
# =============================================================================

class Season(Base):
    """A competition season for one program level (FRC, FTC)."""
    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True)
    level = Column(String(10), nullable=True)  # 'FRC', 'FTC'
    name = Column(String(100), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)

    events = relationship("Event", back_populates="season")

    @property
    def api_season(self) -> str:
        """Season identifier used by the FIRST event APIs (the start year)."""
        return str(self.start_time.year)


# =============================================================================
# EVENT
# =============================================================================

class Event(Base):
    """
    One competition tracked by the system.

    ``status`` is only changed through ``advance_status`` so that it never
    moves backwards.
    """
    __tablename__ = "events"

    id = Column(String(36), primary_key=True)
    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=True, index=True)
    key = Column(String(50), nullable=False, unique=True)
    code = Column(String(20), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    sync_source = Column(Enum(DataSource, native_enum=False, length=20), nullable=True)
    is_official = Column(Boolean, nullable=False, default=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False, index=True)
    time_zone = Column(String(64), nullable=False, default="UTC")
    status = Column(
        Enum(EventStatus, native_enum=False, length=32),
        nullable=False,
        default=EventStatus.NOT_STARTED,
        index=True,
    )
    winning_alliance_id = Column(String(36), nullable=True)
    sync_as_of = Column(DateTime, nullable=True)

    season = relationship("Season", back_populates="events")
    matches = relationship("Match", back_populates="event", cascade="all, delete-orphan")
    alliances = relationship("Alliance", back_populates="event", cascade="all, delete-orphan")
    rankings = relationship("EventRanking", back_populates="event", cascade="all, delete-orphan")
    teams = relationship("EventTeam", back_populates="event", cascade="all, delete-orphan")

    def advance_status(self, new_status: EventStatus) -> bool:
        """
        Move the event forward to ``new_status``.

        Returns True if the status changed. Requests that would not move the
        event forward are ignored.
        """
        current = EventStatus(self.status) if self.status is not None else EventStatus.NOT_STARTED
        if new_status.ordinal <= current.ordinal:
            if new_status != current:
                logger.warning(
                    f"Ignoring backward status transition {current.value} -> {new_status.value} "
                    f"for event {self.code or self.id}"
                )
            return False

        logger.info(f"Event {self.code or self.id} status {current.value} -> {new_status.value}")
        self.status = new_status
        return True


# =============================================================================
# MATCH
# =============================================================================

class Match(Base):
    """
    One play of a match.

    A replayed match gets a new row with the next play_number; the previous
    row is flagged is_discarded and kept for audit.
    """
    __tablename__ = "matches"

    id = Column(String(36), primary_key=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    tournament_level = Column(Enum(TournamentLevel, native_enum=False, length=20), nullable=False)
    match_name = Column(String(50), nullable=True)
    match_number = Column(Integer, nullable=False)
    play_number = Column(Integer, nullable=False, default=1)

    red_alliance_teams = Column(JSON, nullable=True)
    blue_alliance_teams = Column(JSON, nullable=True)

    # Playoffs only
    red_alliance_id = Column(String(36), nullable=True)
    blue_alliance_id = Column(String(36), nullable=True)
    winner = Column(Enum(MatchWinner, native_enum=False, length=10), nullable=True)

    scheduled_start_time = Column(DateTime, nullable=True)
    actual_start_time = Column(DateTime, nullable=True)
    post_result_time = Column(DateTime, nullable=True)

    match_video_link = Column(Text, nullable=True)
    is_discarded = Column(Boolean, nullable=False, default=False)

    event = relationship("Event", back_populates="matches")

    __table_args__ = (
        Index('ix_matches_event_level_number', 'event_id', 'tournament_level', 'match_number'),
    )

    def alliance_id_for(self, winner: Optional[MatchWinner]) -> Optional[str]:
        """Alliance id on the winning side, if the winner is a side."""
        if winner == MatchWinner.RED:
            return self.red_alliance_id
        if winner == MatchWinner.BLUE:
            return self.blue_alliance_id
        return None


# =============================================================================
# ALLIANCE / RANKINGS / TEAMS
# =============================================================================

class Alliance(Base):
    """A named playoff alliance; identity is the name within an event."""
    __tablename__ = "alliances"

    id = Column(String(36), primary_key=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    team_numbers = Column(JSON, nullable=True)

    event = relationship("Event", back_populates="alliances")


class EventRanking(Base):
    """Qualification ranking row; the whole set for an event is replaced together."""
    __tablename__ = "event_rankings"

    id = Column(String(36), primary_key=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    rank = Column(Integer, nullable=False)
    team_number = Column(Integer, nullable=False)
    sort_orders = Column(JSON, nullable=True)
    wins = Column(Integer, nullable=True)
    ties = Column(Integer, nullable=True)
    losses = Column(Integer, nullable=True)
    qual_average = Column(Float, nullable=True)
    disqualifications = Column(Integer, nullable=True)
    matches_played = Column(Integer, nullable=True)

    event = relationship("Event", back_populates="rankings")


class EventTeam(Base):
    __tablename__ = "event_teams"

    id = Column(String(36), primary_key=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    team_number = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=EventTeamStatus.NOT_ARRIVED)
    notes = Column(Text, nullable=True)

    event = relationship("Event", back_populates="teams")


class ScheduleDeviation(Base):
    """A gap in the qualification schedule (end of day, lunch, break)."""
    __tablename__ = "schedule_deviations"

    id = Column(String(36), primary_key=True)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String(50), nullable=False)
    after_match_id = Column(String(36), ForeignKey("matches.id", ondelete="CASCADE"), nullable=True)
