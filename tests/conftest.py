"""
Shared pytest fixtures for the event sync test suite.

Environment is pinned before any app import so settings resolve to an
in-memory SQLite database with the scheduler disabled.
"""
import os
import sys
import uuid
from datetime import datetime, timedelta
from pathlib import Path
from typing import Generator, List, Optional
from unittest.mock import AsyncMock, Mock

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app.models import (  # noqa: E402
    Base, DataSource, Event, EventStatus, Match, Season, TournamentLevel,
)
from app.services.clients.base import DataClient  # noqa: E402
from app.services.clients.models import (  # noqa: E402
    ApiAlliance, MatchResult, PlayoffMatch, ScheduledMatch,
)
from app.services.clients.tiebreaks import NoopPlayoffTiebreak  # noqa: E402

# 09:00 local in America/Detroit (EST)
QUALS_START = datetime(2025, 3, 7, 14, 0)
FINALS_START = datetime(2025, 3, 8, 20, 0)


# ============================================================================
# Database
# ============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """In-memory database shared by every session opened during one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create fresh test database session."""
    session = session_factory()
    yield session
    session.close()


# ============================================================================
# Events
# ============================================================================

@pytest.fixture
def season(db_session: Session) -> Season:
    season = Season(
        id=2025,
        level="FRC",
        name="2025 FRC Season",
        start_time=datetime(2025, 1, 4),
        end_time=datetime(2025, 12, 31),
    )
    db_session.add(season)
    db_session.commit()
    return season


@pytest.fixture
def make_event(db_session: Session, season: Season):
    """Factory for events in the 2025 season; keyword arguments override defaults."""
    def _make(**overrides) -> Event:
        values = dict(
            id=str(uuid.uuid4()),
            season_id=season.id,
            key=f"2025{uuid.uuid4().hex[:8]}",
            code="MIKET",
            name="FIM District Kettering University Event",
            sync_source=DataSource.FRC_EVENTS,
            is_official=True,
            start_time=datetime(2025, 3, 6, 12, 0),
            end_time=datetime(2025, 3, 9, 3, 0),
            time_zone="America/Detroit",
            status=EventStatus.NOT_STARTED,
        )
        values.update(overrides)
        event = Event(**values)
        db_session.add(event)
        db_session.commit()
        return event

    return _make


@pytest.fixture
def event(make_event) -> Event:
    return make_event()


# ============================================================================
# Data client doubles and source data builders
# ============================================================================

def make_data_client(**returns) -> Mock:
    """
    Data client double whose fetches return the given values.

    Fetches not named return empty lists. ``tiebreak`` is what
    get_playoff_tiebreak hands out (a NoopPlayoffTiebreak by default).
    """
    tiebreak = returns.pop("tiebreak", None) or NoopPlayoffTiebreak()
    client = Mock(spec=DataClient)
    fetches = dict(
        get_event=None,
        get_district_events=[],
        get_teams_for_event=[],
        get_qual_schedule=[],
        get_qual_results=[],
        get_qual_rankings=[],
        get_alliances=[],
        get_playoff_results=[],
        get_awards=[],
        check_health=None,
    )
    fetches.update(returns)
    for name, value in fetches.items():
        setattr(client, name, AsyncMock(return_value=value))
    client.get_playoff_tiebreak = Mock(return_value=tiebreak)
    return client


def resolver_for(client):
    """Client resolver that hands out ``client`` for every source."""
    return lambda source: client


def qual_schedule(count: int, start: datetime = QUALS_START, spacing_minutes: int = 8) -> List[ScheduledMatch]:
    return [
        ScheduledMatch(
            match_number=n,
            scheduled_start_time=start + timedelta(minutes=spacing_minutes * (n - 1)),
            red_alliance_teams=[1000 + n, 2000 + n, 3000 + n],
            blue_alliance_teams=[4000 + n, 5000 + n, 6000 + n],
        )
        for n in range(1, count + 1)
    ]


def qual_results(match_numbers, start: datetime = QUALS_START, spacing_minutes: int = 8) -> List[MatchResult]:
    """Posted results that started exactly on schedule."""
    results = []
    for n in match_numbers:
        actual = start + timedelta(minutes=spacing_minutes * (n - 1))
        results.append(MatchResult(
            match_number=n,
            actual_start_time=actual,
            post_result_time=actual + timedelta(minutes=5),
        ))
    return results


def two_alliances() -> List[ApiAlliance]:
    return [
        ApiAlliance(name="Alliance 1", team_numbers=[33, 67, 1918, 5050]),
        ApiAlliance(name="Alliance 2", team_numbers=[254, 118, 2056, 7000]),
    ]


def finals_match(
    match_number: int,
    winner=None,
    name: Optional[str] = None,
    posted: bool = True,
    actual_start: Optional[datetime] = None,
) -> PlayoffMatch:
    """A finals match between the two alliances from two_alliances() (Alliance 1 on red)."""
    actual = actual_start or FINALS_START + timedelta(minutes=15 * match_number)
    return PlayoffMatch(
        match_number=match_number,
        match_name=name or f"Final {match_number}",
        scheduled_start_time=FINALS_START + timedelta(minutes=15 * match_number),
        actual_start_time=actual,
        post_result_time=actual + timedelta(minutes=4) if posted else None,
        red_alliance_teams=[33, 67, 1918],
        blue_alliance_teams=[254, 118, 2056],
        winner=winner,
    )


def plays_for(db: Session, event: Event, level: TournamentLevel) -> List[Match]:
    return db.query(Match).filter(
        Match.event_id == event.id,
        Match.tournament_level == level,
    ).order_by(Match.match_number, Match.play_number).all()


# ============================================================================
# API
# ============================================================================

@pytest.fixture
def data_client():
    """Data client double served to the API by the client resolver override."""
    return make_data_client()


@pytest.fixture
def test_client(db_session, session_factory, data_client):
    """
    FastAPI TestClient bound to the test database and data client double.

    The lifespan is not entered, so the scheduler never starts.
    """
    from fastapi.testclient import TestClient

    from app.api.routes.sync import get_client_resolver, get_dispatcher
    from app.core.database import get_db
    from app.main import app
    from app.services.sync.dispatcher import EventSyncDispatcher

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_client_resolver] = lambda: resolver_for(data_client)
    app.dependency_overrides[get_dispatcher] = lambda: EventSyncDispatcher(
        session_factory, resolver_for(data_client)
    )

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
