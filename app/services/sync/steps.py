"""
Sync step registry.

A step is a named, idempotent unit of lifecycle progression. It declares the
event statuses it applies to and an async ``run(ctx)`` that may mutate the
event and its children through ``ctx.db``. Steps never commit; the
orchestrator commits once per pass.

SYNC_STEPS is iterated in order:

| Step                 | Statuses                              | Fetch                    |
|----------------------|---------------------------------------|--------------------------|
| PopulateEventTeams   | NotStarted                            | teams                    |
| InitialSync          | NotStarted                            | -                        |
| LoadQualSchedule     | AwaitingQuals                         | qual schedule            |
| UpdateQualResults    | QualsInProgress, AwaitingAlliances    | qual results             |
| UpdateQualRankings   | QualsInProgress, AwaitingAlliances    | rankings                 |
| LoadAlliances        | AwaitingAlliances                     | alliances                |
| UpdatePlayoffResults | AwaitingPlayoffs, PlayoffsInProgress  | playoff schedule/results |
| DetectEventOver      | PlayoffsInProgress, WinnerDetermined  | awards                   |
"""
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, FrozenSet, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models import (
    Event, EventStatus, ScheduleDeviation, TournamentLevel,
)
from app.repositories import (
    AllianceRepository, EventRankingRepository, MatchRepository,
)
from app.services.clients.base import DataClient
from app.services.clients.models import ScheduledMatch
from app.services.event_teams_service import EventTeamsService
from app.services.sync.alliance_correlator import (
    PlayoffWinnerResolver, aggregate_finals, correlate,
)
from app.services.sync.match_reconciler import MatchReconciler, set_if_changed
from app.utils.timezone import resolve_time_zone, utc_to_local

logger = get_logger(__name__)

END_OF_DAY_GAP = timedelta(hours=8)
BREAK_GAP = timedelta(hours=0.7)
LUNCH_HOURS = range(11, 14)


@dataclass
class SyncContext:
    """Everything a step needs for one event during one pass."""
    db: Session
    event: Event
    data_client: DataClient


@dataclass(frozen=True)
class SyncStep:
    name: str
    applicable_statuses: FrozenSet[EventStatus]
    run: Callable[[SyncContext], Awaitable[None]]

    def applies_to(self, status: Optional[EventStatus]) -> bool:
        return status is not None and EventStatus(status) in self.applicable_statuses


# =============================================================================
# Pre-event
# =============================================================================

async def initial_sync(ctx: SyncContext) -> None:
    ctx.event.advance_status(EventStatus.AWAITING_QUALS)


async def populate_event_teams(ctx: SyncContext) -> None:
    await EventTeamsService(ctx.db).upsert_event_teams(ctx.event, ctx.data_client)


# =============================================================================
# Qualifications
# =============================================================================

async def load_qual_schedule(ctx: SyncContext) -> None:
    """Replace the qualification plays with the published schedule."""
    schedule = await ctx.data_client.get_qual_schedule(ctx.event)
    if not schedule:
        logger.info(f"No qualification schedule published yet for {ctx.event.code}")
        return

    event = ctx.event
    repo = MatchRepository(ctx.db)
    repo.flush()
    removed = repo.delete_for_event(event.id, TournamentLevel.QUALIFICATION)
    if removed:
        logger.info(f"Replacing {removed} qualification plays for {event.code}")

    ordered = sorted(schedule, key=lambda m: m.match_number)
    plays = repo.create_many([
        {
            "id": str(uuid.uuid4()),
            "event_id": event.id,
            "tournament_level": TournamentLevel.QUALIFICATION,
            "match_number": m.match_number,
            "play_number": 1,
            "red_alliance_teams": list(m.red_alliance_teams),
            "blue_alliance_teams": list(m.blue_alliance_teams),
            "scheduled_start_time": m.scheduled_start_time,
            "is_discarded": False,
        }
        for m in ordered
    ])
    # Deviations reference the new play ids
    repo.flush()

    for after_play, description in schedule_deviations(ordered, event.time_zone):
        ctx.db.add(ScheduleDeviation(
            id=str(uuid.uuid4()),
            event_id=event.id,
            description=description,
            after_match_id=plays[after_play].id,
        ))

    event.advance_status(EventStatus.QUALS_IN_PROGRESS)


def schedule_deviations(schedule: List[ScheduledMatch], time_zone: str) -> List[Tuple[int, str]]:
    """
    Gaps in a qualification schedule, as (index of the match before the gap, description).

    A gap over 8 hours is the end of a day; a gap over 0.7 hours is lunch if
    the match before it starts between 11:00 and 13:59 local time, otherwise
    a break.
    """
    tz = resolve_time_zone(time_zone)
    deviations = []
    for i, (current, following) in enumerate(zip(schedule, schedule[1:])):
        gap = following.scheduled_start_time - current.scheduled_start_time
        if gap > END_OF_DAY_GAP:
            deviations.append((i, "End of Day"))
        elif gap > BREAK_GAP:
            local_hour = utc_to_local(current.scheduled_start_time, tz).hour
            deviations.append((i, "Lunch" if local_hour in LUNCH_HOURS else "Break"))
    return deviations


async def update_qual_results(ctx: SyncContext) -> None:
    """
    Reconcile qualification results; also runs while awaiting alliances so late replays are picked up.

    Results for match numbers missing from the stored schedule are skipped.
    """
    event = ctx.event
    repo = MatchRepository(ctx.db)
    results = await ctx.data_client.get_qual_results(event)
    existing = repo.find_for_event(event.id, TournamentLevel.QUALIFICATION)

    MatchReconciler(ctx.db, event, TournamentLevel.QUALIFICATION).reconcile(
        existing, results, create_missing=False
    )
    repo.flush()

    current = [
        m for m in repo.find_for_event(event.id, TournamentLevel.QUALIFICATION)
        if not m.is_discarded
    ]
    if current and all(m.post_result_time is not None for m in current):
        event.advance_status(EventStatus.AWAITING_ALLIANCES)


async def update_qual_rankings(ctx: SyncContext) -> None:
    """Replace the ranking rows when the published set differs from the stored one."""
    event = ctx.event
    repo = EventRankingRepository(ctx.db)
    rankings = await ctx.data_client.get_qual_rankings(event)
    if not rankings:
        return

    incoming = {_ranking_key(r) for r in rankings}
    stored = {_ranking_key(r) for r in repo.find_for_event(event.id)}
    if incoming == stored:
        return

    repo.flush()
    repo.delete_for_event(event.id)
    repo.create_many([
        {
            "id": str(uuid.uuid4()),
            "event_id": event.id,
            "rank": r.rank,
            "team_number": r.team_number,
            "sort_orders": list(r.sort_orders),
            "wins": r.wins,
            "ties": r.ties,
            "losses": r.losses,
            "qual_average": r.qual_average,
            "disqualifications": r.disqualifications,
            "matches_played": r.matches_played,
        }
        for r in rankings
    ])
    logger.info(f"Replaced rankings for {event.code} ({len(rankings)} teams)")


def _ranking_key(r) -> tuple:
    """Comparable form of a ranking row (stored or fetched; both share field names)."""
    return (
        r.rank, r.team_number, tuple(r.sort_orders or ()), r.wins, r.ties, r.losses,
        r.qual_average, r.disqualifications, r.matches_played,
    )


# =============================================================================
# Playoffs
# =============================================================================

async def load_alliances(ctx: SyncContext) -> None:
    """Add, update and remove alliances by name."""
    event = ctx.event
    repo = AllianceRepository(ctx.db)
    api_alliances = await ctx.data_client.get_alliances(event)
    if not api_alliances:
        return

    stored = {a.name: a for a in repo.find_for_event(event.id)}
    incoming_names = set()
    for api_alliance in api_alliances:
        incoming_names.add(api_alliance.name)
        alliance = stored.get(api_alliance.name)
        if alliance is None:
            repo.create(
                id=str(uuid.uuid4()),
                event_id=event.id,
                name=api_alliance.name,
                team_numbers=list(api_alliance.team_numbers),
            )
        else:
            set_if_changed(alliance, "team_numbers", list(api_alliance.team_numbers))

    removed_ids = [a.id for name, a in stored.items() if name not in incoming_names]
    if removed_ids:
        _unbind_alliances(ctx.db, event, removed_ids)
        for name, alliance in stored.items():
            if name not in incoming_names:
                logger.info(f"Removing alliance '{name}' from {event.code}")
                repo.delete_instance(alliance)

    event.advance_status(EventStatus.AWAITING_PLAYOFFS)


def _unbind_alliances(db: Session, event: Event, alliance_ids: List[str]) -> None:
    """Clear references to removed alliances from non-discarded playoff plays so they are correlated again."""
    for play in MatchRepository(db).find_for_event(event.id, TournamentLevel.PLAYOFF):
        if play.is_discarded:
            continue
        if play.red_alliance_id in alliance_ids:
            play.red_alliance_id = None
        if play.blue_alliance_id in alliance_ids:
            play.blue_alliance_id = None


async def update_playoff_results(ctx: SyncContext) -> None:
    """
    Reconcile playoff plays, bind them to alliances and resolve winners.

    The tiebreak resolver is created at most once per run and only if a
    posted match has no source-reported winner.
    """
    event = ctx.event
    repo = MatchRepository(ctx.db)
    api_matches = await ctx.data_client.get_playoff_results(event)
    existing = repo.find_for_event(event.id, TournamentLevel.PLAYOFF)
    alliances = AllianceRepository(ctx.db).find_for_event(event.id)

    if api_matches:
        event.advance_status(EventStatus.PLAYOFFS_IN_PROGRESS)

    applied = MatchReconciler(ctx.db, event, TournamentLevel.PLAYOFF).reconcile(
        existing, api_matches, create_missing=True
    )

    resolver = PlayoffWinnerResolver(event, ctx.data_client.get_playoff_tiebreak)
    for api_match, play in applied:
        correlate(play, alliances)
        await resolver.resolve(play, api_match)

    repo.flush()
    winning_alliance_id = aggregate_finals(
        event, repo.find_for_event(event.id, TournamentLevel.PLAYOFF)
    )
    if winning_alliance_id is not None:
        set_if_changed(event, "winning_alliance_id", winning_alliance_id)
        event.advance_status(EventStatus.WINNER_DETERMINED)


async def detect_event_over(ctx: SyncContext) -> None:
    """A Winner/Winning award given to a team means the event is over."""
    awards = await ctx.data_client.get_awards(ctx.event)
    if any(a.is_event_winner for a in awards):
        ctx.event.advance_status(EventStatus.COMPLETED)


# =============================================================================
# Registry
# =============================================================================

SYNC_STEPS: Tuple[SyncStep, ...] = (
    # Roster first: InitialSync moves the event out of NotStarted
    SyncStep("PopulateEventTeams", frozenset({EventStatus.NOT_STARTED}), populate_event_teams),
    SyncStep("InitialSync", frozenset({EventStatus.NOT_STARTED}), initial_sync),
    SyncStep("LoadQualSchedule", frozenset({EventStatus.AWAITING_QUALS}), load_qual_schedule),
    SyncStep(
        "UpdateQualResults",
        frozenset({EventStatus.QUALS_IN_PROGRESS, EventStatus.AWAITING_ALLIANCES}),
        update_qual_results,
    ),
    SyncStep(
        "UpdateQualRankings",
        frozenset({EventStatus.QUALS_IN_PROGRESS, EventStatus.AWAITING_ALLIANCES}),
        update_qual_rankings,
    ),
    SyncStep("LoadAlliances", frozenset({EventStatus.AWAITING_ALLIANCES}), load_alliances),
    SyncStep(
        "UpdatePlayoffResults",
        frozenset({EventStatus.AWAITING_PLAYOFFS, EventStatus.PLAYOFFS_IN_PROGRESS}),
        update_playoff_results,
    ),
    SyncStep(
        "DetectEventOver",
        frozenset({EventStatus.PLAYOFFS_IN_PROGRESS, EventStatus.WINNER_DETERMINED}),
        detect_event_over,
    ),
)


def find_step(name: str, steps: Tuple[SyncStep, ...] = SYNC_STEPS) -> Optional[SyncStep]:
    for step in steps:
        if step.name == name:
            return step
    return None
