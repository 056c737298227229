"""Integration tests for EventSyncService.

Test Strategy:
1. Drive an event through its whole lifecycle pass by pass
2. Re-running a pass over unchanged data mutates nothing
3. Step failures roll the pass back and come back as an unsuccessful result
4. Ambiguous finals roll back and raise
5. Preconditions are checked before any step runs
6. force_step runs one step regardless of status

Each test follows the pattern:
- Given: Database with an event and a data client double
- When: sync_event() or force_step() is called
- Then: Correct result, status and database state
"""
import uuid
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy import event as sa_event
from sqlalchemy.orm import Session

from app.models import (
    Alliance, Event, EventRanking, EventStatus, EventTeam, Match, MatchWinner,
    TournamentLevel,
)
from app.services.clients.exceptions import TiebreakError
from app.services.clients.models import ApiTeam, Award, QualRanking
from app.services.sync.exceptions import AmbiguousWinnerError, SyncPreconditionError
from app.services.sync.orchestrator import EventSyncService
from app.services.sync.steps import SyncStep
from conftest import (
    finals_match, make_data_client, plays_for, qual_results, qual_schedule,
    resolver_for, two_alliances,
)


def seed_alliances(db: Session, event: Event):
    rows = [
        Alliance(id=str(uuid.uuid4()), event_id=event.id, name=a.name, team_numbers=a.team_numbers)
        for a in two_alliances()
    ]
    db.add_all(rows)
    db.commit()
    return rows


def track_mutations(db: Session):
    """Collect rows added, deleted or changed at every flush."""
    mutations = []

    def before_flush(session, flush_context, instances):
        mutations.extend(session.new)
        mutations.extend(session.deleted)
        mutations.extend(obj for obj in session.dirty if session.is_modified(obj))

    sa_event.listen(db, "before_flush", before_flush)
    return mutations


class TestEventSyncLifecycle:
    """End-to-end passes over a single event."""

    # Full lifecycle
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, db_session: Session, event: Event):
        """Should walk the event from NotStarted to Completed as data appears."""
        client = make_data_client(
            get_teams_for_event=[ApiTeam(team_number=33), ApiTeam(team_number=254)],
            get_qual_schedule=qual_schedule(10),
        )
        service = EventSyncService(db_session, client_resolver=resolver_for(client))

        # Schedule published, nothing played yet
        result = await service.sync_event(event)
        assert result.success is True
        assert event.status == EventStatus.QUALS_IN_PROGRESS
        assert len(plays_for(db_session, event, TournamentLevel.QUALIFICATION)) == 10
        assert db_session.query(EventTeam).filter_by(event_id=event.id).count() == 2
        assert event.sync_as_of is not None

        # All qualification results posted
        client.get_qual_results.return_value = qual_results(range(1, 11))
        assert (await service.sync_event(event)).success
        assert event.status == EventStatus.AWAITING_ALLIANCES

        # Alliance selection done
        client.get_alliances.return_value = two_alliances()
        assert (await service.sync_event(event)).success
        assert event.status == EventStatus.AWAITING_PLAYOFFS
        assert db_session.query(Alliance).filter_by(event_id=event.id).count() == 2

        # Finals swept by Alliance 1
        client.get_playoff_results.return_value = [
            finals_match(14, MatchWinner.RED),
            finals_match(15, MatchWinner.RED),
        ]
        assert (await service.sync_event(event)).success
        assert event.status == EventStatus.WINNER_DETERMINED
        alliance_1 = db_session.query(Alliance).filter_by(event_id=event.id, name="Alliance 1").one()
        assert event.winning_alliance_id == alliance_1.id

        # Awards posted
        client.get_awards.return_value = [Award(name="District Event Winner", team_number=33)]
        assert (await service.sync_event(event)).success
        assert event.status == EventStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_schedule_not_published(self, db_session: Session, event: Event):
        """Should stop at AwaitingQuals until a schedule appears."""
        client = make_data_client()

        result = await EventSyncService(db_session, resolver_for(client)).sync_event(event)

        assert result.success is True
        assert event.status == EventStatus.AWAITING_QUALS
        client.get_teams_for_event.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_split_finals_keep_playoffs_in_progress(self, db_session: Session, make_event):
        """Should not determine a winner at 1-1 with the third final unresolved."""
        event = make_event(status=EventStatus.AWAITING_PLAYOFFS)
        seed_alliances(db_session, event)
        client = make_data_client(get_playoff_results=[
            finals_match(14, MatchWinner.RED),
            finals_match(15, MatchWinner.BLUE),
            finals_match(16, posted=False),
        ])

        result = await EventSyncService(db_session, resolver_for(client)).sync_event(event)

        assert result.success is True
        assert event.status == EventStatus.PLAYOFFS_IN_PROGRESS
        assert event.winning_alliance_id is None

    # Idempotence and monotonicity
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_repeat_pass_during_quals_is_noop(self, db_session: Session, event: Event):
        """Should make no changes when qualification data has not changed."""
        client = make_data_client(
            get_teams_for_event=[ApiTeam(team_number=33)],
            get_qual_schedule=qual_schedule(6),
            get_qual_results=qual_results([1, 2, 3]),
            get_qual_rankings=[QualRanking(rank=1, team_number=33, sort_orders=[2.0, 1.0])],
        )
        service = EventSyncService(db_session, resolver_for(client))
        await service.sync_event(event)
        assert event.status == EventStatus.QUALS_IN_PROGRESS

        mutations = track_mutations(db_session)
        result = await service.sync_event(event)

        assert result.success is True
        assert mutations == []
        assert db_session.query(EventRanking).count() == 1

    @pytest.mark.asyncio
    async def test_sync_as_of_only_moves_when_data_changes(self, db_session: Session, event: Event):
        """Should keep the last sync stamp on a pass that found nothing new."""
        client = make_data_client(
            get_teams_for_event=[ApiTeam(team_number=33)],
            get_qual_schedule=qual_schedule(6),
        )
        service = EventSyncService(db_session, resolver_for(client))
        await service.sync_event(event)
        first_stamp = event.sync_as_of
        assert first_stamp is not None

        assert (await service.sync_event(event)).success
        assert event.sync_as_of == first_stamp

        client.get_qual_results.return_value = qual_results([1])
        assert (await service.sync_event(event)).success
        assert event.sync_as_of > first_stamp

    @pytest.mark.asyncio
    async def test_repeat_pass_during_playoffs_is_noop(self, db_session: Session, make_event):
        """Should make no changes when playoff data has not changed."""
        event = make_event(status=EventStatus.AWAITING_ALLIANCES)
        client = make_data_client(
            get_alliances=two_alliances(),
            get_playoff_results=[
                finals_match(14, MatchWinner.RED),
                finals_match(15, MatchWinner.BLUE),
                finals_match(16, posted=False),
            ],
        )
        service = EventSyncService(db_session, resolver_for(client))
        await service.sync_event(event)
        assert event.status == EventStatus.PLAYOFFS_IN_PROGRESS

        mutations = track_mutations(db_session)
        result = await service.sync_event(event)

        assert result.success is True
        assert mutations == []
        assert event.status == EventStatus.PLAYOFFS_IN_PROGRESS

    @pytest.mark.asyncio
    async def test_each_step_runs_once_per_pass(self, db_session: Session, event: Event):
        """Should run a step at most once even if it applies again after a transition."""
        runs = []

        async def record(ctx):
            runs.append("Record")

        async def advance(ctx):
            runs.append("Advance")
            ctx.event.advance_status(EventStatus.AWAITING_QUALS)

        async def after(ctx):
            runs.append("After")

        steps = (
            SyncStep("Record", frozenset({EventStatus.NOT_STARTED, EventStatus.AWAITING_QUALS}), record),
            SyncStep("After", frozenset({EventStatus.AWAITING_QUALS}), after),
            SyncStep("Advance", frozenset({EventStatus.NOT_STARTED}), advance),
        )
        service = EventSyncService(db_session, resolver_for(make_data_client()), steps=steps)

        result = await service.sync_event(event)

        assert result.success is True
        assert runs == ["Record", "Advance", "After"]

    def test_status_never_moves_backward(self, event: Event):
        """Should ignore requests to move the status backwards."""
        event.status = EventStatus.PLAYOFFS_IN_PROGRESS

        assert event.advance_status(EventStatus.AWAITING_QUALS) is False
        assert event.advance_status(EventStatus.PLAYOFFS_IN_PROGRESS) is False
        assert event.status == EventStatus.PLAYOFFS_IN_PROGRESS
        assert event.advance_status(EventStatus.COMPLETED) is True
        assert event.status == EventStatus.COMPLETED

    # Failure handling
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_step_failure_rolls_back_pass(self, db_session: Session, event: Event):
        """Should persist nothing when a later step fails."""
        client = make_data_client(
            get_teams_for_event=[ApiTeam(team_number=33)],
            get_qual_schedule=qual_schedule(5),
        )
        client.get_qual_results = AsyncMock(side_effect=RuntimeError("source unavailable"))

        result = await EventSyncService(db_session, resolver_for(client)).sync_event(event)

        assert result.success is False
        assert result.message == "UpdateQualResults: RuntimeError: source unavailable"
        assert event.status == EventStatus.NOT_STARTED
        assert event.sync_as_of is None
        assert db_session.query(Match).count() == 0
        assert db_session.query(EventTeam).count() == 0

    @pytest.mark.asyncio
    async def test_ambiguous_finals_raise_and_roll_back(self, db_session: Session, make_event):
        """Should raise and persist nothing when two alliances reach two finals wins."""
        event = make_event(status=EventStatus.AWAITING_PLAYOFFS)
        seed_alliances(db_session, event)
        client = make_data_client(get_playoff_results=[
            finals_match(14, MatchWinner.RED),
            finals_match(15, MatchWinner.RED),
            finals_match(16, MatchWinner.BLUE),
            finals_match(17, MatchWinner.BLUE, name="Overtime 1"),
        ])

        with pytest.raises(AmbiguousWinnerError):
            await EventSyncService(db_session, resolver_for(client)).sync_event(event)

        assert event.status == EventStatus.AWAITING_PLAYOFFS
        assert event.winning_alliance_id is None
        assert plays_for(db_session, event, TournamentLevel.PLAYOFF) == []

    @pytest.mark.asyncio
    async def test_tiebreak_failure_is_not_fatal(self, db_session: Session, make_event):
        """Should commit the pass and leave the tied match unresolved."""
        event = make_event(status=EventStatus.AWAITING_PLAYOFFS)
        seed_alliances(db_session, event)
        tiebreak = Mock()
        tiebreak.determine_match_winner = AsyncMock(side_effect=TiebreakError("no score details"))
        client = make_data_client(get_playoff_results=[finals_match(14)], tiebreak=tiebreak)

        result = await EventSyncService(db_session, resolver_for(client)).sync_event(event)

        assert result.success is True
        plays = plays_for(db_session, event, TournamentLevel.PLAYOFF)
        assert len(plays) == 1
        assert plays[0].winner is None
        assert event.status == EventStatus.PLAYOFFS_IN_PROGRESS

    # Preconditions
    # ─────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_missing_sync_source(self, db_session: Session, make_event):
        event = make_event(sync_source=None)
        client = make_data_client()

        with pytest.raises(SyncPreconditionError, match="Event not set up for syncing"):
            await EventSyncService(db_session, resolver_for(client)).sync_event(event)

        client.get_teams_for_event.assert_not_awaited()
        assert event.status == EventStatus.NOT_STARTED

    @pytest.mark.asyncio
    async def test_missing_event_code(self, db_session: Session, make_event):
        event = make_event(code=None)

        with pytest.raises(SyncPreconditionError, match="Event not set up for syncing"):
            await EventSyncService(db_session, resolver_for(make_data_client())).sync_event(event)

    @pytest.mark.asyncio
    async def test_missing_season_level(self, db_session: Session, event: Event):
        event.season.level = None

        with pytest.raises(SyncPreconditionError, match="Event season data is missing"):
            await EventSyncService(db_session, resolver_for(make_data_client())).sync_event(event)


class TestForceStep:

    @pytest.mark.asyncio
    async def test_unknown_step(self, db_session: Session, event: Event):
        result = await EventSyncService(db_session, resolver_for(make_data_client())).force_step(event, "Bogus")

        assert result.success is False
        assert result.message == "Unable to find sync step Bogus"

    @pytest.mark.asyncio
    async def test_runs_regardless_of_status(self, db_session: Session, make_event):
        """Should run a step even when the event's status is outside its set."""
        event = make_event(status=EventStatus.AWAITING_PLAYOFFS)
        client = make_data_client(get_qual_rankings=[QualRanking(rank=1, team_number=33)])

        result = await EventSyncService(db_session, resolver_for(client)).force_step(event, "UpdateQualRankings")

        assert result.success is True
        assert db_session.query(EventRanking).filter_by(event_id=event.id).count() == 1
        assert event.status == EventStatus.AWAITING_PLAYOFFS
        assert event.sync_as_of is not None

    @pytest.mark.asyncio
    async def test_forced_step_without_changes_keeps_stamp(self, db_session: Session, event: Event):
        client = make_data_client(get_qual_rankings=[])

        result = await EventSyncService(db_session, resolver_for(client)).force_step(event, "UpdateQualRankings")

        assert result.success is True
        assert event.sync_as_of is None

    @pytest.mark.asyncio
    async def test_forced_step_failure_rolls_back(self, db_session: Session, event: Event):
        client = make_data_client()
        client.get_qual_schedule = AsyncMock(side_effect=ValueError("bad payload"))

        result = await EventSyncService(db_session, resolver_for(client)).force_step(event, "LoadQualSchedule")

        assert result.success is False
        assert result.message == "LoadQualSchedule: ValueError: bad payload"
        assert event.status == EventStatus.NOT_STARTED
