"""Event sync orchestrator.

Drives one event through the step registry until a fixed point:

1. Check the event is set up for syncing (season with a level, sync source, code)
2. Repeatedly walk SYNC_STEPS in order, running every step not yet run in
   this pass whose statuses contain the event's current status
3. Stop after a walk that ran nothing; each step runs at most once per pass
4. Commit once; any step failure rolls the whole pass back
5. Stamp sync_as_of only when the pass changed something, so a repeat pass
   over unchanged source data writes nothing

Usage:
    service = EventSyncService(db)
    result = await service.sync_event(event)
    if not result.success:
        logger.warning(result.message)
"""
import time
from dataclasses import dataclass
from typing import Callable, Optional, Set, Tuple

from sqlalchemy import event as sa_event
from sqlalchemy.orm import Session

from app.core.logging import correlation_scope, get_logger
from app.core.metrics import record_step_run, record_sync_pass
from app.models import DataSource, Event
from app.services.clients.base import DataClient
from app.services.clients.registry import get_data_client
from app.services.sync.exceptions import AmbiguousWinnerError, SyncPreconditionError
from app.services.sync.steps import SYNC_STEPS, SyncContext, SyncStep, find_step
from app.utils.timezone import utcnow

logger = get_logger(__name__)


@dataclass
class EventSyncResult:
    success: bool
    message: Optional[str] = None


class SessionChangeTracker:
    """
    Notes whether a session wrote anything while the block runs.

    Covers flushed ORM changes and bulk UPDATE/DELETE statements, so a pass
    whose steps found nothing new leaves ``changed`` False.
    """

    def __init__(self, db: Session):
        self.db = db
        self.changed = False
        self._listeners = (
            ("before_flush", self._before_flush),
            ("do_orm_execute", self._on_execute),
        )

    def __enter__(self) -> "SessionChangeTracker":
        for name, fn in self._listeners:
            sa_event.listen(self.db, name, fn)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for name, fn in self._listeners:
            sa_event.remove(self.db, name, fn)

    def _before_flush(self, session, flush_context, instances) -> None:
        if session.new or session.deleted or any(session.is_modified(obj) for obj in session.dirty):
            self.changed = True

    def _on_execute(self, orm_execute_state) -> None:
        if orm_execute_state.is_update or orm_execute_state.is_delete:
            self.changed = True


class EventSyncService:
    """
    Runs sync passes for events on one database session.

    The session must not be shared with any other concurrently running pass.
    """

    def __init__(
        self,
        db: Session,
        client_resolver: Callable[[DataSource], DataClient] = get_data_client,
        steps: Tuple[SyncStep, ...] = SYNC_STEPS,
    ):
        """
        Initialize the sync service.

        Args:
            db: SQLAlchemy database session owned by this unit of work
            client_resolver: Maps a sync source to its data client
            steps: Ordered step registry
        """
        self.db = db
        self.client_resolver = client_resolver
        self.steps = steps

    # ========================================================================
    # Public API
    # ========================================================================

    async def sync_event(self, event: Event) -> EventSyncResult:
        """
        Run steps until the event's status stabilizes, then commit.

        Step failures do not raise; they come back as an unsuccessful result
        so batch callers can carry on with other events.

        Raises:
            SyncPreconditionError: event is not set up for syncing (nothing mutated)
            AmbiguousWinnerError: finals data names two winners (pass rolled back)
        """
        source = self._source_label(event)
        try:
            self._check_preconditions(event)
        except SyncPreconditionError:
            record_sync_pass(source, "precondition", 0.0)
            raise

        event_code = event.code
        data_client = self.client_resolver(event.sync_source)
        ctx = SyncContext(db=self.db, event=event, data_client=data_client)

        with correlation_scope(event_code), SessionChangeTracker(self.db) as changes:
            start = time.perf_counter()
            executed: Set[str] = set()
            current_step: Optional[str] = None
            try:
                progressed = True
                while progressed:
                    progressed = False
                    for step in self.steps:
                        if step.name in executed or not step.applies_to(event.status):
                            continue
                        current_step = step.name
                        executed.add(step.name)
                        progressed = True
                        await self._run_step(step, ctx)
                current_step = None

                if changes.changed:
                    event.sync_as_of = utcnow()
                self.db.commit()
            except AmbiguousWinnerError as e:
                self.db.rollback()
                record_sync_pass(source, "ambiguous_winner", time.perf_counter() - start)
                logger.critical(
                    f"Ambiguous finals outcome for event {event_code}, manual review required: {e}",
                    extra={"event_code": event_code, "step": current_step},
                )
                raise
            except Exception as e:
                self.db.rollback()
                record_sync_pass(source, "failed", time.perf_counter() - start)
                logger.error(
                    f"Sync of event {event_code} failed in step {current_step or 'commit'}: {e}",
                    exc_info=True,
                    extra={"event_code": event_code, "step": current_step},
                )
                return EventSyncResult(False, f"{current_step or 'commit'}: {type(e).__name__}: {e}")

            duration = time.perf_counter() - start
            record_sync_pass(source, "success", duration)
            logger.info(
                f"Synced event {event_code} in {duration:.2f}s "
                f"(steps: {', '.join(s.name for s in self.steps if s.name in executed) or 'none'}; "
                f"status: {event.status.value})",
                extra={"event_code": event_code},
            )
            return EventSyncResult(True)

    async def force_step(self, event: Event, step_name: str) -> EventSyncResult:
        """
        Run one named step regardless of the event's status, then commit.

        Operational escape hatch; the status gate is skipped but the
        commit-once discipline is the same as a full pass.
        """
        self._check_preconditions(event)

        step = find_step(step_name, self.steps)
        if step is None:
            return EventSyncResult(False, f"Unable to find sync step {step_name}")

        event_code = event.code
        ctx = SyncContext(db=self.db, event=event, data_client=self.client_resolver(event.sync_source))

        with correlation_scope(event_code), SessionChangeTracker(self.db) as changes:
            logger.warning(f"Forcing sync step {step.name} for event {event_code}")
            try:
                await self._run_step(step, ctx)
                if changes.changed:
                    event.sync_as_of = utcnow()
                self.db.commit()
            except AmbiguousWinnerError as e:
                self.db.rollback()
                logger.critical(
                    f"Ambiguous finals outcome for event {event_code}, manual review required: {e}",
                    extra={"event_code": event_code, "step": step.name},
                )
                raise
            except Exception as e:
                self.db.rollback()
                logger.error(
                    f"Forced step {step.name} failed for event {event_code}: {e}",
                    exc_info=True,
                    extra={"event_code": event_code, "step": step.name},
                )
                return EventSyncResult(False, f"{step.name}: {type(e).__name__}: {e}")

        return EventSyncResult(True)

    # ========================================================================
    # Internals
    # ========================================================================

    @staticmethod
    def _check_preconditions(event: Event) -> None:
        if event.season is None or not event.season.level:
            raise SyncPreconditionError("Event season data is missing")
        if event.sync_source is None or not event.code:
            raise SyncPreconditionError("Event not set up for syncing")

    async def _run_step(self, step: SyncStep, ctx: SyncContext) -> None:
        logger.info(
            f"Running sync step {step.name} for event code {ctx.event.code}",
            extra={"event_code": ctx.event.code, "step": step.name},
        )
        start = time.perf_counter()
        try:
            await step.run(ctx)
            # Later steps query what this one wrote
            self.db.flush()
        except Exception:
            record_step_run(step.name, "failed", time.perf_counter() - start)
            raise
        record_step_run(step.name, "success", time.perf_counter() - start)

    @staticmethod
    def _source_label(event: Event) -> str:
        return event.sync_source.value if event.sync_source is not None else "unknown"
