"""
Concurrent dispatcher for syncing many events.

Each event is synced in its own unit of work with its own session; at most
``max_parallelism`` units run at a time. One event failing never stops the
others, and the batch reports every failure by event id.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.logging import get_logger
from app.models import DataSource
from app.repositories import EventRepository
from app.services.clients.base import DataClient
from app.services.clients.registry import get_data_client
from app.services.sync.exceptions import EventSyncError
from app.services.sync.orchestrator import EventSyncService

logger = get_logger(__name__)


@dataclass
class BatchSyncResult:
    success: bool
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def message(self) -> Optional[str]:
        if not self.failures:
            return None
        return "\n".join(f"{event_id} - {message}" for event_id, message in self.failures.items())


class EventSyncDispatcher:
    """
    Syncs a batch of events with bounded parallelism.

    Usage:
        dispatcher = EventSyncDispatcher()
        result = await dispatcher.sync_current_events()
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        client_resolver: Callable[[DataSource], DataClient] = get_data_client,
        max_parallelism: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.client_resolver = client_resolver
        self.max_parallelism = max_parallelism or settings.SYNC_MAX_PARALLELISM

    async def sync_current_events(self, now: Optional[datetime] = None) -> BatchSyncResult:
        """Sync every event with a sync source whose start/end window contains now."""
        db = self.session_factory()
        try:
            event_ids = [e.id for e in EventRepository(db).find_current_syncable(now)]
        finally:
            db.close()

        logger.info(f"Syncing {len(event_ids)} current events")
        return await self.sync_events(event_ids)

    async def sync_events(self, event_ids: Iterable[str]) -> BatchSyncResult:
        event_ids = list(event_ids)
        semaphore = asyncio.Semaphore(self.max_parallelism)
        outcomes = await asyncio.gather(*(self._sync_one(event_id, semaphore) for event_id in event_ids))

        failures = {event_id: message for event_id, message in zip(event_ids, outcomes) if message is not None}
        for event_id, message in failures.items():
            logger.warning(f"Sync for event {event_id} failed: {message}")

        return BatchSyncResult(success=not failures, failures=failures)

    async def _sync_one(self, event_id: str, semaphore: asyncio.Semaphore) -> Optional[str]:
        """Sync one event in its own session; returns a failure message or None."""
        async with semaphore:
            db = self.session_factory()
            try:
                event = EventRepository(db).find_with_season(event_id)
                if event is None:
                    return "Event not found"

                result = await EventSyncService(db, self.client_resolver).sync_event(event)
                if result.success:
                    return None
                return result.message or "No message provided"
            except EventSyncError as e:
                return str(e)
            except Exception as e:
                logger.error(f"Unexpected error syncing event {event_id}: {e}", exc_info=True)
                return f"{type(e).__name__}: {e}"
            finally:
                db.close()
