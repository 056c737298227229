"""Event sync API routes.

Thin trigger surface over the sync engine:
- Sync one event
- Force one named step on an event
- Sync an event's team roster
- Sync every event whose window contains now
"""
import logging
from typing import Callable, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models import DataSource, Event
from app.repositories import EventRepository
from app.services.clients.base import DataClient
from app.services.clients.registry import get_data_client
from app.services.event_teams_service import EventTeamsService
from app.services.sync.dispatcher import EventSyncDispatcher
from app.services.sync.exceptions import AmbiguousWinnerError, SyncPreconditionError
from app.services.sync.orchestrator import EventSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/event-sync", tags=["event-sync"])


def get_client_resolver() -> Callable[[DataSource], DataClient]:
    """Dependency mapping a sync source to its data client."""
    return get_data_client


def get_sync_service(
    db: Session = Depends(get_db),
    client_resolver: Callable[[DataSource], DataClient] = Depends(get_client_resolver),
) -> EventSyncService:
    """Dependency to get a sync service bound to the request's session."""
    return EventSyncService(db, client_resolver)


def get_dispatcher(
    client_resolver: Callable[[DataSource], DataClient] = Depends(get_client_resolver),
) -> EventSyncDispatcher:
    """Dependency to get the batch dispatcher (one session per event)."""
    return EventSyncDispatcher(client_resolver=client_resolver)


def _load_event(db: Session, event_id: str) -> Event:
    event = EventRepository(db).find_with_season(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail=f"Event {event_id} not found")
    return event


@router.put("/current")
async def sync_current_events(
    dispatcher: EventSyncDispatcher = Depends(get_dispatcher)
) -> Dict:
    """
    Sync all events that have a sync source and are currently running.

    Returns success only if every event synced; failed events are listed
    as "<event id> - <message>" lines in message.
    """
    result = await dispatcher.sync_current_events()
    return {
        "success": result.success,
        "message": result.message,
        "failures": result.failures,
    }


@router.put("/{event_id}")
async def sync_event(
    event_id: str,
    db: Session = Depends(get_db),
    service: EventSyncService = Depends(get_sync_service)
) -> Dict:
    """
    Run a full sync pass for one event.

    Raises:
        404: Unknown event
        400: Event is not set up for syncing
        409: Finals results name more than one winner
    """
    event = _load_event(db, event_id)
    try:
        result = await service.sync_event(event)
    except SyncPreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AmbiguousWinnerError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"success": result.success, "message": result.message}


@router.put("/{event_id}/force/{step_name}")
async def force_sync_step(
    event_id: str,
    step_name: str,
    db: Session = Depends(get_db),
    service: EventSyncService = Depends(get_sync_service)
) -> Dict:
    """Run one named sync step for an event regardless of its status."""
    event = _load_event(db, event_id)
    try:
        result = await service.force_step(event, step_name)
    except SyncPreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AmbiguousWinnerError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"success": result.success, "message": result.message}


@router.put("/{event_id}/teams")
async def sync_event_teams(
    event_id: str,
    db: Session = Depends(get_db),
    client_resolver: Callable[[DataSource], DataClient] = Depends(get_client_resolver)
) -> Dict:
    """Sync only the team roster of an event."""
    event = _load_event(db, event_id)
    if not event.code or event.sync_source is None:
        raise HTTPException(status_code=400, detail="Event does not have a sync source")

    try:
        counts = await EventTeamsService(db).upsert_event_teams(event, client_resolver(event.sync_source))
    except SyncPreconditionError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        db.rollback()
        raise
    db.commit()

    logger.info(f"Roster sync for {event.code}: {counts}")
    return {"success": True, "added": counts["added"], "dropped": counts["dropped"]}
