"""
Event Repository.

Usage:
    repo = EventRepository(db)
    event = repo.find_with_season(event_id)
    current = repo.find_current_syncable()
"""
from datetime import datetime
from typing import Optional, List

from sqlalchemy.orm import joinedload

from app.models import Event
from app.repositories.base import BaseRepository
from app.utils.timezone import utcnow


class EventRepository(BaseRepository[Event]):
    """Repository for event lookups used by the sync trigger surface."""

    def __init__(self, db):
        super().__init__(Event, db)

    def find_with_season(self, event_id: str) -> Optional[Event]:
        """Load an event with its season eagerly attached."""
        return self.db.query(Event).options(
            joinedload(Event.season)
        ).filter(Event.id == event_id).first()

    def find_current_syncable(self, now: Optional[datetime] = None) -> List[Event]:
        """Events with a sync source whose start/end window contains ``now``."""
        now = now or utcnow()
        return self.db.query(Event).filter(
            Event.sync_source.isnot(None),
            Event.start_time <= now,
            Event.end_time >= now,
        ).order_by(Event.start_time).all()
