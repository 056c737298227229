"""
Event team roster repository.
"""
from typing import List

from app.models import EventTeam
from app.repositories.base import BaseRepository


class EventTeamRepository(BaseRepository[EventTeam]):
    def __init__(self, db):
        super().__init__(EventTeam, db)

    def find_for_event(self, event_id: str) -> List[EventTeam]:
        return self.where(EventTeam.event_id == event_id, order_by=EventTeam.team_number)
