"""
Alliance and ranking repositories.
"""
from typing import List

from app.models import Alliance, EventRanking
from app.repositories.base import BaseRepository


class AllianceRepository(BaseRepository[Alliance]):
    def __init__(self, db):
        super().__init__(Alliance, db)

    def find_for_event(self, event_id: str) -> List[Alliance]:
        return self.where(Alliance.event_id == event_id, order_by=Alliance.name)


class EventRankingRepository(BaseRepository[EventRanking]):
    def __init__(self, db):
        super().__init__(EventRanking, db)

    def find_for_event(self, event_id: str) -> List[EventRanking]:
        return self.where(EventRanking.event_id == event_id, order_by=EventRanking.rank)

    def delete_for_event(self, event_id: str) -> int:
        return self.db.query(EventRanking).filter(
            EventRanking.event_id == event_id
        ).delete(synchronize_session="fetch")
