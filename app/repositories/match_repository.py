"""
Match Repository.

Plays are returned in (match_number, play_number) order so callers can pick
the latest play of a match by taking the last one.
"""
from typing import List

from app.models import Match, ScheduleDeviation, TournamentLevel
from app.repositories.base import BaseRepository


class MatchRepository(BaseRepository[Match]):
    """Repository for match plays of one event."""

    def __init__(self, db):
        super().__init__(Match, db)

    def find_for_event(self, event_id: str, level: TournamentLevel) -> List[Match]:
        """All plays (including discarded ones) for an event and level."""
        return self.db.query(Match).filter(
            Match.event_id == event_id,
            Match.tournament_level == level,
        ).order_by(Match.match_number, Match.play_number).all()

    def delete_for_event(self, event_id: str, level: TournamentLevel) -> int:
        """Delete every play of a level along with schedule deviations that reference them."""
        match_ids = [
            row.id for row in self.db.query(Match.id).filter(
                Match.event_id == event_id,
                Match.tournament_level == level,
            )
        ]
        if not match_ids:
            return 0

        self.db.query(ScheduleDeviation).filter(
            ScheduleDeviation.after_match_id.in_(match_ids)
        ).delete(synchronize_session="fetch")
        return self.db.query(Match).filter(
            Match.id.in_(match_ids)
        ).delete(synchronize_session="fetch")
