"""
Event roster service.

Keeps the EventTeam rows of an event in line with the source's team list:
teams new to the source are added as NotArrived, teams that disappeared from
it are marked Dropped. Rows are never deleted, so notes and check-in status
survive roster churn.
"""
import uuid
from typing import Dict

from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models import Event, EventTeam, EventTeamStatus
from app.repositories import EventTeamRepository
from app.services.sync.exceptions import SyncPreconditionError

logger = get_logger(__name__)


class EventTeamsService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = EventTeamRepository(db)

    async def upsert_event_teams(self, event: Event, data_client) -> Dict[str, int]:
        """
        Sync the roster of ``event`` from ``data_client``.

        Does not commit.

        Returns:
            Dict with counts: added, dropped
        """
        if not event.code:
            raise SyncPreconditionError("Event code is required to populate teams")
        if event.season is None:
            raise SyncPreconditionError("Season must be included to populate teams")

        existing = self.repo.find_for_event(event.id)
        api_teams = await data_client.get_teams_for_event(event.season, event.code)
        api_numbers = {t.team_number for t in api_teams}
        existing_numbers = {t.team_number for t in existing}

        dropped = 0
        for team in existing:
            if team.team_number not in api_numbers and team.status != EventTeamStatus.DROPPED:
                team.status = EventTeamStatus.DROPPED
                dropped += 1

        added = 0
        for number in sorted(api_numbers - existing_numbers):
            self.repo.create(
                id=str(uuid.uuid4()),
                event_id=event.id,
                team_number=number,
                status=EventTeamStatus.NOT_ARRIVED,
                notes=None,
            )
            added += 1

        if added or dropped:
            logger.info(
                f"Event {event.code} roster: {added} added, {dropped} dropped",
                extra={"event_code": event.code},
            )
        return {"added": added, "dropped": dropped}
