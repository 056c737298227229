"""
FTC Events API client (v2.0).

Differs from FRC Events in a few places:
- two stations per side
- playoff matches are identified by ``series``
- alliances carry a ``backupReplaced`` slot
- event end dates are midnight of the last day
- no tiebreak details are published
"""
import asyncio
from typing import Any, List, Optional

from app.models import DataSource, Event, Season
from app.services.clients.base import RestDataClient, response_collection
from app.services.clients.models import (
    ApiAlliance, ApiEvent, ApiTeam, Award, MatchResult, PlayoffMatch,
    QualRanking, ScheduledMatch,
)
from app.services.clients.tiebreaks import NoopPlayoffTiebreak, PlayoffTiebreak

RED_STATIONS = ("Red1", "Red2")
BLUE_STATIONS = ("Blue1", "Blue2")

ALLIANCE_SLOTS = ("captain", "round1", "round2", "round3", "backup", "backupReplaced")


class FtcEventsDataClient(RestDataClient):
    source = DataSource.FTC_EVENTS

    QUALIFICATION = "qual"
    PLAYOFF = "playoff"

    def _encode_credentials(self, api_key: str) -> str:
        # FTC Events only accepts the lowercased key
        return super()._encode_credentials(api_key.lower())

    async def _events(self, season: Season, event_code: Optional[str] = None) -> List[ApiEvent]:
        params = {"eventCode": event_code} if event_code else None
        payload = await self._get_json(self._endpoint(season.api_season, "events"), params)
        return self._parse_events(payload, end_of_day_adjust=True, district_field="regionCode")

    async def get_event(self, season: Season, event_code: str) -> Optional[ApiEvent]:
        events = await self._events(season, event_code)
        return events[0] if len(events) == 1 else None

    async def get_district_events(self, season: Season, district_code: str) -> List[ApiEvent]:
        # No server-side filter; regions stand in for districts
        return [e for e in await self._events(season) if e.district_code == district_code]

    async def get_teams_for_event(self, season: Season, event_code: str) -> List[ApiTeam]:
        payload = await self._get_json(self._endpoint(season.api_season, "teams"), {"eventCode": event_code})
        return self._parse_teams(payload)

    async def get_qual_schedule(self, event: Event) -> List[ScheduledMatch]:
        payload = await self._get_json(
            self._endpoint(self._season(event), "schedule", event.code),
            {"tournamentLevel": self.QUALIFICATION},
        )
        return self._parse_qual_schedule(payload, self._event_tz(event), (RED_STATIONS, BLUE_STATIONS))

    async def get_qual_results(self, event: Event) -> List[MatchResult]:
        payload = await self._get_json(
            self._endpoint(self._season(event), "matches", event.code),
            {"tournamentLevel": self.QUALIFICATION},
        )
        return self._parse_qual_results(payload, self._event_tz(event))

    async def get_qual_rankings(self, event: Event) -> List[QualRanking]:
        payload = await self._get_json(self._endpoint(self._season(event), "rankings", event.code))
        return self._parse_rankings(payload)

    async def get_alliances(self, event: Event) -> List[ApiAlliance]:
        payload = await self._get_json(self._endpoint(self._season(event), "alliances", event.code))
        return [
            ApiAlliance(
                name=self._require(a, "name", f"alliances[{i}]"),
                team_numbers=self._flatten_roster(a.get(slot) for slot in ALLIANCE_SLOTS),
            )
            for i, a in enumerate(response_collection(payload, "Alliances"))
        ]

    async def get_playoff_results(self, event: Event) -> List[PlayoffMatch]:
        season = self._season(event)
        schedule_payload, results_payload = await asyncio.gather(
            self._get_json(self._endpoint(season, "schedule", event.code), {"tournamentLevel": self.PLAYOFF}),
            self._get_json(self._endpoint(season, "matches", event.code), {"tournamentLevel": self.PLAYOFF}),
        )
        return self._parse_playoff_results(
            schedule_payload, results_payload, self._event_tz(event),
            (RED_STATIONS, BLUE_STATIONS), number_field="series",
        )

    def get_playoff_tiebreak(self, event: Event) -> PlayoffTiebreak:
        return NoopPlayoffTiebreak()

    async def get_awards(self, event: Event) -> List[Award]:
        payload = await self._get_json(self._endpoint(self._season(event), "awards", event.code))
        return self._parse_awards(payload)
