"""
FRC Events API client (v3.0).

Endpoints are relative to ``FRC_EVENTS_BASE_URL`` and keyed by season (the
season's start year), e.g. ``2025/schedule/MIKET?tournamentLevel=Qualification``.
Match times are published as local wall-clock values for the event.
"""
import asyncio
from typing import Any, List, Optional

from app.models import DataSource, Event, Season
from app.services.clients.base import RestDataClient, response_collection
from app.services.clients.models import (
    ApiAlliance, ApiEvent, ApiTeam, Award, MatchResult, PlayoffMatch,
    QualRanking, ScheduledMatch,
)
from app.services.clients.tiebreaks import FrcEvents2025Tiebreak, PlayoffTiebreak

RED_STATIONS = ("Red1", "Red2", "Red3")
BLUE_STATIONS = ("Blue1", "Blue2", "Blue3")


class FrcEventsDataClient(RestDataClient):
    source = DataSource.FRC_EVENTS

    QUALIFICATION = "Qualification"
    PLAYOFF = "Playoff"

    async def get_event(self, season: Season, event_code: str) -> Optional[ApiEvent]:
        payload = await self._get_json(self._endpoint(season.api_season, "events"), {"eventCode": event_code})
        events = self._parse_events(payload)
        return events[0] if len(events) == 1 else None

    async def get_district_events(self, season: Season, district_code: str) -> List[ApiEvent]:
        payload = await self._get_json(self._endpoint(season.api_season, "events"), {"districtCode": district_code})
        return self._parse_events(payload)

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
                name=self._require(a, "name", f"Alliances[{i}]"),
                team_numbers=self._flatten_roster(
                    a.get(slot) for slot in ("captain", "round1", "round2", "round3", "backup")
                ),
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
            schedule_payload, results_payload, self._event_tz(event), (RED_STATIONS, BLUE_STATIONS)
        )

    async def get_playoff_score_details(self, event: Event) -> Any:
        """Raw playoff score details, used by the tiebreak resolver."""
        return await self._get_json(self._endpoint(self._season(event), "scores", event.code, "playoff"))

    def get_playoff_tiebreak(self, event: Event) -> PlayoffTiebreak:
        return FrcEvents2025Tiebreak(self, event)

    async def get_awards(self, event: Event) -> List[Award]:
        payload = await self._get_json(self._endpoint(self._season(event), "awards", "event", event.code))
        return self._parse_awards(payload)

