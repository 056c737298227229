"""
Base classes for event data source clients.

``DataClient`` is the capability the sync engine depends on. Every concrete
source adapts its own wire format and time model into the normalized shapes
in ``app.services.clients.models``:

- station and alliance rosters are flattened into ordered team lists,
  dropping empty (null or zero) slots
- local wall-clock timestamps are converted to naive UTC using the event's
  declared time zone
- absent expected fields raise ``MissingDataError``; transport and HTTP status
  failures propagate as ``httpx.HTTPError``

``RestDataClient`` carries the HTTP plumbing shared by the FIRST event APIs:
one pooled ``httpx.AsyncClient`` per source, Basic auth, retry with
exponential backoff on transport errors, and a log line plus metrics for
every request.
"""
import base64
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import quote
from zoneinfo import ZoneInfo

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import record_data_client_request
from app.models import DataSource, Event, MatchWinner, Season
from app.services.clients.exceptions import MissingDataError
from app.services.clients.models import (
    ApiAlliance, ApiEvent, ApiTeam, Award, MatchResult, PlayoffMatch,
    QualRanking, ScheduledMatch,
)
from app.utils.timezone import local_to_utc, parse_source_datetime, resolve_time_zone

logger = get_logger(__name__)


def response_collection(payload: Any, key: str) -> List[Dict[str, Any]]:
    """
    Top-level list from a response body.

    The FRC API capitalizes collection keys (``Schedule``) while the FTC API
    does not (``schedule``), so the lookup ignores case.
    """
    if isinstance(payload, dict):
        for k, v in payload.items():
            if k.lower() == key.lower():
                if v is None:
                    break
                if not isinstance(v, list):
                    raise MissingDataError(f"Expected a list for '{key}'", data_path=key)
                return v
    raise MissingDataError(f"Response is missing '{key}'", data_path=key)


class DataClient(ABC):
    """Normalized fetch capability for one external event data source."""

    source: DataSource

    @abstractmethod
    async def get_event(self, season: Season, event_code: str) -> Optional[ApiEvent]:
        ...

    @abstractmethod
    async def get_district_events(self, season: Season, district_code: str) -> List[ApiEvent]:
        ...

    @abstractmethod
    async def get_teams_for_event(self, season: Season, event_code: str) -> List[ApiTeam]:
        ...

    @abstractmethod
    async def get_qual_schedule(self, event: Event) -> List[ScheduledMatch]:
        ...

    @abstractmethod
    async def get_qual_results(self, event: Event) -> List[MatchResult]:
        ...

    @abstractmethod
    async def get_qual_rankings(self, event: Event) -> List[QualRanking]:
        ...

    @abstractmethod
    async def get_alliances(self, event: Event) -> List[ApiAlliance]:
        ...

    @abstractmethod
    async def get_playoff_results(self, event: Event) -> List[PlayoffMatch]:
        ...

    @abstractmethod
    def get_playoff_tiebreak(self, event: Event):
        """Return a ``PlayoffTiebreak`` bound to ``event``."""

    @abstractmethod
    async def get_awards(self, event: Event) -> List[Award]:
        ...

    @abstractmethod
    async def check_health(self) -> Optional[str]:
        """Return None when the source is reachable, otherwise a description of the problem."""


class RestDataClient(DataClient):
    """
    HTTP plumbing shared by the FIRST event API clients.

    Args:
        api_key: Credential sent as HTTP Basic auth (base64 of the key)
        base_url: API root; endpoints are resolved relative to it
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = settings.DATA_CLIENT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError(f"{self.source.value} base URL is required")

        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/json",
                "Authorization": f"Basic {self._encode_credentials(api_key)}",
            },
        )

    def _encode_credentials(self, api_key: str) -> str:
        return base64.b64encode(api_key.encode("utf-8")).decode("ascii")

    async def aclose(self) -> None:
        await self._client.aclose()

    # ========================================================================
    # Requests
    # ========================================================================

    @staticmethod
    def _endpoint(*segments: Any) -> str:
        """Build a relative endpoint path, escaping every segment."""
        return "/".join(quote(str(s), safe="") for s in segments)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _perform_request(self, endpoint: str, params: Optional[Dict[str, str]] = None) -> httpx.Response:
        if endpoint.startswith("/"):
            raise ValueError("Endpoint must be a relative path")

        start = time.perf_counter()
        try:
            response = await self._client.get(endpoint, params=params)
        except httpx.TransportError:
            record_data_client_request(self.source.value, "error", time.perf_counter() - start)
            raise
        elapsed = time.perf_counter() - start

        logger.info(
            f"Request: url({response.request.url}) elapsed({elapsed * 1000:.0f}ms) status({response.status_code})",
            extra={"source": self.source.value},
        )
        record_data_client_request(self.source.value, response.status_code, elapsed)
        return response

    async def _get_json(self, endpoint: str, params: Optional[Dict[str, str]] = None) -> Any:
        """GET an endpoint and parse the JSON body; HTTP error statuses raise ``httpx.HTTPStatusError``."""
        response = await self._perform_request(endpoint, params)
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise MissingDataError(
                f"Unable to parse {self.source.value} response from {endpoint}: {e}"
            ) from e

    async def check_health(self) -> Optional[str]:
        response = await self._perform_request("")
        if response.is_success:
            return None
        return response.text

    # ========================================================================
    # Parsing helpers
    # ========================================================================

    @staticmethod
    def _require(item: Dict[str, Any], field: str, path: str) -> Any:
        value = item.get(field)
        if value is None:
            raise MissingDataError(f"Expected field '{field}' was missing", data_path=f"{path}.{field}")
        return value

    @staticmethod
    def _flatten_stations(teams: Optional[Iterable[Dict[str, Any]]], stations: Sequence[str]) -> List[int]:
        """Ordered team numbers for the given stations, skipping empty ones."""
        by_station = {t.get("station"): t.get("teamNumber") for t in teams or []}
        return [
            by_station[s] for s in stations
            if by_station.get(s) is not None and by_station[s] != 0
        ]

    @staticmethod
    def _flatten_roster(slots: Iterable[Optional[int]]) -> List[int]:
        return [t for t in slots if t is not None and t != 0]

    @staticmethod
    def _to_utc(raw: Optional[str], tz: ZoneInfo, path: str = "") -> Optional[datetime]:
        try:
            return local_to_utc(parse_source_datetime(raw), tz)
        except ValueError as e:
            raise MissingDataError(f"Unparseable timestamp '{raw}'", data_path=path) from e

    @staticmethod
    def _event_tz(event: Event) -> ZoneInfo:
        return resolve_time_zone(event.time_zone)

    @staticmethod
    def _season(event: Event) -> str:
        if event.season is None:
            raise MissingDataError("Event season is not loaded", data_path="event.season")
        return event.season.api_season

    def _parse_rankings(self, payload: Any) -> List[QualRanking]:
        rankings = []
        for i, r in enumerate(response_collection(payload, "Rankings")):
            path = f"Rankings[{i}]"
            rankings.append(QualRanking(
                rank=self._require(r, "rank", path),
                team_number=self._require(r, "teamNumber", path),
                sort_orders=[r.get(f"sortOrder{n}") or 0.0 for n in range(1, 7)],
                wins=r.get("wins"),
                ties=r.get("ties"),
                losses=r.get("losses"),
                qual_average=r.get("qualAverage"),
                disqualifications=r.get("dq"),
                matches_played=r.get("matchesPlayed"),
            ))
        return rankings

    def _parse_teams(self, payload: Any) -> List[ApiTeam]:
        return [
            ApiTeam(
                team_number=self._require(t, "teamNumber", f"teams[{i}]"),
                nickname=t.get("nameShort"),
                full_name=t.get("nameFull"),
                city=t.get("city"),
                state_province=t.get("stateProv"),
                country=t.get("country"),
            )
            for i, t in enumerate(response_collection(payload, "teams"))
        ]

    def _parse_awards(self, payload: Any) -> List[Award]:
        return [
            Award(name=self._require(a, "name", f"Awards[{i}]"), team_number=a.get("teamNumber"))
            for i, a in enumerate(response_collection(payload, "Awards"))
        ]

    def _parse_qual_schedule(self, payload: Any, tz: ZoneInfo, stations: Sequence[Sequence[str]]) -> List[ScheduledMatch]:
        red_stations, blue_stations = stations
        schedule = []
        for i, m in enumerate(response_collection(payload, "Schedule")):
            path = f"Schedule[{i}]"
            if not m.get("startTime"):
                raise MissingDataError(
                    "Expected all scheduled qual matches to have a start time",
                    data_path=f"{path}.startTime",
                )
            schedule.append(ScheduledMatch(
                match_number=self._require(m, "matchNumber", path),
                scheduled_start_time=self._to_utc(m["startTime"], tz, f"{path}.startTime"),
                red_alliance_teams=self._flatten_stations(m.get("teams"), red_stations),
                blue_alliance_teams=self._flatten_stations(m.get("teams"), blue_stations),
            ))
        return schedule

    def _parse_qual_results(self, payload: Any, tz: ZoneInfo) -> List[MatchResult]:
        results = []
        for i, m in enumerate(response_collection(payload, "Matches")):
            path = f"Matches[{i}]"
            results.append(MatchResult(
                match_number=self._require(m, "matchNumber", path),
                actual_start_time=self._to_utc(m.get("actualStartTime"), tz, f"{path}.actualStartTime"),
                post_result_time=self._to_utc(m.get("postResultTime"), tz, f"{path}.postResultTime"),
                match_video_link=m.get("matchVideoLink"),
            ))
        return results

    def _parse_playoff_results(
        self,
        schedule_payload: Any,
        results_payload: Any,
        tz: ZoneInfo,
        stations: Sequence[Sequence[str]],
        number_field: str = "matchNumber",
    ) -> List[PlayoffMatch]:
        """
        Merge the playoff schedule (for scheduled start times) into the playoff results.

        The winner is derived from final scores only once results are posted;
        equal scores leave it unset for the tiebreak resolver.
        """
        red_stations, blue_stations = stations
        scheduled_starts = {}
        for i, s in enumerate(response_collection(schedule_payload, "Schedule")):
            path = f"Schedule[{i}]"
            scheduled_starts[self._require(s, number_field, path)] = self._to_utc(
                s.get("startTime"), tz, f"{path}.startTime"
            )

        matches = []
        for i, m in enumerate(response_collection(results_payload, "Matches")):
            path = f"Matches[{i}]"
            match_number = self._require(m, number_field, path)
            post_result = self._to_utc(m.get("postResultTime"), tz, f"{path}.postResultTime")
            red = self._flatten_stations(m.get("teams"), red_stations)
            blue = self._flatten_stations(m.get("teams"), blue_stations)

            winner = None
            red_score, blue_score = m.get("scoreRedFinal"), m.get("scoreBlueFinal")
            if post_result is not None and red_score is not None and blue_score is not None:
                if red_score > blue_score:
                    winner = MatchWinner.RED
                elif blue_score > red_score:
                    winner = MatchWinner.BLUE

            matches.append(PlayoffMatch(
                match_number=match_number,
                match_name=m.get("description"),
                scheduled_start_time=scheduled_starts.get(match_number),
                actual_start_time=self._to_utc(m.get("actualStartTime"), tz, f"{path}.actualStartTime"),
                post_result_time=post_result,
                red_alliance_teams=red or None,
                blue_alliance_teams=blue or None,
                winner=winner,
                match_video_link=m.get("matchVideoLink"),
            ))
        return matches

    def _parse_events(
        self,
        payload: Any,
        end_of_day_adjust: bool = False,
        district_field: str = "districtCode",
    ) -> List[ApiEvent]:
        """
        Parse an events listing.

        Event dates are local to the event. With ``end_of_day_adjust`` the
        published end date (midnight) is moved to 23:59 of that day.
        """
        events = []
        for i, e in enumerate(response_collection(payload, "Events")):
            path = f"Events[{i}]"
            tz = resolve_time_zone(e.get("timezone"))
            start = self._to_utc(self._require(e, "dateStart", path), tz, f"{path}.dateStart")
            end = self._to_utc(self._require(e, "dateEnd", path), tz, f"{path}.dateEnd")
            if end_of_day_adjust:
                end = end + timedelta(days=1) - timedelta(minutes=1)
            events.append(ApiEvent(
                event_code=self._require(e, "code", path),
                name=self._require(e, "name", path),
                start_time=start,
                end_time=end,
                time_zone=tz.key,
                city=e.get("city"),
                district_code=e.get(district_field),
            ))
        return events
