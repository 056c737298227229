"""Tests for FrcEventsDataClient parsing and HTTP plumbing (httpx.MockTransport)."""
import base64
from datetime import datetime

import httpx
import pytest
from tenacity import wait_none

from app.models import DataSource, Event, MatchWinner, Season
from app.services.clients.base import RestDataClient
from app.services.clients.exceptions import MissingDataError
from app.services.clients.frc_events import FrcEventsDataClient
from app.services.clients.tiebreaks import FrcEvents2025Tiebreak

BASE_URL = "https://frc-api.example.org/v3.0"


def make_event() -> Event:
    season = Season(id=2025, level="FRC", name="2025", start_time=datetime(2025, 1, 4), end_time=datetime(2025, 12, 31))
    return Event(
        id="evt-1", key="2025miket", code="MIKET", name="Kettering",
        sync_source=DataSource.FRC_EVENTS, time_zone="America/Detroit", season=season,
    )


def make_client(routes, requests=None) -> FrcEventsDataClient:
    """Client whose transport answers from ``routes`` keyed by URL path."""
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"message": "not found"})
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    return FrcEventsDataClient("user:secret-key", BASE_URL, transport=httpx.MockTransport(handler))


def station(name, team):
    return {"station": name, "teamNumber": team, "surrogate": False}


class TestFrcEventsRequests:

    @pytest.mark.asyncio
    async def test_basic_auth_and_endpoint(self):
        """Should send the base64 key and season-scoped path with the level filter."""
        requests = []
        client = make_client({"/v3.0/2025/schedule/MIKET": {"Schedule": []}}, requests)

        assert await client.get_qual_schedule(make_event()) == []

        request = requests[0]
        expected = base64.b64encode(b"user:secret-key").decode("ascii")
        assert request.headers["Authorization"] == f"Basic {expected}"
        assert request.url.params["tournamentLevel"] == "Qualification"

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self):
        client = make_client({"/v3.0/2025/rankings/MIKET": lambda r: httpx.Response(500, text="boom")})

        with pytest.raises(httpx.HTTPStatusError):
            await client.get_qual_rankings(make_event())

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, monkeypatch):
        """Should retry transient transport failures."""
        monkeypatch.setattr(RestDataClient._perform_request.retry, "wait", wait_none())
        calls = []

        def flaky(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, json={"Awards": []})

        client = make_client({"/v3.0/2025/awards/event/MIKET": flaky})

        assert await client.get_awards(make_event()) == []
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_check_health(self):
        client = make_client({"/v3.0/": {"name": "FRC Events API"}})

        assert await client.check_health() is None

    @pytest.mark.asyncio
    async def test_check_health_reports_body(self):
        client = make_client({"/v3.0/": lambda r: httpx.Response(503, text="Service Unavailable")})

        assert await client.check_health() == "Service Unavailable"

    def test_tiebreak_for_event(self):
        client = make_client({})

        assert isinstance(client.get_playoff_tiebreak(make_event()), FrcEvents2025Tiebreak)


class TestFrcEventsParsing:

    @pytest.mark.asyncio
    async def test_qual_schedule_converted_to_utc(self):
        """Should convert local start times and drop empty stations."""
        client = make_client({"/v3.0/2025/schedule/MIKET": {"Schedule": [{
            "matchNumber": 1,
            "startTime": "2025-03-07T09:00:00",
            "teams": [
                station("Red1", 33), station("Red2", 0), station("Red3", 67),
                station("Blue1", 254), station("Blue2", None), station("Blue3", 118),
            ],
        }]}})

        schedule = await client.get_qual_schedule(make_event())

        assert len(schedule) == 1
        assert schedule[0].scheduled_start_time == datetime(2025, 3, 7, 14, 0)
        assert schedule[0].red_alliance_teams == [33, 67]
        assert schedule[0].blue_alliance_teams == [254, 118]

    @pytest.mark.asyncio
    async def test_qual_schedule_requires_start_time(self):
        client = make_client({"/v3.0/2025/schedule/MIKET": {"Schedule": [
            {"matchNumber": 1, "startTime": None, "teams": []},
        ]}})

        with pytest.raises(MissingDataError) as exc_info:
            await client.get_qual_schedule(make_event())

        assert exc_info.value.data_path == "Schedule[0].startTime"

    @pytest.mark.asyncio
    async def test_missing_collection_raises(self):
        client = make_client({"/v3.0/2025/matches/MIKET": {"unexpected": []}})

        with pytest.raises(MissingDataError):
            await client.get_qual_results(make_event())

    @pytest.mark.asyncio
    async def test_qual_results(self):
        client = make_client({"/v3.0/2025/matches/MIKET": {"Matches": [
            {
                "matchNumber": 3,
                "actualStartTime": "2025-03-07T09:16:12.450",
                "postResultTime": "2025-03-07T09:20:40",
                "matchVideoLink": None,
            },
            {"matchNumber": 4, "actualStartTime": None, "postResultTime": None},
        ]}})

        results = await client.get_qual_results(make_event())

        assert results[0].match_number == 3
        assert results[0].actual_start_time == datetime(2025, 3, 7, 14, 16, 12, 450000)
        assert results[0].post_result_time == datetime(2025, 3, 7, 14, 20, 40)
        assert results[1].actual_start_time is None

    @pytest.mark.asyncio
    async def test_qual_results_with_trimmed_fractions(self):
        """Should convert timestamps whose fractional seconds are not 3 or 6 digits."""
        client = make_client({"/v3.0/2025/matches/MIKET": {"Matches": [
            {
                "matchNumber": 3,
                "actualStartTime": "2025-03-07T09:16:12.45",
                "postResultTime": "2025-03-07T09:20:40.1234567",
            },
        ]}})

        results = await client.get_qual_results(make_event())

        assert results[0].actual_start_time == datetime(2025, 3, 7, 14, 16, 12, 450000)
        assert results[0].post_result_time == datetime(2025, 3, 7, 14, 20, 40, 123456)

    @pytest.mark.asyncio
    async def test_playoff_results_merge_schedule_and_scores(self):
        """Should combine both playoff endpoints and derive winners from posted scores."""
        def teams(red, blue):
            return [station(f"Red{i + 1}", t) for i, t in enumerate(red)] + \
                   [station(f"Blue{i + 1}", t) for i, t in enumerate(blue)]

        schedule = {"Schedule": [
            {"matchNumber": 14, "startTime": "2025-03-08T15:00:00"},
            {"matchNumber": 15, "startTime": "2025-03-08T15:15:00"},
            {"matchNumber": 16, "startTime": "2025-03-08T15:30:00"},
        ]}
        results = {"Matches": [
            {
                "matchNumber": 14, "description": "Final 1",
                "actualStartTime": "2025-03-08T15:01:00", "postResultTime": "2025-03-08T15:05:00",
                "scoreRedFinal": 120, "scoreBlueFinal": 98, "teams": teams([33, 67, 1918], [254, 118, 2056]),
            },
            {
                "matchNumber": 15, "description": "Final 2",
                "actualStartTime": "2025-03-08T15:16:00", "postResultTime": "2025-03-08T15:20:00",
                "scoreRedFinal": 101, "scoreBlueFinal": 101, "teams": teams([33, 67, 1918], [254, 118, 2056]),
            },
            {
                "matchNumber": 16, "description": "Final 3",
                "actualStartTime": None, "postResultTime": None,
                "scoreRedFinal": 0, "scoreBlueFinal": 5, "teams": [],
            },
        ]}
        client = make_client({
            "/v3.0/2025/schedule/MIKET": schedule,
            "/v3.0/2025/matches/MIKET": results,
        })

        matches = await client.get_playoff_results(make_event())

        assert [m.match_name for m in matches] == ["Final 1", "Final 2", "Final 3"]
        assert [m.winner for m in matches] == [MatchWinner.RED, None, None]
        assert matches[0].scheduled_start_time == datetime(2025, 3, 8, 20, 0)
        assert matches[0].red_alliance_teams == [33, 67, 1918]
        assert matches[2].red_alliance_teams is None

    @pytest.mark.asyncio
    async def test_alliances_flattened(self):
        client = make_client({"/v3.0/2025/alliances/MIKET": {"Alliances": [
            {"number": 1, "name": "Alliance 1", "captain": 33, "round1": 67, "round2": 1918, "round3": None, "backup": None},
            {"number": 2, "name": "Alliance 2", "captain": 254, "round1": 118, "round2": 2056, "round3": 0, "backup": 7000},
        ]}})

        alliances = await client.get_alliances(make_event())

        assert [(a.name, a.team_numbers) for a in alliances] == [
            ("Alliance 1", [33, 67, 1918]),
            ("Alliance 2", [254, 118, 2056, 7000]),
        ]

    @pytest.mark.asyncio
    async def test_rankings(self):
        client = make_client({"/v3.0/2025/rankings/MIKET": {"Rankings": [{
            "rank": 1, "teamNumber": 33, "sortOrder1": 3.25, "sortOrder2": 41.0,
            "sortOrder3": None, "sortOrder4": 0, "sortOrder5": 0, "sortOrder6": 0,
            "wins": 10, "losses": 2, "ties": 0, "qualAverage": 0, "dq": 0, "matchesPlayed": 12,
        }]}})

        rankings = await client.get_qual_rankings(make_event())

        assert rankings[0].rank == 1
        assert rankings[0].team_number == 33
        assert rankings[0].sort_orders == [3.25, 41.0, 0.0, 0, 0, 0]
        assert rankings[0].wins == 10
        assert rankings[0].disqualifications == 0
        assert rankings[0].matches_played == 12

    @pytest.mark.asyncio
    async def test_awards(self):
        client = make_client({"/v3.0/2025/awards/event/MIKET": {"Awards": [
            {"name": "District Event Winner", "teamNumber": 33},
            {"name": "Volunteer of the Year", "teamNumber": None},
        ]}})

        awards = await client.get_awards(make_event())

        assert [a.is_event_winner for a in awards] == [True, False]

    @pytest.mark.asyncio
    async def test_teams(self):
        requests = []
        client = make_client({"/v3.0/2025/teams": {"teams": [
            {"teamNumber": 33, "nameShort": "Killer Bees", "city": "Auburn Hills"},
        ]}}, requests)

        teams = await client.get_teams_for_event(make_event().season, "MIKET")

        assert teams[0].team_number == 33
        assert teams[0].nickname == "Killer Bees"
        assert requests[0].url.params["eventCode"] == "MIKET"

    @pytest.mark.asyncio
    async def test_event_lookup(self):
        client = make_client({"/v3.0/2025/events": {"Events": [{
            "code": "MIKET", "name": "FIM District Kettering University Event",
            "dateStart": "2025-03-06T00:00:00", "dateEnd": "2025-03-08T23:59:59",
            "timezone": "Eastern Standard Time", "districtCode": "FIM", "city": "Flint",
        }]}})

        event = await client.get_event(make_event().season, "MIKET")

        assert event.event_code == "MIKET"
        assert event.time_zone == "America/New_York"
        assert event.start_time == datetime(2025, 3, 6, 5, 0)
        assert event.district_code == "FIM"
