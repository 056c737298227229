"""
Playoff tiebreak resolvers.

A resolver is bound to one event and lives for one playoff results step.
Any supplemental data it needs is fetched at most once during that lifetime.

Resolvers return Red, Blue or TrueTie, None when the source has not
published enough to decide yet, and raise ``TiebreakError`` otherwise.
"""
import asyncio
import enum
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from app.core.logging import get_logger
from app.models import Event, MatchWinner
from app.services.clients.base import response_collection
from app.services.clients.exceptions import DataClientError, TiebreakError
from app.services.clients.models import PlayoffMatch

logger = get_logger(__name__)


class PlayoffTiebreak(ABC):
    """Determines the winner of a playoff match whose final scores were level."""

    @abstractmethod
    async def determine_match_winner(self, match: PlayoffMatch) -> Optional[MatchWinner]:
        ...


class NoopPlayoffTiebreak(PlayoffTiebreak):
    """For sources without tiebreak data; the winner stays unresolved."""

    async def determine_match_winner(self, match: PlayoffMatch) -> Optional[MatchWinner]:
        return None


class AllianceType(enum.IntEnum):
    NONE = 0
    RED = 1
    BLUE = 2


class FrcTiebreakType(enum.IntEnum):
    # Also reported when there was no tie to break
    UNKNOWN = -1
    TRUE_TIE = 0
    SORT_ORDER_1 = 1
    SORT_ORDER_2 = 2
    SORT_ORDER_3 = 3
    SORT_ORDER_4 = 4
    SORT_ORDER_5 = 5
    SORT_ORDER_6 = 6


class FrcEvents2025Tiebreak(PlayoffTiebreak):
    """
    Tiebreak using FRC Events playoff score details (2025 and 2026 rules).

    The score details endpoint reports the winning alliance after tiebreak
    criteria are applied, and a tiebreak type of 0 when the match remained a
    true tie.
    """

    VALID_SEASONS = ("2025", "2026")

    def __init__(self, data_client, event: Event):
        if event.season is None:
            raise TiebreakError("Season not provided")
        season = event.season.api_season
        if season not in self.VALID_SEASONS:
            raise TiebreakError(f"Unable to process tiebreaks for an event in the {season} season")

        self._data_client = data_client
        self._event = event
        self._score_details: Optional[asyncio.Future] = None

    async def _get_score_details(self) -> Dict[int, Dict[str, Any]]:
        if self._score_details is None:
            self._score_details = asyncio.ensure_future(self._fetch_score_details())
        return await self._score_details

    async def _fetch_score_details(self) -> Dict[int, Dict[str, Any]]:
        payload = await self._data_client.get_playoff_score_details(self._event)
        scores = response_collection(payload, "MatchScores")
        return {s.get("matchNumber"): s for s in scores}

    async def determine_match_winner(self, match: PlayoffMatch) -> Optional[MatchWinner]:
        try:
            details = await self._get_score_details()
        except (httpx.HTTPError, DataClientError) as e:
            raise TiebreakError(f"Unable to fetch playoff score details: {e}") from e

        match_details = details.get(match.match_number)
        if match_details is None:
            return None

        winning_alliance = _parse_alliance(match_details.get("winningAlliance"))
        if winning_alliance == AllianceType.RED:
            return MatchWinner.RED
        if winning_alliance == AllianceType.BLUE:
            return MatchWinner.BLUE

        tiebreaker = match_details.get("tiebreaker") or {}
        if tiebreaker.get("item1") == FrcTiebreakType.TRUE_TIE:
            return MatchWinner.TRUE_TIE

        raise TiebreakError(
            f"Unable to determine winner for {match.match_name or match.match_number}"
        )


def _parse_alliance(value: Any) -> AllianceType:
    """The API reports the winning alliance as 0/1/2 or as None/Red/Blue."""
    if value is None:
        return AllianceType.NONE
    if isinstance(value, str):
        return AllianceType.__members__.get(value.upper(), AllianceType.NONE)
    try:
        return AllianceType(value)
    except ValueError:
        return AllianceType.NONE
