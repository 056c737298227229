"""
Alliance correlation, playoff winner resolution and finals aggregation.

Playoff plays are published with team numbers only. A side is bound to the
first stored alliance whose roster shares any team with it; sides that match
nothing stay unbound and are retried on the next pass.
"""
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from app.core.config import settings
from app.core.logging import get_logger
from app.core.metrics import tiebreak_failures_total
from app.models import Alliance, Event, Match, MatchWinner
from app.services.clients.exceptions import TiebreakError
from app.services.sync.exceptions import AmbiguousWinnerError

logger = get_logger(__name__)

FINALS_PREFIXES = ("Final", "Overtime")


def find_alliance(team_numbers: Optional[Sequence[int]], alliances: Iterable[Alliance]) -> Optional[Alliance]:
    """First alliance whose roster intersects ``team_numbers``."""
    if not team_numbers:
        return None
    teams = set(team_numbers)
    for alliance in alliances:
        if teams.intersection(alliance.team_numbers or []):
            return alliance
    return None


def correlate(play: Match, alliances: Sequence[Alliance]) -> bool:
    """
    Bind unbound sides of a playoff play to alliances.

    Sides that already carry an alliance id are left alone.

    Returns:
        True if any side was bound
    """
    changed = False
    if play.red_alliance_id is None:
        alliance = find_alliance(play.red_alliance_teams, alliances)
        if alliance is not None:
            play.red_alliance_id = alliance.id
            changed = True
    if play.blue_alliance_id is None:
        alliance = find_alliance(play.blue_alliance_teams, alliances)
        if alliance is not None:
            play.blue_alliance_id = alliance.id
            changed = True
    return changed


def is_finals_play(play: Match) -> bool:
    return bool(play.match_name) and play.match_name.startswith(FINALS_PREFIXES)


def count_finals_wins(plays: Iterable[Match]) -> Dict[str, int]:
    """Finals wins per alliance id over non-discarded finals plays."""
    wins: Counter = Counter()
    for play in plays:
        if not play.is_discarded and is_finals_play(play):
            alliance_id = play.alliance_id_for(play.winner)
            if alliance_id is not None:
                wins[alliance_id] += 1
    return dict(wins)


def aggregate_finals(
    event: Event,
    plays: Iterable[Match],
    required_wins: Optional[int] = None,
) -> Optional[str]:
    """
    Determine the event winner from finals plays.

    Wins are counted per alliance over non-discarded finals plays with a Red
    or Blue winner; plays whose winning side is not bound to an alliance are
    not counted.

    Returns:
        The winning alliance id, or None while no alliance has enough wins

    Raises:
        AmbiguousWinnerError: more than one alliance has reached the threshold
    """
    required_wins = required_wins or settings.FINALS_WINS_REQUIRED

    wins = count_finals_wins(plays)
    winners = [alliance_id for alliance_id, count in wins.items() if count >= required_wins]
    if len(winners) > 1:
        raise AmbiguousWinnerError(event.code or event.id, dict(wins))
    return winners[0] if winners else None


class PlayoffWinnerResolver:
    """
    Fills in winners of playoff plays once results are posted.

    The source-reported winner is used when present. Otherwise the source's
    tiebreak resolver is asked; it is created on first need and reused for
    the rest of this resolver's life (one playoff results step).
    """

    def __init__(self, event: Event, tiebreak_factory: Callable):
        self.event = event
        self._tiebreak_factory = tiebreak_factory
        self._tiebreak = None
        self.failures: List[int] = []

    def _get_tiebreak(self):
        if self._tiebreak is None:
            self._tiebreak = self._tiebreak_factory(self.event)
        return self._tiebreak

    async def resolve(self, play: Match, record) -> bool:
        """
        Set ``play.winner`` from the incoming record if it is not set yet.

        Tiebreak failures are logged and leave the winner unset.

        Returns:
            True if a winner was assigned
        """
        if play.winner is not None or record.post_result_time is None:
            return False

        if record.winner is not None:
            play.winner = record.winner
            return True

        try:
            winner = await self._get_tiebreak().determine_match_winner(record)
        except TiebreakError as e:
            self.failures.append(play.match_number)
            tiebreak_failures_total.labels(source=_source_label(self.event)).inc()
            logger.error(
                f"Failed to get winner for tied playoff match {record.match_name or record.match_number} "
                f"in event {self.event.code}: {e}",
                extra={"event_code": self.event.code, "match_number": play.match_number},
            )
            return False

        if winner is None:
            return False
        play.winner = MatchWinner(winner)
        return True


def _source_label(event: Event) -> str:
    return event.sync_source.value if event.sync_source is not None else "unknown"


