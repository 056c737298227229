"""
Match reconciler: merges fetched match data into stored plays.

A match number identifies a match within a tournament level; each attempt at
it is a play. For each incoming record the latest play is updated in place,
unless both it and the incoming record have an actual start time and those
differ by at least the start tolerance. Then the match was replayed: the old
play is discarded and a new play is created carrying forward teams and
alliances, with result fields unset, before the incoming data is applied.

Reapplying unchanged data makes no attribute changes, so a second pass over
the same source data is a no-op.
"""
import uuid
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import get_logger
from app.models import Event, Match, TournamentLevel

logger = get_logger(__name__)

# Copied to a replay's new play; everything else starts unset
CARRIED_FORWARD = (
    "match_name",
    "red_alliance_teams",
    "blue_alliance_teams",
    "red_alliance_id",
    "blue_alliance_id",
    "scheduled_start_time",
)

# Applied whenever the incoming record has the field, even when it is None
TIMING_FIELDS = (
    "scheduled_start_time",
    "actual_start_time",
    "post_result_time",
    "match_video_link",
)

# Applied only when the incoming record has a value
ROSTER_FIELDS = (
    "match_name",
    "red_alliance_teams",
    "blue_alliance_teams",
)


def set_if_changed(instance: Any, attr: str, value: Any) -> bool:
    """Assign only when the value differs so unchanged data stays clean in the session."""
    if getattr(instance, attr) == value:
        return False
    setattr(instance, attr, value)
    return True


class MatchReconciler:
    """
    Reconciles one tournament level of one event.

    Usage:
        reconciler = MatchReconciler(db, event, TournamentLevel.PLAYOFF)
        pairs = reconciler.reconcile(existing_plays, api_matches, create_missing=True)
    """

    def __init__(
        self,
        db: Session,
        event: Event,
        level: TournamentLevel,
        tolerance: Optional[timedelta] = None,
    ):
        self.db = db
        self.event = event
        self.level = level
        self.tolerance = tolerance if tolerance is not None else timedelta(
            seconds=settings.MATCH_START_TOLERANCE_SECONDS
        )
        self.created: List[Match] = []
        self.discarded: List[Match] = []

    def reconcile(
        self,
        existing: Iterable[Match],
        incoming: Iterable[Any],
        create_missing: bool,
    ) -> List[Tuple[Any, Match]]:
        """
        Merge incoming records into the stored plays.

        Args:
            existing: All stored plays for the event and level
            incoming: Records with ``match_number`` and any of the timing and roster fields
            create_missing: Create play 1 for unknown match numbers; otherwise skip them

        Returns:
            (incoming record, current play) for every record that was applied
        """
        latest: Dict[int, Match] = {}
        for play in existing:
            current = latest.get(play.match_number)
            if current is None or play.play_number > current.play_number:
                latest[play.match_number] = play

        applied = []
        for record in incoming:
            play = latest.get(record.match_number)

            if play is None:
                if not create_missing:
                    logger.debug(
                        f"Skipping {self.level.value} match {record.match_number}: not in schedule"
                    )
                    continue
                play = self._create_play(record.match_number, play_number=1)
            elif play.is_discarded:
                logger.warning(
                    f"Latest play of {self.level.value} match {play.match_number} is discarded, not updating"
                )
                continue
            elif self._is_replay(play, record):
                play = self._replay(play)

            latest[record.match_number] = play
            self._apply(play, record)
            applied.append((record, play))

        return applied

    def _is_replay(self, play: Match, record: Any) -> bool:
        incoming_start = getattr(record, "actual_start_time", None)
        if play.actual_start_time is None or incoming_start is None:
            return False
        return abs(play.actual_start_time - incoming_start) >= self.tolerance

    def _create_play(self, match_number: int, play_number: int) -> Match:
        play = Match(
            id=str(uuid.uuid4()),
            event_id=self.event.id,
            tournament_level=self.level,
            match_number=match_number,
            play_number=play_number,
            is_discarded=False,
        )
        self.db.add(play)
        self.created.append(play)
        return play

    def _replay(self, old: Match) -> Match:
        logger.info(
            f"Detected replay of {self.level.value} match {old.match_number} "
            f"(play {old.play_number} -> {old.play_number + 1})",
            extra={"event_code": self.event.code},
        )
        old.is_discarded = True
        self.discarded.append(old)

        new = self._create_play(old.match_number, play_number=old.play_number + 1)
        for attr in CARRIED_FORWARD:
            value = getattr(old, attr)
            setattr(new, attr, list(value) if isinstance(value, list) else value)
        return new

    def _apply(self, play: Match, record: Any) -> bool:
        changed = False
        for attr in TIMING_FIELDS:
            if hasattr(record, attr):
                changed |= set_if_changed(play, attr, getattr(record, attr))
        for attr in ROSTER_FIELDS:
            value = getattr(record, attr, None)
            if value is not None:
                changed |= set_if_changed(play, attr, list(value) if isinstance(value, (list, tuple)) else value)
        return changed
