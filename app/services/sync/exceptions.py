"""
Exceptions raised by the event sync engine.
"""
from typing import Dict


class EventSyncError(Exception):
    """Base class for sync engine errors."""


class SyncPreconditionError(EventSyncError):
    """The event is not set up for syncing; raised before any step runs."""


class AmbiguousWinnerError(EventSyncError):
    """
    More than one alliance reached the finals win threshold.

    This points at bad source data or a scoring correction in flight and is
    never resolved automatically.
    """

    def __init__(self, event_code: str, wins_by_alliance: Dict[str, int]):
        self.event_code = event_code
        self.wins_by_alliance = dict(wins_by_alliance)
        summary = ", ".join(f"{alliance_id}={wins}" for alliance_id, wins in sorted(wins_by_alliance.items()))
        super().__init__(f"Multiple alliances reached the finals win threshold for event {event_code}: {summary}")
