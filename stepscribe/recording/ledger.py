"""Per-event bookkeeping of finalized tracks."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Set


class Finalization(Enum):
    ALIVE = "alive"
    FIRST = "first_finalization"
    DUPLICATE = "duplicate"


class TrackLedger:
    """Remembers which tracks of each open event already had their terminal step recorded.

    The finalized sets live on the ledger itself and are mutated in place, so a
    finalization observed on one step is visible on every later step of the
    same event. Sets are dropped with :meth:`release` when the event closes.
    """

    def __init__(self) -> None:
        self._finalized: Dict[int, Set[int]] = {}
        self.first_finalizations = 0
        self.duplicates = 0

    def observe(self, event_id: int, track_id: int, alive: bool) -> Finalization:
        if alive:
            return Finalization.ALIVE
        finalized = self._finalized.setdefault(event_id, set())
        if track_id in finalized:
            self.duplicates += 1
            return Finalization.DUPLICATE
        finalized.add(track_id)
        self.first_finalizations += 1
        return Finalization.FIRST

    def is_finalized(self, event_id: int, track_id: int) -> bool:
        return track_id in self._finalized.get(event_id, ())

    def release(self, event_id: int) -> None:
        self._finalized.pop(event_id, None)

    def open_events(self) -> int:
        return len(self._finalized)


__all__ = ["Finalization", "TrackLedger"]
