"""Per-event accumulation of energy, trajectories and terminal track states."""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ..errors import AggregatorFrozenError, EventOrderError
from .ledger import TrackLedger
from .step import Position, as_position

logger = logging.getLogger(__name__)


@dataclass
class TrackRecord:
    track_id: int
    trajectory: List[Position] = field(default_factory=list)
    final_position: Optional[Position] = None
    particle_code: Optional[int] = None
    finalized: bool = False


@dataclass
class EventRecord:
    """Mutable state of one open event. Tracks are stored densely in arrival order."""

    event_id: int
    edep: float = 0.0
    initial_position: Optional[Position] = None
    tag: Optional[int] = None
    n_detections: int = 0
    detected_surfaces: Counter = field(default_factory=Counter)
    tracks: List[TrackRecord] = field(default_factory=list)
    track_index: Dict[int, int] = field(default_factory=dict)

    def track(self, track_id: int) -> TrackRecord:
        index = self.track_index.get(track_id)
        if index is None:
            index = len(self.tracks)
            self.tracks.append(TrackRecord(track_id=track_id))
            self.track_index[track_id] = index
        return self.tracks[index]


@dataclass(frozen=True)
class TrackSnapshot:
    track_id: int
    trajectory: Tuple[Position, ...]
    final_position: Optional[Position]
    particle_code: Optional[int]

    @property
    def orphaned(self) -> bool:
        return self.final_position is None


@dataclass(frozen=True)
class EventSnapshot:
    """Frozen view of a closed event, ready for export."""

    event_id: int
    tag: Optional[int]
    edep: float
    initial_position: Optional[Position]
    n_detections: int
    tracks: Tuple[TrackSnapshot, ...]
    detected_surfaces: Tuple[Tuple[str, int], ...] = ()

    def orphaned_tracks(self) -> Tuple[TrackSnapshot, ...]:
        return tuple(track for track in self.tracks if track.orphaned)

    @property
    def n_steps(self) -> int:
        return sum(len(track.trajectory) for track in self.tracks)


@dataclass(frozen=True)
class WorkerPartial:
    """Run-wide scalars accumulated by one worker, merged once at the end of the run."""

    worker_id: str
    edep: float
    n_events: int


class EventAggregator:
    """Keyed store of per-event data for a single worker.

    Open events live in a flat arena (a list indexed by a running counter, with
    an id to slot lookup); each event owns a dense list of its tracks. Closing
    an event turns it into an :class:`EventSnapshot` and frees its slot.
    """

    def __init__(self, ledger: Optional[TrackLedger] = None, *, worker_id: str = "main") -> None:
        self.ledger = ledger or TrackLedger()
        self.worker_id = worker_id
        self._arena: List[Optional[EventRecord]] = []
        self._slots: Dict[int, int] = {}
        self._free: List[int] = []
        self._closed: List[EventSnapshot] = []
        self._last_closed: Optional[int] = None
        self._highest_opened: Optional[int] = None
        self._run_edep = 0.0
        self._frozen = False
        self.rejected_deposits = 0
        self.ignored_steps = 0

    @property
    def frozen(self) -> bool:
        return self._frozen

    def open_event_ids(self) -> List[int]:
        return sorted(self._slots)

    def _check_mutable(self) -> None:
        if self._frozen:
            raise AggregatorFrozenError(f"Aggregator for worker '{self.worker_id}' is frozen; the run has ended")

    def _check_event_id(self, event_id: int) -> None:
        self._check_mutable()
        if self._last_closed is not None and event_id <= self._last_closed:
            raise EventOrderError(
                f"Event {event_id} referenced after event {self._last_closed} was closed; "
                "event ids must strictly increase"
            )
        if event_id in self._slots:
            return
        if self._highest_opened is not None and event_id < self._highest_opened:
            raise EventOrderError(
                f"Event {event_id} opened after event {self._highest_opened}; event ids must strictly increase"
            )

    def _event(self, event_id: int) -> EventRecord:
        self._check_event_id(event_id)
        slot = self._slots.get(event_id)
        if slot is not None:
            return self._arena[slot]
        record = EventRecord(event_id=event_id)
        if self._free:
            slot = self._free.pop()
            self._arena[slot] = record
        else:
            slot = len(self._arena)
            self._arena.append(record)
        self._slots[event_id] = slot
        self._highest_opened = event_id
        return record

    def add_energy_deposit(self, event_id: int, amount: float) -> bool:
        self._check_event_id(event_id)
        amount = float(amount)
        if math.isnan(amount) or math.isinf(amount) or amount < 0.0:
            self.rejected_deposits += 1
            logger.debug("Rejected energy deposit %r for event %d", amount, event_id)
            return False
        self._event(event_id).edep += amount
        return True

    def record_initial(self, event_id: int, position: Iterable[float], tag: Optional[int]) -> None:
        record = self._event(event_id)
        if record.initial_position is not None:
            logger.debug("Overwriting initial position of event %d", event_id)
        record.initial_position = as_position(position)
        record.tag = None if tag is None else int(tag)

    def record_step(self, event_id: int, track_id: int, position: Iterable[float]) -> bool:
        track = self._event(event_id).track(track_id)
        if track.finalized:
            self.ignored_steps += 1
            return False
        track.trajectory.append(as_position(position))
        return True

    def record_final(self, event_id: int, track_id: int, position: Iterable[float], particle_code: int) -> bool:
        track = self._event(event_id).track(track_id)
        if track.finalized:
            return False
        track.final_position = as_position(position)
        track.particle_code = int(particle_code)
        track.finalized = True
        return True

    def add_detection(self, event_id: int, surface: Optional[str] = None) -> int:
        record = self._event(event_id)
        record.n_detections += 1
        if surface:
            record.detected_surfaces[surface] += 1
        return record.n_detections

    def close_event(self, event_id: int) -> EventSnapshot:
        record = self._event(event_id)
        snapshot = self._close(record)
        self._last_closed = event_id
        return snapshot

    def _close(self, record: EventRecord) -> EventSnapshot:
        slot = self._slots.pop(record.event_id)
        self._arena[slot] = None
        if self._slots:
            self._free.append(slot)
        else:
            self._arena.clear()
            self._free.clear()
        self.ledger.release(record.event_id)

        tracks = tuple(
            TrackSnapshot(
                track_id=track.track_id,
                trajectory=tuple(track.trajectory),
                final_position=track.final_position,
                particle_code=track.particle_code,
            )
            for track in sorted(record.tracks, key=lambda track: track.track_id)
        )
        snapshot = EventSnapshot(
            event_id=record.event_id,
            tag=record.tag,
            edep=record.edep,
            initial_position=record.initial_position,
            n_detections=record.n_detections,
            tracks=tracks,
            detected_surfaces=tuple(sorted(record.detected_surfaces.items())),
        )
        self._closed.append(snapshot)
        self._run_edep += record.edep

        orphans = len(snapshot.orphaned_tracks())
        if orphans:
            logger.info("Event %d closed with %d track(s) still alive", record.event_id, orphans)
        logger.debug(
            "Closed event %d: %d tracks, %d steps, edep=%.6g",
            record.event_id,
            len(tracks),
            snapshot.n_steps,
            record.edep,
        )
        return snapshot

    def freeze(self) -> Tuple[EventSnapshot, ...]:
        """Close every event still open and forbid further mutation."""

        if not self._frozen:
            for event_id in sorted(self._slots):
                self._close(self._arena[self._slots[event_id]])
            self._frozen = True
        return self.snapshots()

    def snapshots(self) -> Tuple[EventSnapshot, ...]:
        return tuple(sorted(self._closed, key=lambda snapshot: snapshot.event_id))

    def partial(self) -> WorkerPartial:
        return WorkerPartial(worker_id=self.worker_id, edep=self._run_edep, n_events=len(self._closed))


__all__ = [
    "EventAggregator",
    "EventRecord",
    "EventSnapshot",
    "TrackRecord",
    "TrackSnapshot",
    "WorkerPartial",
]
