"""Run-wide reduction of worker partials and the end-of-run barrier."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from ..errors import EventOrderError, ReductionError
from .aggregator import EventAggregator, EventSnapshot, WorkerPartial

logger = logging.getLogger(__name__)


class RunAccumulator:
    """Sums worker partials. Each worker contributes exactly once."""

    def __init__(self) -> None:
        self._merged: Dict[str, WorkerPartial] = {}
        self._lock = threading.Lock()

    def merge(self, partial: WorkerPartial) -> None:
        with self._lock:
            if partial.worker_id in self._merged:
                raise ReductionError(f"Worker '{partial.worker_id}' already merged its partial totals")
            self._merged[partial.worker_id] = partial

    @property
    def total_edep(self) -> float:
        # Summed in worker id order so the result does not depend on merge order
        return sum(self._merged[worker].edep for worker in sorted(self._merged))

    @property
    def n_events(self) -> int:
        return sum(partial.n_events for partial in self._merged.values())


@dataclass(frozen=True)
class RunResult:
    snapshots: Tuple[EventSnapshot, ...]
    total_edep: float
    n_events: int
    workers: Tuple[str, ...]


class RunCoordinator:
    """Hard barrier between the transport phase and export.

    Workers are registered up front and report completion with their
    aggregator; :meth:`finish` refuses to run until every one of them did.
    """

    def __init__(self, worker_ids: Iterable[str]) -> None:
        self._expected = list(dict.fromkeys(worker_ids))
        if not self._expected:
            raise ReductionError("A run needs at least one worker")
        self._completed: Dict[str, EventAggregator] = {}
        self._lock = threading.Lock()
        self._result = None

    def complete(self, worker_id: str, aggregator: EventAggregator) -> None:
        with self._lock:
            if worker_id not in self._expected:
                raise ReductionError(f"Unknown worker '{worker_id}'")
            if worker_id in self._completed:
                raise ReductionError(f"Worker '{worker_id}' signalled completion twice")
            aggregator.freeze()
            self._completed[worker_id] = aggregator
        logger.debug("Worker %s completed", worker_id)

    def pending(self) -> List[str]:
        return [worker for worker in self._expected if worker not in self._completed]

    def finish(self) -> RunResult:
        with self._lock:
            if self._result is not None:
                return self._result
            missing = self.pending()
            if missing:
                raise ReductionError(f"Run not complete; waiting for workers: {', '.join(missing)}")

            accumulator = RunAccumulator()
            snapshots: List[EventSnapshot] = []
            for worker in self._expected:
                aggregator = self._completed[worker]
                accumulator.merge(aggregator.partial())
                snapshots.extend(aggregator.snapshots())
            merged = merge_snapshots(snapshots)
            self._result = RunResult(
                snapshots=merged,
                total_edep=accumulator.total_edep,
                n_events=accumulator.n_events,
                workers=tuple(self._expected),
            )
        logger.info(
            "Run finished: %d events from %d worker(s), total edep %.6g",
            self._result.n_events,
            len(self._result.workers),
            self._result.total_edep,
        )
        return self._result


def merge_snapshots(snapshots: Iterable[EventSnapshot]) -> Tuple[EventSnapshot, ...]:
    ordered = sorted(snapshots, key=lambda snapshot: snapshot.event_id)
    for previous, current in zip(ordered, ordered[1:]):
        if previous.event_id == current.event_id:
            raise EventOrderError(f"Event {current.event_id} was recorded by more than one worker")
    return tuple(ordered)


__all__ = ["RunAccumulator", "RunCoordinator", "RunResult", "merge_snapshots"]
