"""Single entry point called by the transport engine for every step."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Iterable, Mapping, Optional

from ..errors import ConfigurationError
from .aggregator import EventAggregator, EventSnapshot
from .detector import DetectorHandle
from .ledger import Finalization
from .optical import BoundaryDetectionMonitor
from .step import OPTICAL_PHOTON_CODE, StepRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchOptions:
    """Which step attributes are recorded."""

    record_energy: bool = True
    record_trajectories: bool = True
    record_finals: bool = True
    track_optical_boundaries: bool = True
    optical_code: int = OPTICAL_PHOTON_CODE

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "DispatchOptions":
        if not data:
            return cls()
        known = {item.name for item in fields(cls)}
        unknown = set(data).difference(known)
        if unknown:
            raise ConfigurationError(f"Unknown dispatch options: {', '.join(sorted(unknown))}")
        values = {}
        for name, value in data.items():
            values[name] = int(value) if name == "optical_code" else bool(value)
        return cls(**values)


class StepDispatcher:
    """Routes each step to the ledger, the aggregator and the optical monitor."""

    def __init__(
        self,
        aggregator: Optional[EventAggregator] = None,
        *,
        options: Optional[DispatchOptions] = None,
        detector: Optional[DetectorHandle] = None,
        monitor: Optional[BoundaryDetectionMonitor] = None,
    ) -> None:
        self.aggregator = aggregator or EventAggregator()
        self.ledger = self.aggregator.ledger
        self.options = options or DispatchOptions()
        self.detector = detector
        if monitor is None and self.options.track_optical_boundaries:
            monitor = BoundaryDetectionMonitor(detector, optical_code=self.options.optical_code)
        self.monitor = monitor
        self.steps_seen = 0

    def begin_event(self, event_id: int, initial_position: Iterable[float], tag: Optional[int] = None) -> None:
        self.aggregator.record_initial(event_id, initial_position, tag)

    def on_step(self, event_id: int, step: StepRecord) -> Finalization:
        self.steps_seen += 1
        options = self.options
        aggregator = self.aggregator
        if options.record_energy:
            aggregator.add_energy_deposit(event_id, step.edep)

        state = self.ledger.observe(event_id, step.track_id, step.alive)
        if state is Finalization.ALIVE:
            if options.record_trajectories:
                aggregator.record_step(event_id, step.track_id, step.position)
        elif state is Finalization.FIRST:
            if options.record_finals:
                aggregator.record_final(event_id, step.track_id, step.position, step.particle_code)
        else:
            logger.debug("Duplicate terminal step for track %d of event %d", step.track_id, event_id)

        if self.monitor is not None and options.track_optical_boundaries:
            self.monitor.inspect(event_id, step, aggregator)
        return state

    def end_event(self, event_id: int) -> EventSnapshot:
        return self.aggregator.close_event(event_id)

    def end_run(self):
        return self.aggregator.freeze()


__all__ = ["DispatchOptions", "StepDispatcher"]
