"""Optical-photon boundary classification and detection counting."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

from .aggregator import EventAggregator
from .detector import DetectorHandle
from .step import OPTICAL_PHOTON_CODE, BoundaryStatus, StepRecord

logger = logging.getLogger(__name__)


class BoundaryDetectionMonitor:
    """Counts optical photons registered by sensitive surfaces.

    Each boundary step is judged on its own: the engine's classification is
    taken as is, unknown values count as undefined, and nothing is retried.
    When the detector handle declares sensitive surfaces, a detection on a
    volume outside that set is not counted.
    """

    def __init__(self, detector: Optional[DetectorHandle] = None, *, optical_code: int = OPTICAL_PHOTON_CODE) -> None:
        self.detector = detector
        self.optical_code = optical_code
        self.boundary_counts: Counter = Counter()
        self.rejected_surfaces: Counter = Counter()

    def inspect(self, event_id: int, step: StepRecord, aggregator: EventAggregator) -> bool:
        if step.particle_code != self.optical_code:
            return False
        if not self._on_boundary(step):
            return False
        status = BoundaryStatus.coerce(step.boundary)
        self.boundary_counts[status] += 1
        if status is not BoundaryStatus.DETECTED:
            return False
        if not self._accepts(step.volume):
            self.rejected_surfaces[step.volume] += 1
            logger.debug("Detection on non-sensitive surface %r in event %d ignored", step.volume, event_id)
            return False
        aggregator.add_detection(event_id, step.volume)
        return True

    @staticmethod
    def _on_boundary(step: StepRecord) -> bool:
        if step.on_boundary is not None:
            return step.on_boundary
        # No flag from the engine: the classification alone decides
        if step.boundary is None:
            return False
        return BoundaryStatus.coerce(step.boundary) is not BoundaryStatus.NOT_AT_BOUNDARY

    def _accepts(self, volume: Optional[str]) -> bool:
        if self.detector is None or not self.detector.sensitive_names():
            return True
        if volume is None:
            return True
        return self.detector.is_sensitive(volume)


__all__ = ["BoundaryDetectionMonitor"]
