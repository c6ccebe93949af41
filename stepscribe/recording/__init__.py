"""Step recording, per-event aggregation and table export for transport simulations."""

from .aggregator import EventAggregator, EventSnapshot, TrackSnapshot, WorkerPartial
from .detector import DetectorHandle, Surface, default_detector
from .dispatch import DispatchOptions, StepDispatcher
from .export import PARTICLE_LABELS, RunExporter, RunTables, particle_label
from .ledger import Finalization, TrackLedger
from .optical import BoundaryDetectionMonitor
from .reduction import RunAccumulator, RunCoordinator, RunResult
from .reporting import RunReporter
from .step import OPTICAL_PHOTON_CODE, BoundaryStatus, StepRecord
from .stream import read_stream, replay
from .writer import write_tables

__all__ = [
    "BoundaryDetectionMonitor",
    "BoundaryStatus",
    "DetectorHandle",
    "DispatchOptions",
    "EventAggregator",
    "EventSnapshot",
    "Finalization",
    "OPTICAL_PHOTON_CODE",
    "PARTICLE_LABELS",
    "RunAccumulator",
    "RunCoordinator",
    "RunExporter",
    "RunReporter",
    "RunResult",
    "RunTables",
    "StepDispatcher",
    "StepRecord",
    "Surface",
    "TrackLedger",
    "TrackSnapshot",
    "WorkerPartial",
    "default_detector",
    "particle_label",
    "read_stream",
    "replay",
    "write_tables",
]
