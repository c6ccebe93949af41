"""Reading recorded step streams and replaying them through a dispatcher.

A stream is a JSON-lines file with one record per line::

    {"type": "begin_event", "event_id": 0, "position": [0, 0, 0], "tag": 17}
    {"type": "step", "event_id": 0, "track_id": 1, "particle_code": 11,
     "position": [0, 0, 1.5], "edep": 0.02, "alive": true}
    {"type": "end_event", "event_id": 0}

Optical photon steps may also carry ``boundary``, ``on_boundary`` and
``volume``. Without ``on_boundary`` a step counts as on a boundary whenever
it carries a classification other than ``NotAtBoundary``. ``alive`` and
``on_boundary`` must be JSON booleans.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, Optional, Tuple, Union

from ..errors import StreamFormatError
from .dispatch import StepDispatcher
from .step import BoundaryStatus, Position, StepRecord, as_position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeginEvent:
    event_id: int
    position: Position
    tag: Optional[int]


@dataclass(frozen=True)
class StepEntry:
    event_id: int
    step: StepRecord


@dataclass(frozen=True)
class EndEvent:
    event_id: int


StreamRecord = Union[BeginEvent, StepEntry, EndEvent]


def _flag(data: Dict[str, Any], key: str, default: Optional[bool]) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise StreamFormatError(f"'{key}' must be a JSON boolean, got {value!r}")
    return value


def parse_record(data: Dict[str, Any]) -> StreamRecord:
    kind = data.get("type")
    try:
        event_id = int(data["event_id"])
        if kind == "begin_event":
            tag = data.get("tag")
            return BeginEvent(event_id=event_id, position=as_position(data["position"]), tag=None if tag is None else int(tag))
        if kind == "step":
            boundary = data.get("boundary")
            volume = data.get("volume")
            step = StepRecord(
                track_id=int(data["track_id"]),
                particle_code=int(data["particle_code"]),
                position=as_position(data["position"]),
                edep=float(data.get("edep", 0.0)),
                alive=_flag(data, "alive", True),
                boundary=None if boundary is None else BoundaryStatus.coerce(boundary),
                on_boundary=_flag(data, "on_boundary", None),
                volume=None if volume is None else str(volume),
            )
            return StepEntry(event_id=event_id, step=step)
        if kind == "end_event":
            return EndEvent(event_id=event_id)
    except (KeyError, TypeError, ValueError) as exc:
        raise StreamFormatError(f"Malformed '{kind}' record: {exc}") from exc
    raise StreamFormatError(f"Unknown record type {kind!r}")


def read_stream(path: Path | str) -> Generator[StreamRecord, None, None]:
    stream_path = Path(path)
    with stream_path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as exc:
                raise StreamFormatError(f"{stream_path}:{line_number}: invalid JSON ({exc.msg})") from exc
            if not isinstance(data, dict):
                raise StreamFormatError(f"{stream_path}:{line_number}: expected a JSON object")
            try:
                yield parse_record(data)
            except StreamFormatError as exc:
                raise StreamFormatError(f"{stream_path}:{line_number}: {exc}") from exc


def replay(records: Iterable[StreamRecord], dispatcher: StepDispatcher) -> Tuple[int, int]:
    """Drive ``dispatcher`` with ``records``. Returns the number of steps and closed events."""

    steps = 0
    closed = 0
    for record in records:
        if isinstance(record, StepEntry):
            dispatcher.on_step(record.event_id, record.step)
            steps += 1
        elif isinstance(record, BeginEvent):
            dispatcher.begin_event(record.event_id, record.position, record.tag)
        else:
            dispatcher.end_event(record.event_id)
            closed += 1
    logger.debug("Replayed %d steps over %d events", steps, closed)
    return steps, closed


__all__ = [
    "BeginEvent",
    "EndEvent",
    "StepEntry",
    "StreamRecord",
    "parse_record",
    "read_stream",
    "replay",
]
