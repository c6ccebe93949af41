"""Flattening of frozen event snapshots into the event, track and step tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd

from .aggregator import EventSnapshot
from .reduction import merge_snapshots
from .units import energy_scale, length_scale

logger = logging.getLogger(__name__)


EVENT_COLUMNS: Dict[str, str] = {
    "event_id": "int64",
    "tag": "Int64",
    "edep": "float64",
    "x0": "Float64",
    "y0": "Float64",
    "z0": "Float64",
    "n_detections": "int64",
}

TRACK_COLUMNS: Dict[str, str] = {
    "event_id": "int64",
    "track_id": "int64",
    "xf": "Float64",
    "yf": "Float64",
    "zf": "Float64",
    "pid": "Int64",
    "dpos": "Float64",
}

STEP_COLUMNS: Dict[str, str] = {
    "event_id": "int64",
    "track_id": "int64",
    "step_idx": "int64",
    "x": "float64",
    "y": "float64",
    "z": "float64",
}

PARTICLE_LABELS: Dict[int, str] = {
    11: "e-",
    -11: "e+",
    13: "mu-",
    -13: "mu+",
    22: "gamma",
    -22: "opticalphoton",
    211: "pi+",
    -211: "pi-",
    2112: "neutron",
    2212: "proton",
    1000020040: "alpha",
}


def particle_label(code: int, labels: Optional[Mapping[int, str]] = None) -> str:
    """Readable name of a PDG code; unknown codes come back as the number itself."""

    table = PARTICLE_LABELS if labels is None else {**PARTICLE_LABELS, **labels}
    return table.get(int(code), str(int(code)))


@dataclass
class RunTables:
    event: pd.DataFrame
    track: pd.DataFrame
    step: pd.DataFrame
    units: Dict[str, str] = field(default_factory=dict)

    def items(self):
        return (("event", self.event), ("track", self.track), ("step", self.step))


class RunExporter:
    """Builds the three output tables. Unit conversion happens here and nowhere else."""

    def __init__(self, length_unit: str = "cm", energy_unit: str = "keV") -> None:
        self.length_unit = length_unit
        self.energy_unit = energy_unit
        self._length = length_scale(length_unit)
        self._energy = energy_scale(energy_unit)

    @property
    def units(self) -> Dict[str, str]:
        units = {name: self.length_unit for name in ("x0", "y0", "z0", "xf", "yf", "zf", "dpos", "x", "y", "z")}
        units["edep"] = self.energy_unit
        return units

    def convert_energy(self, value: float) -> float:
        return value / self._energy

    def export(self, snapshots: Iterable[EventSnapshot]) -> RunTables:
        ordered = merge_snapshots(snapshots)
        tables = RunTables(
            event=self._event_table(ordered),
            track=self._track_table(ordered),
            step=self._step_table(ordered),
            units=self.units,
        )
        logger.info(
            "Exported %d events, %d tracks, %d steps (%s, %s)",
            len(tables.event),
            len(tables.track),
            len(tables.step),
            self.length_unit,
            self.energy_unit,
        )
        return tables

    def _event_table(self, snapshots) -> pd.DataFrame:
        initials = np.array(
            [event.initial_position or (np.nan, np.nan, np.nan) for event in snapshots], dtype=np.float64
        ).reshape(-1, 3) / self._length
        data = {
            "event_id": [event.event_id for event in snapshots],
            "tag": pd.array([event.tag for event in snapshots], dtype="Int64"),
            "edep": np.array([event.edep for event in snapshots], dtype=np.float64) / self._energy,
            "x0": pd.array(initials[:, 0], dtype="Float64"),
            "y0": pd.array(initials[:, 1], dtype="Float64"),
            "z0": pd.array(initials[:, 2], dtype="Float64"),
            "n_detections": [event.n_detections for event in snapshots],
        }
        return _typed_frame(data, EVENT_COLUMNS)

    def _track_table(self, snapshots) -> pd.DataFrame:
        event_ids: List[int] = []
        track_ids: List[int] = []
        pids: List[Optional[int]] = []
        finals = []
        initials = []
        for event in snapshots:
            initial = event.initial_position or (np.nan, np.nan, np.nan)
            for track in event.tracks:
                event_ids.append(event.event_id)
                track_ids.append(track.track_id)
                pids.append(track.particle_code)
                finals.append(track.final_position or (np.nan, np.nan, np.nan))
                initials.append(initial)
        final_array = np.array(finals, dtype=np.float64).reshape(-1, 3)
        initial_array = np.array(initials, dtype=np.float64).reshape(-1, 3)
        dpos = np.linalg.norm(final_array - initial_array, axis=1) / self._length
        final_array = final_array / self._length
        data = {
            "event_id": event_ids,
            "track_id": track_ids,
            "xf": pd.array(final_array[:, 0], dtype="Float64"),
            "yf": pd.array(final_array[:, 1], dtype="Float64"),
            "zf": pd.array(final_array[:, 2], dtype="Float64"),
            "pid": pd.array(pids, dtype="Int64"),
            "dpos": pd.array(dpos, dtype="Float64"),
        }
        return _typed_frame(data, TRACK_COLUMNS)

    def _step_table(self, snapshots) -> pd.DataFrame:
        event_ids: List[int] = []
        track_ids: List[int] = []
        indices: List[int] = []
        points = []
        for event in snapshots:
            for track in event.tracks:
                for index, point in enumerate(track.trajectory):
                    event_ids.append(event.event_id)
                    track_ids.append(track.track_id)
                    indices.append(index)
                    points.append(point)
        positions = np.array(points, dtype=np.float64).reshape(-1, 3) / self._length
        data = {
            "event_id": event_ids,
            "track_id": track_ids,
            "step_idx": indices,
            "x": positions[:, 0],
            "y": positions[:, 1],
            "z": positions[:, 2],
        }
        return _typed_frame(data, STEP_COLUMNS)


def _typed_frame(data: Dict[str, object], columns: Dict[str, str]) -> pd.DataFrame:
    frame = pd.DataFrame(data, columns=list(columns))
    return frame.astype(columns)


__all__ = [
    "EVENT_COLUMNS",
    "PARTICLE_LABELS",
    "RunExporter",
    "RunTables",
    "STEP_COLUMNS",
    "TRACK_COLUMNS",
    "particle_label",
]
