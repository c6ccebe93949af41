"""Per-step snapshots handed over by the transport engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union

Position = Tuple[float, float, float]

# Geant4 reports optical photons with PDG encoding -22 (0 in releases before 10.x)
OPTICAL_PHOTON_CODE = -22


class BoundaryStatus(str, Enum):
    """Outcome assigned by the engine to an optical step that crosses an interface."""

    UNDEFINED = "undefined"
    TRANSMITTED = "transmitted"
    REFRACTED = "refracted"
    REFLECTED = "reflected"
    ABSORBED = "absorbed"
    DETECTED = "detected"
    NOT_AT_BOUNDARY = "not_at_boundary"
    SAME_MATERIAL = "same_material"
    STEP_TOO_SMALL = "step_too_small"

    @classmethod
    def coerce(cls, value: Union["BoundaryStatus", str, None]) -> "BoundaryStatus":
        if isinstance(value, BoundaryStatus):
            return value
        if value is None:
            return cls.UNDEFINED
        key = str(value).strip()
        status = _GEANT4_STATUS_NAMES.get(key)
        if status is not None:
            return status
        try:
            return cls(key.lower())
        except ValueError:
            return cls.UNDEFINED


_GEANT4_STATUS_NAMES: Dict[str, BoundaryStatus] = {
    "Undefined": BoundaryStatus.UNDEFINED,
    "Transmission": BoundaryStatus.TRANSMITTED,
    "FresnelRefraction": BoundaryStatus.REFRACTED,
    "FresnelReflection": BoundaryStatus.REFLECTED,
    "TotalInternalReflection": BoundaryStatus.REFLECTED,
    "LambertianReflection": BoundaryStatus.REFLECTED,
    "LobeReflection": BoundaryStatus.REFLECTED,
    "SpikeReflection": BoundaryStatus.REFLECTED,
    "BackScattering": BoundaryStatus.REFLECTED,
    "Absorption": BoundaryStatus.ABSORBED,
    "Detection": BoundaryStatus.DETECTED,
    "NotAtBoundary": BoundaryStatus.NOT_AT_BOUNDARY,
    "SameMaterial": BoundaryStatus.SAME_MATERIAL,
    "StepTooSmall": BoundaryStatus.STEP_TOO_SMALL,
}


@dataclass(frozen=True)
class StepRecord:
    """Observable quantities of one step. Not retained after dispatch."""

    track_id: int
    particle_code: int
    position: Position
    edep: float = 0.0
    alive: bool = True
    boundary: Optional[BoundaryStatus] = None
    on_boundary: Optional[bool] = None
    volume: Optional[str] = None


def as_position(values) -> Position:
    x, y, z = values
    return (float(x), float(y), float(z))


__all__ = ["BoundaryStatus", "OPTICAL_PHOTON_CODE", "Position", "StepRecord", "as_position"]
