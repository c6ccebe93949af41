"""Detector handle listing the surfaces the recorder cares about."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Mapping


@dataclass(frozen=True)
class Surface:
    """A named volume or optical surface of the detector."""

    name: str
    role: str = "passive"
    sensitive: bool = False


@dataclass
class DetectorHandle:
    """Resolved once at run start and handed to the dispatcher, never looked up per step."""

    surfaces: List[Surface] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._sensitive: FrozenSet[str] = frozenset(surface.name for surface in self.surfaces if surface.sensitive)

    def __iter__(self):
        return iter(self.surfaces)

    def __len__(self):
        return len(self.surfaces)

    def is_sensitive(self, name: str) -> bool:
        return name in self._sensitive

    def sensitive_names(self) -> FrozenSet[str]:
        return self._sensitive

    def summary(self) -> str:
        lines = ["Detector Surfaces:"]
        for surface in self.surfaces:
            flag = "sensitive" if surface.sensitive else "passive"
            lines.append(f"- {surface.name}: role={surface.role}, {flag}")
        return "\n".join(lines)

    @classmethod
    def from_entries(cls, entries: Iterable[Mapping]) -> "DetectorHandle":
        surfaces = []
        for entry in entries:
            surfaces.append(
                Surface(
                    name=str(entry["name"]),
                    role=str(entry.get("role", "passive")),
                    sensitive=bool(entry.get("sensitive", False)),
                )
            )
        return cls(surfaces=surfaces)


def default_detector() -> DetectorHandle:
    """Energy and tracking readout planes of the reference detector."""

    return DetectorHandle(
        surfaces=[
            Surface(name="ENERGY_PLANE", role="energy", sensitive=True),
            Surface(name="TRACKING_PLANE", role="tracking", sensitive=True),
            Surface(name="DETECTOR", role="active_volume", sensitive=False),
        ]
    )


__all__ = ["DetectorHandle", "Surface", "default_detector"]
