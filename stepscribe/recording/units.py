"""Unit conversion factors relative to the engine's internal units (mm, MeV)."""

from __future__ import annotations

from typing import Dict

from ..errors import ConfigurationError

LENGTH_UNITS: Dict[str, float] = {
    "um": 1e-3,
    "mm": 1.0,
    "cm": 10.0,
    "m": 1e3,
}

ENERGY_UNITS: Dict[str, float] = {
    "eV": 1e-6,
    "keV": 1e-3,
    "MeV": 1.0,
    "GeV": 1e3,
}


def length_scale(unit: str) -> float:
    """Factor that converts an internal length to ``unit`` by division."""

    try:
        return LENGTH_UNITS[unit]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported length unit '{unit}'. Supported units: {', '.join(LENGTH_UNITS)}"
        ) from None


def energy_scale(unit: str) -> float:
    try:
        return ENERGY_UNITS[unit]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported energy unit '{unit}'. Supported units: {', '.join(ENERGY_UNITS)}"
        ) from None


__all__ = ["ENERGY_UNITS", "LENGTH_UNITS", "energy_scale", "length_scale"]
