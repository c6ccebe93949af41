"""Recorder configuration loading."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from ..errors import ConfigurationError
from ..recording.detector import DetectorHandle, default_detector
from ..recording.dispatch import DispatchOptions
from ..recording.units import ENERGY_UNITS, LENGTH_UNITS
from ..recording.writer import SUPPORTED_FORMATS


@dataclass
class RecorderConfig:
    """Configuration structure for a recording run."""

    length_unit: str = "cm"
    energy_unit: str = "keV"
    output_dir: Path = Path("output")
    formats: Tuple[str, ...] = ("parquet",)
    options: DispatchOptions = field(default_factory=DispatchOptions)
    detector: DetectorHandle = field(default_factory=default_detector)
    particle_labels: Dict[int, str] = field(default_factory=dict)
    log_level: str = "INFO"

    def with_overrides(self, **overrides: Any) -> "RecorderConfig":
        values = {key: value for key, value in overrides.items() if value is not None}
        if "output_dir" in values:
            values["output_dir"] = Path(values["output_dir"])
        if "formats" in values:
            values["formats"] = tuple(values["formats"])
        config = replace(self, **values)
        _validate(config)
        return config


_DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")


def _load_yaml_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    path = config_path or _DEFAULT_CONFIG_PATH
    with open(path, "r", encoding="utf-8") as stream:
        data = yaml.safe_load(stream)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return data


def _parse_config(config: Dict[str, Any], base_path: Path) -> RecorderConfig:
    formats = config.get("formats", ["parquet"])
    if isinstance(formats, str):
        formats = [formats]
    detector_cfg = config.get("detector")
    detector = DetectorHandle.from_entries(detector_cfg) if detector_cfg is not None else default_detector()
    labels_cfg = config.get("particle_labels") or {}
    try:
        labels = {int(code): str(label) for code, label in labels_cfg.items()}
    except (AttributeError, ValueError) as exc:
        raise ConfigurationError(f"particle_labels must map integer codes to names: {exc}") from exc
    output_dir = Path(config.get("output_dir", "output"))
    if not output_dir.is_absolute():
        output_dir = base_path / output_dir
    parsed = RecorderConfig(
        length_unit=str(config.get("length_unit", "cm")),
        energy_unit=str(config.get("energy_unit", "keV")),
        output_dir=output_dir,
        formats=tuple(str(fmt).lower() for fmt in formats),
        options=DispatchOptions.from_mapping(config.get("options")),
        detector=detector,
        particle_labels=labels,
        log_level=str(config.get("log_level", "INFO")).upper(),
    )
    _validate(parsed)
    return parsed


def _validate(config: RecorderConfig) -> None:
    if config.length_unit not in LENGTH_UNITS:
        raise ConfigurationError(f"Unsupported length unit '{config.length_unit}'")
    if config.energy_unit not in ENERGY_UNITS:
        raise ConfigurationError(f"Unsupported energy unit '{config.energy_unit}'")
    unknown = sorted(set(config.formats).difference(SUPPORTED_FORMATS))
    if unknown:
        raise ConfigurationError(f"Unsupported output format(s): {', '.join(unknown)}")
    if not config.formats:
        raise ConfigurationError("At least one output format is required")


def load_config(config_path: Optional[Path | str] = None) -> RecorderConfig:
    path = Path(config_path) if config_path is not None else None
    raw_config = _load_yaml_config(path)
    # Relative output directories follow the config file; the packaged default writes under cwd
    base_path = path.parent if path is not None else Path.cwd()
    return _parse_config(raw_config, base_path)


__all__ = ["RecorderConfig", "load_config"]
