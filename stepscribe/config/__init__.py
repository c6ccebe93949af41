"""Configuration loading for stepscribe runs."""

from .loaders import RecorderConfig, load_config

__all__ = [
    "RecorderConfig",
    "load_config",
]
