"""Custom exceptions for the :mod:`stepscribe` package."""

from __future__ import annotations


class StepScribeError(Exception):
    """Base exception for step recording errors."""


class EventOrderError(StepScribeError, RuntimeError):
    """An event id arrived out of order or was reused after closing."""


class AggregatorFrozenError(StepScribeError, RuntimeError):
    """The aggregator was mutated after the end of the run."""


class ReductionError(StepScribeError, RuntimeError):
    """Run-wide reduction was attempted twice or before every worker finished."""


class ConfigurationError(StepScribeError, ValueError):
    """Invalid recorder configuration value."""


class StreamFormatError(StepScribeError, ValueError):
    """A replayed step stream contains a malformed record."""


__all__ = [
    "StepScribeError",
    "EventOrderError",
    "AggregatorFrozenError",
    "ReductionError",
    "ConfigurationError",
    "StreamFormatError",
]
