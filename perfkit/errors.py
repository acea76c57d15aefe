"""
Exception hierarchy for perfkit.

Setup-time errors (:class:`ConfigError`, :class:`InitializationError`,
:class:`DataLoadError`) propagate to the load-test script and stop the
whole test.  Per-run conditions are logged first; only the fatal ones
(:class:`DataExhausted`, :class:`CorrelationMissing`) are raised, via the
abort boundary in :mod:`perfkit.context`.
"""

from __future__ import annotations


class PerfKitError(Exception):
    """Base class for every error raised by perfkit."""


class ConfigError(PerfKitError):
    """Required initialization fields are missing or invalid."""


class InitializationError(PerfKitError):
    """The first token generation failed, or the cache was never initialized."""


class GenerationFailure(PerfKitError):
    """A token request did not yield a usable token."""


class DataLoadError(PerfKitError):
    """A required dataset source could not be read."""


class RunAborted(PerfKitError):
    """
    The current run must stop.

    Attributes:
        reason: Human-readable explanation passed to the abort boundary.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class DataExhausted(RunAborted):
    """The allocation index fell outside the dataset."""


class CorrelationMissing(RunAborted):
    """A required correlated value was never extracted."""
