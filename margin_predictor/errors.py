"""
Exception types raised by the margin predictor.

Integrity and configuration errors abort a run. History problems are local:
the feature builder drops the affected rows, and only the prediction path
raises them. Search exhaustion is a warning, never an exception.
"""
from __future__ import annotations


class MarginPredictorError(Exception):
    """Base class for every error raised by this package."""


class DataIntegrityError(MarginPredictorError):
    """Malformed or duplicate match / schedule records."""


class ConfigurationError(MarginPredictorError, ValueError):
    """Invalid parameter values or search ranges."""


class InsufficientHistoryError(MarginPredictorError):
    """A participant lacks the prior matches a feature needs."""


class MissingPriorDataError(InsufficientHistoryError):
    """Raised when a fixture cannot be predicted because a side has no usable prior match."""

    def __init__(self, participant: str, fixture: dict, reason: str = "no prior match"):
        self.participant = participant
        self.fixture = dict(fixture)
        self.reason = reason
        super().__init__(
            f"Cannot predict {fixture.get('home')} vs {fixture.get('away')} "
            f"on {fixture.get('date')}: {participant} has {reason}"
        )


class SearchExhaustionError(UserWarning):
    """No search candidate beat the trivial baseline (issued via warnings.warn)."""
