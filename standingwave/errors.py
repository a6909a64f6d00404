"""
Exception taxonomy for the standing wave runtime.

Transient external failures, validation failures, weaving mode failures,
persistence failures and turn timeouts are kept apart so callers can decide
which ones are absorbed (fallback text, parallel fallback) and which ones are
surfaced as hard errors.
"""


class StandingWaveError(Exception):
    """Base class for all runtime errors."""


class ModelCallError(StandingWaveError):
    """Raised when a model backend call fails after its retry budget."""


class ExternalLookupError(StandingWaveError):
    """Raised when the external lookup backend cannot answer."""


class OutputValidationError(StandingWaveError):
    """Raised when model output is malformed; never retried."""


class WeavingError(StandingWaveError):
    """Raised when the weaving protocol must be abandoned for a turn."""


class PersistenceError(StandingWaveError):
    """Raised when a state or memory snapshot cannot be read or written."""


class NoBackupError(PersistenceError):
    """Raised when a restore is requested but no backup snapshot exists."""


class TurnTimeoutError(StandingWaveError):
    """Raised when a turn exceeds its aggregate deadline."""


class ConservationError(StandingWaveError):
    """Raised on any attempt to delete a memory record."""


__all__ = [
    "StandingWaveError",
    "ModelCallError",
    "ExternalLookupError",
    "OutputValidationError",
    "WeavingError",
    "PersistenceError",
    "NoBackupError",
    "TurnTimeoutError",
    "ConservationError",
]
