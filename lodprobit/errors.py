"""Error taxonomy for limit-of-detection estimation.

Every error raised by the estimation pipeline derives from
:class:`LoDEstimationError`, itself a :class:`ValueError`, so callers that
already guard numeric routines with ``except ValueError`` keep working.
"""

from __future__ import annotations


class LoDEstimationError(ValueError):
    """Base class for failures of the LoD estimation pipeline."""


class DataInsufficientError(LoDEstimationError):
    """Raised when the retained data cannot support a two-parameter fit.

    Triggered by fewer than two distinct positive concentration levels, or by
    a concentration level with zero total trials reaching the fit.
    """


class FitDivergedError(LoDEstimationError):
    """Raised when iteratively reweighted least squares fails to converge."""

    def __init__(self, message: str, n_iter: int | None = None):
        super().__init__(message)
        self.n_iter = n_iter


class DegenerateModelError(LoDEstimationError):
    """Raised when the fitted slope is zero or numerically negligible."""


class InvalidProbabilityError(LoDEstimationError):
    """Raised when a probability lies outside the open interval (0, 1)."""
