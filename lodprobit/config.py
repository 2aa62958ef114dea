"""Caller-supplied configuration for the LoD estimation pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from .errors import InvalidProbabilityError

DEFAULT_TARGET_PROBABILITIES: Tuple[float, ...] = (0.5, 0.6, 0.7, 0.8, 0.9, 0.95)
DEFAULT_GRID_SIZE = 1000
DEFAULT_CONFIDENCE_LEVEL = 0.95
DEFAULT_GRID_START = 1.0

# IRLS stopping rule on the relative change in deviance.
DEFAULT_TOL = 1e-8
DEFAULT_MAX_ITER = 100

# Slopes at or below this magnitude make inverse prediction undefined.
DEFAULT_SLOPE_TOLERANCE = 1e-8


def validate_probability(value: float, label: str = "probability") -> float:
    """Return ``value`` as float if it lies strictly inside (0, 1).

    Args:
        value (float): Candidate probability.
        label (str, optional): Name used in the error message.

    Returns:
        float: The validated probability.

    Raises:
        InvalidProbabilityError: If ``value`` is non-finite or outside (0, 1).
    """
    try:
        p = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidProbabilityError(f"{label} must be numeric, got {value!r}") from exc
    if not math.isfinite(p) or p <= 0.0 or p >= 1.0:
        raise InvalidProbabilityError(
            f"{label} must lie strictly between 0 and 1, got {value!r}"
        )
    return p


@dataclass(frozen=True)
class EstimatorConfig:
    """Explicit parameters for one LoD estimation.

    Attributes:
        target_probabilities: Detection probabilities to invert, in the order
            they should be reported. The last-ordered maximum is treated as
            the LoD definition (0.95 by default).
        grid_size: Number of log-spaced points in the prediction curve.
        confidence_level: Two-sided coverage of the curve bands and of the
            inverse-prediction limits. Sets ``z = Phi^-1(1 - (1 - level) / 2)``.
        grid_start: Lower end of the prediction grid in concentration units.
        tol: Relative deviance change below which IRLS stops.
        max_iter: Maximum number of IRLS iterations before the fit is
            declared divergent.
        slope_tolerance: Absolute slope magnitude treated as zero.
    """

    target_probabilities: Tuple[float, ...] = DEFAULT_TARGET_PROBABILITIES
    grid_size: int = DEFAULT_GRID_SIZE
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    grid_start: float = DEFAULT_GRID_START
    tol: float = DEFAULT_TOL
    max_iter: int = DEFAULT_MAX_ITER
    slope_tolerance: float = DEFAULT_SLOPE_TOLERANCE

    def __post_init__(self) -> None:
        probs = tuple(
            validate_probability(p, "target probability")
            for p in self.target_probabilities
        )
        if not probs:
            raise ValueError("At least one target probability is required.")
        object.__setattr__(self, "target_probabilities", probs)
        validate_probability(self.confidence_level, "confidence level")

        if int(self.grid_size) != self.grid_size or self.grid_size < 2:
            raise ValueError(f"grid_size must be an integer >= 2, got {self.grid_size!r}")
        if not math.isfinite(self.grid_start) or self.grid_start <= 0:
            raise ValueError("grid_start must be positive and finite.")
        if not self.tol > 0:
            raise ValueError("tol must be positive.")
        if int(self.max_iter) != self.max_iter or self.max_iter < 1:
            raise ValueError("max_iter must be a positive integer.")
        if not self.slope_tolerance >= 0:
            raise ValueError("slope_tolerance must be non-negative.")
