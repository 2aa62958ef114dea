"""
Handles observation parsing, filtering and per-level aggregation.
"""

# Algorithm summary: coerce (concentration, successes, failures) rows from
# tuples or a DataFrame into AssayObservation records, drop rows that cannot
# take a log10 transform (concentration <= 0 or non-finite, as in CLSI
# EP17-A2), and check that at least two distinct positive levels remain for a
# two-parameter fit.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence

import numpy as np
import pandas as pd

from .errors import DataInsufficientError
from .schema import COLUMNS

logger = logging.getLogger(__name__)

_CONCENTRATION_ALIASES = ("concentration", "conc", "copies", "dose", "level")
_SUCCESS_ALIASES = ("successes", "success", "success_count", "hits", "positive", "detected")
_FAILURE_ALIASES = ("failures", "failure", "failure_count", "misses", "negative", "not_detected")


@dataclass(frozen=True)
class AssayObservation:
    """One tested concentration with its replicate detection counts."""

    concentration: float
    success_count: int
    failure_count: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "concentration", float(self.concentration))
        for name in ("success_count", "failure_count"):
            raw = getattr(self, name)
            count = float(raw)
            if not math.isfinite(count) or count < 0 or count != int(count):
                raise ValueError(f"{name} must be a non-negative integer, got {raw!r}")
            object.__setattr__(self, name, int(count))

    @property
    def trials(self) -> int:
        return self.success_count + self.failure_count

    @property
    def hit_rate(self) -> float:
        return self.success_count / self.trials if self.trials else math.nan


def _resolve_column(frame: pd.DataFrame, candidates: tuple[str, ...], label: str) -> str:
    """Resolve one input column among canonical candidates, ignoring case."""
    lookup = {str(col).strip().lower(): col for col in frame.columns}
    for name in candidates:
        found = lookup.get(name)
        if found is not None:
            return found
    raise ValueError(
        f"No {label} column found. Expected one of {list(candidates)}; "
        f"available columns: {list(frame.columns)}"
    )


def observations_from_frame(frame: pd.DataFrame) -> List[AssayObservation]:
    """Build observations from a DataFrame with concentration and count columns.

    Args:
        frame (pandas.DataFrame): One row per tested level. Column names are
            matched case-insensitively against common aliases, for example
            ``concentration``/``copies``, ``successes``/``hits`` and
            ``failures``/``misses``.

    Returns:
        list[AssayObservation]: Observations in row order.

    Raises:
        ValueError: If a required column is missing or a count is invalid.
    """
    conc_col = _resolve_column(frame, _CONCENTRATION_ALIASES, "concentration")
    succ_col = _resolve_column(frame, _SUCCESS_ALIASES, "success count")
    fail_col = _resolve_column(frame, _FAILURE_ALIASES, "failure count")

    conc = pd.to_numeric(frame[conc_col], errors="coerce").to_numpy(dtype=float)
    succ = pd.to_numeric(frame[succ_col], errors="coerce").to_numpy(dtype=float)
    fail = pd.to_numeric(frame[fail_col], errors="coerce").to_numpy(dtype=float)

    return [AssayObservation(c, s, f) for c, s, f in zip(conc, succ, fail)]


def coerce_observations(data) -> List[AssayObservation]:
    """Normalise supported input forms into a list of observations.

    Accepts a :class:`pandas.DataFrame`, or any iterable of
    :class:`AssayObservation` instances and ``(concentration, successes,
    failures)`` tuples.
    """
    if isinstance(data, pd.DataFrame):
        return observations_from_frame(data)

    observations = []
    for row in data:
        if isinstance(row, AssayObservation):
            observations.append(row)
        else:
            concentration, successes, failures = row
            observations.append(AssayObservation(concentration, successes, failures))
    return observations


def observations_to_frame(observations: Iterable[AssayObservation]) -> pd.DataFrame:
    """Return observations as a tidy DataFrame using the shared column labels."""
    rows = [
        {
            COLUMNS.concentration: obs.concentration,
            COLUMNS.successes: obs.success_count,
            COLUMNS.failures: obs.failure_count,
            COLUMNS.trials: obs.trials,
        }
        for obs in observations
    ]
    return pd.DataFrame(
        rows,
        columns=[
            COLUMNS.concentration,
            COLUMNS.successes,
            COLUMNS.failures,
            COLUMNS.trials,
        ],
    )


def distinct_levels(observations: Sequence[AssayObservation]) -> np.ndarray:
    """Return the sorted distinct concentrations present in ``observations``."""
    return np.unique([obs.concentration for obs in observations])


def filter_valid_observations(data) -> List[AssayObservation]:
    """Keep only observations whose concentration can be log10-transformed.

    Zero-concentration (blank) and non-finite rows are dropped, consistent
    with CLSI EP17-A2 practice for probit LoD. All other rows are returned
    unchanged and in input order.

    Args:
        data: Observations in any form accepted by :func:`coerce_observations`.

    Returns:
        list[AssayObservation]: Rows with finite ``concentration > 0``.

    Raises:
        DataInsufficientError: If fewer than two distinct positive
            concentration levels remain.
    """
    observations = coerce_observations(data)
    kept = [
        obs
        for obs in observations
        if math.isfinite(obs.concentration) and obs.concentration > 0
    ]

    dropped = len(observations) - len(kept)
    if dropped:
        logger.info(
            "Dropped %d observation(s) with non-positive or non-finite concentration",
            dropped,
        )

    n_levels = len(distinct_levels(kept))
    if n_levels < 2:
        raise DataInsufficientError(
            f"At least 2 distinct positive concentration levels are required; "
            f"found {n_levels}."
        )
    return kept


def aggregate_observations(data) -> List[AssayObservation]:
    """Pool replicate counts that share a concentration.

    Returns:
        list[AssayObservation]: One observation per distinct concentration,
        sorted by ascending concentration.
    """
    frame = observations_to_frame(coerce_observations(data))
    if frame.empty:
        return []
    pooled = (
        frame.groupby(COLUMNS.concentration, as_index=False, sort=True)[
            [COLUMNS.successes, COLUMNS.failures]
        ]
        .sum()
    )
    return [
        AssayObservation(row[0], row[1], row[2])
        for row in pooled.itertuples(index=False, name=None)
    ]


def hit_rate_table(data) -> pd.DataFrame:
    """Observed detection fraction per concentration level.

    This is the raw-data overlay that accompanies a fitted probit curve.

    Returns:
        pandas.DataFrame: Columns ``concentration``, ``successes``,
        ``failures``, ``trials`` and ``hit_rate`` sorted by concentration.
        Levels with zero trials report a NaN hit rate.
    """
    frame = observations_to_frame(aggregate_observations(data))
    trials = frame[COLUMNS.trials].to_numpy(dtype=float)
    successes = frame[COLUMNS.successes].to_numpy(dtype=float)
    with np.errstate(invalid="ignore", divide="ignore"):
        frame[COLUMNS.hit_rate] = np.where(trials > 0, successes / trials, np.nan)
    return frame
