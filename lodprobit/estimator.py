"""
Probit limit-of-detection estimation.

This module turns replicate hit/miss counts at known concentrations into:
- a fitted probit dose-response model on log10(concentration):
    P(detect) = Phi(intercept + slope * log10(c)),
- a dense log-spaced prediction curve with pointwise confidence bands built
  on the linear-predictor scale and mapped through Phi, and
- inverse predictions: the concentration at which the fitted curve reaches
  each target detection probability, with delta-method limits.

The LoD is conventionally the inverse prediction at p = 0.95.

All functions are pure. Diagnostic conditions that leave the fit usable
(non-positive slope, fitted probabilities at 0 or 1) are reported with
``warnings.warn``; conditions that make the result undefined raise an
:class:`~lodprobit.errors.LoDEstimationError` subclass.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import EstimatorConfig, validate_probability
from .data_processing import (
    AssayObservation,
    coerce_observations,
    distinct_levels,
    filter_valid_observations,
)
from .errors import DataInsufficientError, DegenerateModelError, LoDEstimationError
from .schema import COLUMNS
from .stats.normal import norm_cdf, norm_ppf, z_for_confidence
from .stats.probit import fit_probit_glm

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Probit model ``eta = intercept + slope * log10(concentration)``."""

    intercept: float
    slope: float
    covariance: np.ndarray
    min_concentration: float
    max_concentration: float
    n_observations: int = 0
    n_iter: int = 0
    converged: bool = True
    deviance: float = math.nan
    null_deviance: float = math.nan
    log_likelihood: float = math.nan
    aic: float = math.nan
    df_residual: int = 0

    def __post_init__(self) -> None:
        cov = np.array(self.covariance, dtype=float)
        if cov.shape != (2, 2):
            raise ValueError(f"covariance must be 2x2, got shape {cov.shape}")
        cov.setflags(write=False)
        object.__setattr__(self, "covariance", cov)

    @staticmethod
    def link(p):
        """Probit link ``Phi^-1(p)``."""
        return norm_ppf(p)

    @staticmethod
    def inverse_link(eta):
        """Inverse probit link ``Phi(eta)``."""
        return norm_cdf(eta)

    @property
    def coefficients(self) -> np.ndarray:
        return np.array([self.intercept, self.slope])

    @property
    def coefficient_se(self) -> np.ndarray:
        return np.sqrt(np.diag(self.covariance))

    def linear_predictor(self, concentrations) -> np.ndarray:
        x = np.log10(np.asarray(concentrations, dtype=float))
        return self.intercept + self.slope * x

    def linear_predictor_se(self, concentrations) -> np.ndarray:
        """Delta-method standard error of ``eta`` at each concentration.

        ``se(x) = sqrt([1, x] Sigma [1, x]^T)`` with ``x = log10(c)``.
        """
        x = np.log10(np.asarray(concentrations, dtype=float))
        cov = self.covariance
        var = cov[0, 0] + 2.0 * x * cov[0, 1] + x**2 * cov[1, 1]
        return np.sqrt(np.maximum(var, 0.0))

    def to_dict(self) -> Dict[str, object]:
        """Plain-Python representation suitable for JSON serialization."""
        return {
            "intercept": float(self.intercept),
            "slope": float(self.slope),
            "covariance": self.covariance.tolist(),
            "min_concentration": float(self.min_concentration),
            "max_concentration": float(self.max_concentration),
            "n_observations": int(self.n_observations),
            "n_iter": int(self.n_iter),
            "converged": bool(self.converged),
            "deviance": float(self.deviance),
            "null_deviance": float(self.null_deviance),
            "log_likelihood": float(self.log_likelihood),
            "aic": float(self.aic),
            "df_residual": int(self.df_residual),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> "FittedModel":
        return cls(**dict(data))


@dataclass(frozen=True, eq=False)
class PredictionCurve:
    """Fitted detection probability and confidence band over a grid."""

    grid: np.ndarray
    fit: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    confidence_level: float = 0.95

    def __len__(self) -> int:
        return int(len(self.grid))

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                COLUMNS.concentration: self.grid,
                COLUMNS.fit: self.fit,
                COLUMNS.lower: self.lower,
                COLUMNS.upper: self.upper,
            }
        )

    def as_records(self) -> List[Tuple[float, float, float, float]]:
        return [
            (float(g), float(f), float(lo), float(hi))
            for g, f, lo, hi in zip(self.grid, self.fit, self.lower, self.upper)
        ]


@dataclass(frozen=True, eq=False)
class InversePrediction:
    """Concentrations at which the fitted curve reaches target probabilities.

    ``lower`` and ``upper`` are delta-method limits computed on the log10
    concentration scale and back-transformed, so they are asymmetric around
    ``concentrations``.
    """

    probabilities: Tuple[float, ...]
    concentrations: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    confidence_level: float = 0.95

    @property
    def lod(self) -> float:
        """Estimate at the highest requested probability."""
        idx = int(np.argmax(self.probabilities))
        return float(self.concentrations[idx])

    def as_dict(self) -> Dict[float, float]:
        return {p: float(c) for p, c in zip(self.probabilities, self.concentrations)}

    def as_records(self) -> List[Tuple[float, float]]:
        return [(p, float(c)) for p, c in zip(self.probabilities, self.concentrations)]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                COLUMNS.probability: list(self.probabilities),
                COLUMNS.estimate: self.concentrations,
                COLUMNS.lower: self.lower,
                COLUMNS.upper: self.upper,
            }
        )


@dataclass(frozen=True, eq=False)
class LoDResult:
    """Everything produced by one run of :class:`LoDEstimator`."""

    observations: Tuple[AssayObservation, ...]
    model: FittedModel
    curve: PredictionCurve
    inverse: InversePrediction
    config: EstimatorConfig = field(default_factory=EstimatorConfig)

    @property
    def lod(self) -> float:
        return self.inverse.lod


def fit_probit_model(data, config: Optional[EstimatorConfig] = None) -> FittedModel:
    """Fit a probit binomial GLM on log10(concentration).

    Args:
        data: Observations with ``concentration > 0`` (the output of
            :func:`~lodprobit.data_processing.filter_valid_observations`), as
            ``AssayObservation`` instances, tuples or a DataFrame.
        config (EstimatorConfig, optional): Supplies ``tol`` and ``max_iter``.

    Returns:
        FittedModel: Coefficients, covariance, observed range and fit
        diagnostics.

    Raises:
        ValueError: If any concentration is non-positive or non-finite.
        DataInsufficientError: If a row has zero trials or fewer than two
            distinct concentration levels are present.
        FitDivergedError: If IRLS does not converge.

    Note:
        A non-positive slope is returned as fitted but emits a
        ``UserWarning``: detection probability should rise with
        concentration, so this usually means the design is too narrow or the
        replicates too few.
    """
    config = config or EstimatorConfig()
    observations = coerce_observations(data)
    if not observations:
        raise DataInsufficientError("No observations supplied for fitting.")

    conc = np.array([obs.concentration for obs in observations], dtype=float)
    successes = np.array([obs.success_count for obs in observations], dtype=float)
    trials = np.array([obs.trials for obs in observations], dtype=float)

    if not np.all(np.isfinite(conc) & (conc > 0)):
        raise ValueError(
            "All concentrations must be positive and finite; "
            "run filter_valid_observations first."
        )
    empty = conc[trials == 0]
    if len(empty):
        raise DataInsufficientError(
            f"Concentration level(s) {empty.tolist()} have zero trials."
        )
    n_levels = len(distinct_levels(observations))
    if n_levels < 2:
        raise DataInsufficientError(
            f"At least 2 distinct positive concentration levels are required; "
            f"found {n_levels}."
        )

    result = fit_probit_glm(
        np.log10(conc), successes, trials, tol=config.tol, max_iter=config.max_iter
    )
    intercept, slope = (float(v) for v in result["coef"])

    model = FittedModel(
        intercept=intercept,
        slope=slope,
        covariance=result["cov"],
        min_concentration=float(np.min(conc)),
        max_concentration=float(np.max(conc)),
        n_observations=len(observations),
        n_iter=int(result["n_iter"]),
        converged=bool(result["converged"]),
        deviance=float(result["deviance"]),
        null_deviance=float(result["null_deviance"]),
        log_likelihood=float(result["log_likelihood"]),
        aic=float(result["aic"]),
        df_residual=int(result["df_residual"]),
    )
    logger.info(
        "Probit fit converged in %d iterations: intercept=%.4f slope=%.4f deviance=%.4f",
        model.n_iter,
        model.intercept,
        model.slope,
        model.deviance,
    )

    if slope <= 0:
        warnings.warn(
            f"Fitted probit slope ({slope:.4g}) is not positive; detection "
            f"probability does not increase with concentration. The data may be "
            f"degenerate or insufficient.",
            UserWarning,
            stacklevel=2,
        )
    if result["boundary"]:
        warnings.warn(
            "Fitted probabilities numerically 0 or 1 occurred; the levels may be "
            "separated and coefficient standard errors unreliable.",
            UserWarning,
            stacklevel=2,
        )
    return model


def predict_probability(model: FittedModel, concentrations) -> np.ndarray:
    """Fitted detection probability ``Phi(eta)`` at positive concentrations."""
    return model.inverse_link(model.linear_predictor(concentrations))


def _prediction_grid(model: FittedModel, num_points: int, start: float) -> np.ndarray:
    if model.max_concentration <= start:
        start = model.min_concentration
    return np.geomspace(start, model.max_concentration, int(num_points))


def predict_curve(
    model: FittedModel,
    num_points: int = 1000,
    confidence_level: float = 0.95,
    grid_start: float = 1.0,
) -> PredictionCurve:
    """Evaluate the fitted curve and its confidence band on a log grid.

    Args:
        model (FittedModel): Output of :func:`fit_probit_model`.
        num_points (int, optional): Grid size. Defaults to ``1000``.
        confidence_level (float, optional): Two-sided band coverage.
            Defaults to ``0.95`` (``z = 1.96``).
        grid_start (float, optional): Lower grid end. Defaults to ``1.0``.
            When the highest observed concentration does not exceed it, the
            grid starts at the lowest observed concentration instead so the
            grid stays ascending.

    Returns:
        PredictionCurve: ``grid`` spans ``[grid_start, max_concentration]``
        inclusive; ``fit = Phi(eta)``, ``lower = Phi(eta - z*se)`` and
        ``upper = Phi(eta + z*se)``.

    Raises:
        ValueError: If ``num_points < 2``.
        InvalidProbabilityError: If ``confidence_level`` is not in (0, 1).

    Note:
        The band is symmetric on the linear-predictor scale, so after mapping
        through Phi it always lies within [0, 1] without clamping.
    """
    if int(num_points) < 2:
        raise ValueError(f"num_points must be at least 2, got {num_points!r}")
    level = validate_probability(confidence_level, "confidence level")
    z = z_for_confidence(level)

    grid = _prediction_grid(model, num_points, float(grid_start))
    eta = model.linear_predictor(grid)
    se = model.linear_predictor_se(grid)

    return PredictionCurve(
        grid=grid,
        fit=model.inverse_link(eta),
        lower=model.inverse_link(eta - z * se),
        upper=model.inverse_link(eta + z * se),
        confidence_level=level,
    )


def inverse_predict(
    model: FittedModel,
    target_probabilities: Sequence[float],
    confidence_level: float = 0.95,
    slope_tolerance: float = 1e-8,
) -> InversePrediction:
    """Solve ``Phi(intercept + slope * log10(c)) = p`` for each target ``p``.

    Args:
        model (FittedModel): Output of :func:`fit_probit_model`.
        target_probabilities (Sequence[float]): Probabilities strictly in
            (0, 1). Output preserves this order.
        confidence_level (float, optional): Coverage of the delta-method
            limits. Defaults to ``0.95``.
        slope_tolerance (float, optional): Slopes with magnitude at or below
            this value are treated as zero. Defaults to ``1e-8``.

    Returns:
        InversePrediction: ``c = 10 ** ((Phi^-1(p) - intercept) / slope)``
        per target, with limits ``10 ** (x_p -/+ z * se(x_p))``.

    Raises:
        InvalidProbabilityError: If a target or the confidence level lies
            outside (0, 1).
        DegenerateModelError: If the slope is zero, negligible or non-finite.

    Note:
        The variance of ``x_p = (q - a) / b`` uses the gradient
        ``[-1/b, -x_p/b]`` against the coefficient covariance.
        When the levels are separated the limits can be ``0`` or ``inf``.
    """
    probs = tuple(validate_probability(p, "target probability") for p in target_probabilities)
    level = validate_probability(confidence_level, "confidence level")

    a = float(model.intercept)
    b = float(model.slope)
    if not math.isfinite(b) or abs(b) <= slope_tolerance:
        raise DegenerateModelError(
            f"Fitted slope ({b!r}) is zero or negligible; inverse prediction "
            f"is undefined."
        )

    q = norm_ppf(np.asarray(probs, dtype=float))
    x_p = (q - a) / b

    grad = np.column_stack([np.full_like(x_p, -1.0 / b), -x_p / b])
    var = np.einsum("ij,jk,ik->i", grad, model.covariance, grad)
    se = np.sqrt(np.maximum(var, 0.0))
    z = z_for_confidence(level)

    # Separated data gives huge se; the limits then saturate to 0 or inf.
    with np.errstate(over="ignore"):
        concentrations = np.power(10.0, x_p)
        lower = np.power(10.0, x_p - z * se)
        upper = np.power(10.0, x_p + z * se)

    return InversePrediction(
        probabilities=probs,
        concentrations=concentrations,
        lower=lower,
        upper=upper,
        confidence_level=level,
    )


class LoDEstimator:
    """Run the full filter, fit, curve and inversion pipeline.

    The estimator holds only its configuration; every call is independent,
    so one instance can be shared across assays or worker threads.
    """

    def __init__(self, config: Optional[EstimatorConfig] = None):
        self.config = config or EstimatorConfig()

    def estimate(self, data) -> LoDResult:
        """Estimate the LoD for one assay.

        Args:
            data: Observations as ``AssayObservation`` instances,
                ``(concentration, successes, failures)`` tuples or a DataFrame.

        Returns:
            LoDResult: Filtered observations, fitted model, prediction curve
            and inverse predictions.

        Raises:
            LoDEstimationError: Any failure of the pipeline; no partial
                result is returned.
        """
        cfg = self.config
        observations = filter_valid_observations(data)
        model = fit_probit_model(observations, cfg)
        curve = predict_curve(
            model,
            num_points=cfg.grid_size,
            confidence_level=cfg.confidence_level,
            grid_start=cfg.grid_start,
        )
        inverse = inverse_predict(
            model,
            cfg.target_probabilities,
            confidence_level=cfg.confidence_level,
            slope_tolerance=cfg.slope_tolerance,
        )
        logger.info(
            "Estimated concentration at p=%.2f: %.4g",
            max(inverse.probabilities),
            inverse.lod,
        )
        return LoDResult(
            observations=tuple(observations),
            model=model,
            curve=curve,
            inverse=inverse,
            config=cfg,
        )

    def estimate_batch(self, datasets: Mapping[str, object]) -> Dict[str, LoDResult]:
        """Estimate every assay in ``datasets``, skipping those that fail.

        Failures are logged with their reason and the assay is left out of
        the returned mapping.
        """
        results: Dict[str, LoDResult] = {}
        for name, data in datasets.items():
            try:
                results[name] = self.estimate(data)
            except LoDEstimationError as exc:
                logger.warning(
                    "Skipping assay '%s': %s: %s", name, type(exc).__name__, exc
                )
        logger.info("Estimated %d of %d assays", len(results), len(datasets))
        return results


def summarize_batch(results: Mapping[str, LoDResult]) -> pd.DataFrame:
    """One row per assay with coefficients, LoD and its confidence limits."""
    rows = []
    for name, res in results.items():
        idx = int(np.argmax(res.inverse.probabilities))
        rows.append(
            {
                "assay": name,
                "intercept": res.model.intercept,
                "slope": res.model.slope,
                "deviance": res.model.deviance,
                COLUMNS.probability: res.inverse.probabilities[idx],
                "lod": float(res.inverse.concentrations[idx]),
                "lod_lower": float(res.inverse.lower[idx]),
                "lod_upper": float(res.inverse.upper[idx]),
            }
        )
    columns = [
        "assay",
        "intercept",
        "slope",
        "deviance",
        COLUMNS.probability,
        "lod",
        "lod_lower",
        "lod_upper",
    ]
    return pd.DataFrame(rows, columns=columns)
