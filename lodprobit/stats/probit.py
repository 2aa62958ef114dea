"""Binomial generalized linear model with a probit link.

The fit is maximum likelihood by iteratively reweighted least squares (Fisher
scoring). Starting values, the linear-predictor clamp and the relative
deviance stopping rule follow the conventions of standard GLM solvers, so
coefficients agree with them to within floating-point tolerance.
"""

from __future__ import annotations

import logging
from typing import Dict

import numpy as np
from scipy import special
from scipy.stats import binom

from ..errors import FitDivergedError
from .normal import EPSILON, ETA_THRESHOLD, norm_cdf, norm_pdf, norm_ppf

logger = logging.getLogger(__name__)


def _linkinv(eta: np.ndarray) -> np.ndarray:
    return norm_cdf(np.clip(eta, -ETA_THRESHOLD, ETA_THRESHOLD))


def _mu_eta(eta: np.ndarray) -> np.ndarray:
    return np.maximum(norm_pdf(eta), EPSILON)


def binomial_deviance(successes: np.ndarray, trials: np.ndarray, mu: np.ndarray) -> float:
    """Residual deviance of binomial counts against fitted probabilities."""
    y = np.asarray(successes, dtype=float)
    n = np.asarray(trials, dtype=float)
    mu = np.asarray(mu, dtype=float)
    failures = n - y
    dev = special.xlogy(y, y / (n * mu)) + special.xlogy(
        failures, failures / (n * (1.0 - mu))
    )
    return float(2.0 * np.sum(dev))


def binomial_log_likelihood(
    successes: np.ndarray, trials: np.ndarray, mu: np.ndarray
) -> float:
    """Binomial log-likelihood including the combinatorial constant."""
    return float(np.sum(binom.logpmf(successes, trials, mu)))


def fit_probit_glm(
    x: np.ndarray,
    successes: np.ndarray,
    trials: np.ndarray,
    tol: float = 1e-8,
    max_iter: int = 100,
) -> Dict[str, object]:
    """Fit ``P(success) = Phi(b0 + b1 * x)`` to grouped binomial counts.

    Args:
        x (numpy.ndarray): Predictor values, one per group.
        successes (numpy.ndarray): Successful trials per group.
        trials (numpy.ndarray): Total trials per group; all must be positive.
        tol (float, optional): Convergence threshold on
            ``|dev - dev_old| / (|dev| + 0.1)``. Defaults to ``1e-8``.
        max_iter (int, optional): Maximum IRLS iterations. Defaults to ``100``.

    Returns:
        dict[str, object]: ``coef`` (intercept, slope), ``cov`` (2x2
        inverse Fisher information), ``mu`` (fitted probabilities),
        ``eta``, ``deviance``, ``null_deviance``, ``log_likelihood``,
        ``aic``, ``df_residual``, ``n_iter``, ``converged`` and
        ``boundary`` (fitted probabilities numerically 0 or 1).

    Raises:
        ValueError: If inputs are mis-shaped or a group has no trials.
        FitDivergedError: If the iteration produces non-finite values, the
            weighted information matrix is singular, or the deviance has not
            settled after ``max_iter`` iterations.

    References:
        McCullagh and Nelder, Generalized Linear Models, 2nd ed., section 2.5.
    """
    x_arr = np.asarray(x, dtype=float)
    y = np.asarray(successes, dtype=float)
    n = np.asarray(trials, dtype=float)
    if not (x_arr.shape == y.shape == n.shape) or x_arr.ndim != 1:
        raise ValueError("x, successes and trials must be 1-D arrays of equal length.")
    if np.any(n <= 0):
        raise ValueError("Every group must have at least one trial.")
    if np.any((y < 0) | (y > n)):
        raise ValueError("successes must lie between 0 and trials.")

    X = np.column_stack([np.ones_like(x_arr), x_arr])
    p_obs = y / n

    mu = (y + 0.5) / (n + 1.0)
    eta = norm_ppf(mu)
    dev_old = binomial_deviance(y, n, mu)
    beta = np.zeros(2)

    converged = False
    n_iter = 0
    for n_iter in range(1, int(max_iter) + 1):
        mu_eta = _mu_eta(eta)
        z = eta + (p_obs - mu) / mu_eta
        w = n * mu_eta**2 / (mu * (1.0 - mu))

        xtw = X.T * w
        try:
            beta = np.linalg.solve(xtw @ X, xtw @ z)
        except np.linalg.LinAlgError as exc:
            raise FitDivergedError(
                f"Weighted information matrix is singular at iteration {n_iter}.",
                n_iter=n_iter,
            ) from exc
        if not np.all(np.isfinite(beta)):
            raise FitDivergedError(
                f"Non-finite coefficients at iteration {n_iter}.", n_iter=n_iter
            )

        eta = X @ beta
        mu = _linkinv(eta)
        dev = binomial_deviance(y, n, mu)
        if not np.isfinite(dev):
            raise FitDivergedError(
                f"Non-finite deviance at iteration {n_iter}.", n_iter=n_iter
            )
        logger.debug(
            "IRLS iteration %d: beta=(%.6g, %.6g) deviance=%.10g",
            n_iter,
            beta[0],
            beta[1],
            dev,
        )
        if abs(dev - dev_old) / (abs(dev) + 0.1) < tol:
            converged = True
            break
        dev_old = dev

    if not converged:
        raise FitDivergedError(
            f"Probit fit did not converge within {int(max_iter)} iterations.",
            n_iter=n_iter,
        )

    mu_eta = _mu_eta(eta)
    w = n * mu_eta**2 / (mu * (1.0 - mu))
    info = (X.T * w) @ X
    try:
        cov = np.linalg.inv(info)
    except np.linalg.LinAlgError as exc:
        raise FitDivergedError(
            "Fisher information is singular at the converged estimate.",
            n_iter=n_iter,
        ) from exc

    boundary = bool(np.any(mu > 1.0 - 10 * EPSILON) or np.any(mu < 10 * EPSILON))

    pooled = np.clip(np.sum(y) / np.sum(n), EPSILON, 1.0 - EPSILON)
    mu_null = np.full_like(y, pooled)
    log_likelihood = binomial_log_likelihood(y, n, mu)

    return {
        "coef": beta,
        "cov": cov,
        "eta": eta,
        "mu": mu,
        "deviance": dev,
        "null_deviance": binomial_deviance(y, n, mu_null),
        "log_likelihood": log_likelihood,
        "aic": -2.0 * log_likelihood + 2.0 * X.shape[1],
        "df_residual": int(len(y) - X.shape[1]),
        "n_iter": int(n_iter),
        "converged": converged,
        "boundary": boundary,
    }
