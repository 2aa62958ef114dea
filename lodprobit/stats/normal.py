"""Standard normal distribution primitives for the probit link.

The CDF and quantile are taken from :mod:`scipy.special` (``ndtr`` and
``ndtri``), which stay accurate far into the tails where naive
``0.5 * erfc`` or rational approximations lose precision.
"""

from __future__ import annotations

import numpy as np
from scipy import special
from scipy.stats import norm

EPSILON = float(np.finfo(float).eps)

# Linear-predictor magnitude beyond which Phi(eta) rounds to 0 or 1.
ETA_THRESHOLD = float(-special.ndtri(EPSILON))


def norm_cdf(eta):
    """Return ``Phi(eta)``, the standard normal CDF (probit inverse link)."""
    return special.ndtr(eta)


def norm_ppf(p):
    """Return ``Phi^-1(p)``, the standard normal quantile (probit link)."""
    return special.ndtri(p)


def norm_pdf(eta):
    """Return the standard normal density ``phi(eta) = dPhi/deta``."""
    return norm.pdf(eta)


def z_for_confidence(level: float) -> float:
    """Two-sided critical value ``Phi^-1(1 - (1 - level) / 2)``.

    Args:
        level (float): Confidence level in (0, 1), for example ``0.95``.

    Returns:
        float: Critical value, ``1.959964...`` for ``level = 0.95``.
    """
    return float(norm_ppf(1.0 - (1.0 - float(level)) / 2.0))
