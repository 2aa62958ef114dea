"""
Statistical utilities for probit dose-response fitting.

This subpackage provides the numerical routines behind LoD estimation. All
functions operate on arrays and primitive types; no assay-specific logic is
included.

Modules:
    normal:
        Standard normal CDF, quantile and density (the probit link and its
        inverse) backed by scipy, plus the two-sided confidence multiplier.

    probit:
        Binomial GLM with probit link fitted by iteratively reweighted least
        squares. Returns coefficients, covariance and deviance diagnostics.

Design Principle:
    This subpackage has no dependencies on the estimator or data-processing
    modules beyond the shared error types. It can be tested independently.
"""

from .normal import norm_cdf, norm_pdf, norm_ppf, z_for_confidence
from .probit import binomial_deviance, binomial_log_likelihood, fit_probit_glm

__all__ = [
    "norm_cdf",
    "norm_pdf",
    "norm_ppf",
    "z_for_confidence",
    "binomial_deviance",
    "binomial_log_likelihood",
    "fit_probit_glm",
]
