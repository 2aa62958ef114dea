"""
A Python package for probit Limit of Detection (LoD) estimation.

Fits a probit dose-response model to replicate hit/miss counts at known
analyte concentrations and reports the concentration needed to reach each
target detection probability (95% by convention).

Modules:
    - data_processing: Parses, filters and aggregates assay observations.
    - estimator: Fits the probit model, builds the prediction curve and
      inverts it at target probabilities.
    - config: Estimation parameters and their defaults.
    - errors: Error taxonomy raised by the pipeline.
    - stats: Normal-distribution primitives and the IRLS probit solver.
"""

__version__ = "1.0.0"

from .config import EstimatorConfig
from .data_processing import (
    AssayObservation,
    aggregate_observations,
    coerce_observations,
    filter_valid_observations,
    hit_rate_table,
    observations_from_frame,
    observations_to_frame,
)
from .errors import (
    DataInsufficientError,
    DegenerateModelError,
    FitDivergedError,
    InvalidProbabilityError,
    LoDEstimationError,
)
from .estimator import (
    FittedModel,
    InversePrediction,
    LoDEstimator,
    LoDResult,
    PredictionCurve,
    fit_probit_model,
    inverse_predict,
    predict_curve,
    predict_probability,
    summarize_batch,
)

__all__ = [
    # Configuration
    "EstimatorConfig",
    # Data processing
    "AssayObservation",
    "aggregate_observations",
    "coerce_observations",
    "filter_valid_observations",
    "hit_rate_table",
    "observations_from_frame",
    "observations_to_frame",
    # Estimation
    "FittedModel",
    "PredictionCurve",
    "InversePrediction",
    "LoDResult",
    "LoDEstimator",
    "fit_probit_model",
    "predict_curve",
    "predict_probability",
    "inverse_predict",
    "summarize_batch",
    # Errors
    "LoDEstimationError",
    "DataInsufficientError",
    "FitDivergedError",
    "DegenerateModelError",
    "InvalidProbabilityError",
]
