"""Define standardized column names for input and result DataFrames."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ResultColumns:
    """Container for standardized column labels.

    These labels are shared by the observation tables, the prediction curve
    and the inverse-prediction table so an external plotting or reporting
    collaborator can consume every frame without renaming.

    Attributes:
        concentration: Analyte concentration (copies per unit volume). The
            probit model uses its base-10 logarithm as the single predictor.

        successes: Number of replicates with a positive detection.

        failures: Number of replicates with a negative detection.

        trials: ``successes + failures`` at one concentration level.

        hit_rate: Observed detection fraction ``successes / trials``.

        fit: Fitted detection probability ``Phi(eta)``.

        lower, upper: Confidence bounds on the detection probability (curve)
            or on the estimated concentration (inverse prediction).

        probability: Target detection probability being inverted.

        estimate: Concentration at which the fitted curve reaches
            ``probability``.
    """

    concentration: str = "concentration"
    successes: str = "successes"
    failures: str = "failures"
    trials: str = "trials"
    hit_rate: str = "hit_rate"
    fit: str = "fit"
    lower: str = "lower"
    upper: str = "upper"
    probability: str = "probability"
    estimate: str = "estimated_concentration"


COLUMNS = ResultColumns()
