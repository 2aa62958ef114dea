#!/usr/bin/env python3
"""
Main script for running a probit LoD estimation on the reference dilution series.
"""

# Pipeline overview:
# 1) Drop blank (zero-concentration) rows and check for >= 2 positive levels.
# 2) Fit a probit GLM on log10(concentration) by IRLS.
# 3) Evaluate the fitted curve and 95% band on a 1000-point log grid.
# 4) Invert the curve at 50-95% detection probability.

import logging
import os
import sys
import time

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from lodprobit import LoDEstimator, hit_rate_table

REFERENCE_DILUTION_SERIES = [
    (0, 0, 10),
    (1, 0, 10),
    (10, 3, 7),
    (100, 9, 1),
    (1000, 10, 0),
    (10000, 10, 0),
]


def main():
    """Run the estimator on the reference series and log the results."""

    start_time = time.time()
    logging.info("Initializing LoD estimation")
    logging.info(
        "Configured %d concentration levels", len(REFERENCE_DILUTION_SERIES)
    )

    for row in hit_rate_table(REFERENCE_DILUTION_SERIES).itertuples(index=False):
        logging.info(
            "  %10.4g copies: %d/%d detected (%.0f%%)",
            row.concentration,
            row.successes,
            row.trials,
            100.0 * row.hit_rate,
        )

    result = LoDEstimator().estimate(REFERENCE_DILUTION_SERIES)
    model = result.model
    se_intercept, se_slope = model.coefficient_se
    logging.info(
        "Probit coefficients: intercept=%.4f (SE %.4f), slope=%.4f (SE %.4f)",
        model.intercept,
        se_intercept,
        model.slope,
        se_slope,
    )
    logging.info(
        "Residual deviance %.4f on %d df (null deviance %.4f)",
        model.deviance,
        model.df_residual,
        model.null_deviance,
    )
    logging.info("Prediction curve evaluated at %d points", len(result.curve))

    for row in result.inverse.to_frame().itertuples(index=False):
        logging.info(
            "  p=%.2f: %.4g copies (%.0f%% CI %.4g - %.4g)",
            row.probability,
            row.estimated_concentration,
            100 * result.inverse.confidence_level,
            row.lower,
            row.upper,
        )

    logging.info("LoD (95%% detection): %.4g copies", result.lod)
    logging.info(f"Total execution time: {time.time() - start_time:.2f} seconds")
    return 0


if __name__ == "__main__":
    sys.exit(main())
