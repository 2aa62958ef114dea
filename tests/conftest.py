"""Pytest configuration for repository-relative imports and shared data."""

import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)


@pytest.fixture()
def reference_series():
    """Ten-replicate dilution series from 1 to 10,000 copies."""
    return [
        (1, 0, 10),
        (10, 3, 7),
        (100, 9, 1),
        (1000, 10, 0),
        (10000, 10, 0),
    ]


@pytest.fixture()
def reference_model(reference_series):
    from lodprobit.estimator import fit_probit_model

    return fit_probit_model(reference_series)
