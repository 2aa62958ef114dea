"""Behavioral tests for probit fitting, curve prediction and inversion."""

import json
import warnings

import numpy as np
import pandas as pd
import pytest

from lodprobit.config import EstimatorConfig
from lodprobit.errors import (
    DataInsufficientError,
    DegenerateModelError,
    InvalidProbabilityError,
)
from lodprobit.estimator import (
    FittedModel,
    LoDEstimator,
    fit_probit_model,
    inverse_predict,
    predict_curve,
    predict_probability,
)

TARGETS = (0.5, 0.6, 0.7, 0.8, 0.9, 0.95)


class TestReferenceSeries:
    """Check the reference dilution series end to end."""

    def test_slope_is_positive(self, reference_model):
        assert reference_model.slope > 0
        assert reference_model.converged
        assert reference_model.n_observations == 5
        assert reference_model.min_concentration == 1.0
        assert reference_model.max_concentration == 10000.0

    def test_median_detection_between_second_and_third_level(self, reference_model):
        inverse = inverse_predict(reference_model, [0.5])
        assert 10.0 < inverse.concentrations[0] < 100.0
        assert inverse.concentrations[0] == pytest.approx(20.1, rel=5e-3)

    def test_lod_in_expected_range(self, reference_model):
        # Maximum likelihood: intercept -2.517, slope 1.930.
        inverse = inverse_predict(reference_model, [0.95])
        assert inverse.lod == pytest.approx(143.3, rel=1e-3)

    def test_estimates_increase_with_probability(self, reference_model):
        inverse = inverse_predict(reference_model, TARGETS)
        assert inverse.probabilities == TARGETS
        assert np.all(np.diff(inverse.concentrations) > 0)

    def test_inverse_limits_bracket_estimates(self, reference_model):
        inverse = inverse_predict(reference_model, TARGETS)
        assert np.all(inverse.lower < inverse.concentrations)
        assert np.all(inverse.concentrations < inverse.upper)


def test_inverse_and_direct_prediction_agree(reference_model):
    c50 = inverse_predict(reference_model, [0.5]).concentrations[0]
    assert predict_probability(reference_model, c50) == pytest.approx(0.5, abs=1e-10)

    curve = predict_curve(reference_model)
    on_curve = np.interp(np.log10(c50), np.log10(curve.grid), curve.fit)
    assert on_curve == pytest.approx(0.5, abs=1e-3)


def test_every_target_round_trips_through_the_curve(reference_model):
    inverse = inverse_predict(reference_model, TARGETS)
    fitted = predict_probability(reference_model, inverse.concentrations)
    assert np.allclose(fitted, TARGETS, atol=1e-10)


def test_curve_grid_shape_and_span(reference_model):
    curve = predict_curve(reference_model)
    assert len(curve) == 1000
    assert curve.grid[0] == pytest.approx(1.0)
    assert curve.grid[-1] == pytest.approx(10000.0)
    assert np.all(np.diff(curve.grid) > 0)
    ratios = curve.grid[1:] / curve.grid[:-1]
    assert np.allclose(ratios, ratios[0])


def test_curve_is_monotone_for_positive_slope(reference_model):
    curve = predict_curve(reference_model, num_points=500)
    assert np.all(np.diff(curve.fit) >= 0)


def test_curve_bounds_are_ordered(reference_model):
    curve = predict_curve(reference_model)
    assert np.all(curve.lower <= curve.fit)
    assert np.all(curve.fit <= curve.upper)
    assert np.all((curve.lower >= 0) & (curve.upper <= 1))


def test_wider_confidence_gives_wider_band(reference_model):
    narrow = predict_curve(reference_model, confidence_level=0.80)
    wide = predict_curve(reference_model, confidence_level=0.99)
    assert np.all(wide.upper - wide.lower >= narrow.upper - narrow.lower)


def test_grid_falls_back_when_all_levels_below_one():
    model = fit_probit_model([(0.01, 1, 9), (0.1, 5, 5), (0.5, 9, 1)])
    curve = predict_curve(model, num_points=50)
    assert curve.grid[0] == pytest.approx(0.01)
    assert curve.grid[-1] == pytest.approx(0.5)


def test_curve_rejects_tiny_grid(reference_model):
    with pytest.raises(ValueError):
        predict_curve(reference_model, num_points=1)


def test_curve_frame_and_records(reference_model):
    curve = predict_curve(reference_model, num_points=10)
    frame = curve.to_frame()
    assert list(frame.columns) == ["concentration", "fit", "lower", "upper"]
    records = curve.as_records()
    assert len(records) == 10
    assert records[0][0] == pytest.approx(1.0)


def test_inverse_table_outputs(reference_model):
    inverse = inverse_predict(reference_model, [0.95, 0.5])
    pairs = inverse.as_records()
    assert [p for p, _ in pairs] == [0.95, 0.5]
    assert inverse.lod == pytest.approx(pairs[0][1])
    assert set(inverse.as_dict()) == {0.95, 0.5}
    assert list(inverse.to_frame().columns) == [
        "probability",
        "estimated_concentration",
        "lower",
        "upper",
    ]


def test_serialized_model_reproduces_predictions(reference_model):
    restored = FittedModel.from_dict(json.loads(json.dumps(reference_model.to_dict())))

    original_curve = predict_curve(reference_model)
    restored_curve = predict_curve(restored)
    assert np.array_equal(original_curve.fit, restored_curve.fit)
    assert np.array_equal(original_curve.lower, restored_curve.lower)
    assert np.array_equal(original_curve.upper, restored_curve.upper)

    original = inverse_predict(reference_model, TARGETS)
    again = inverse_predict(restored, TARGETS)
    assert np.array_equal(original.concentrations, again.concentrations)
    assert np.array_equal(original.lower, again.lower)


def test_zero_trial_level_is_insufficient():
    with pytest.raises(DataInsufficientError):
        fit_probit_model([(1, 0, 10), (10, 0, 0), (100, 9, 1)])


def test_single_level_fit_is_insufficient():
    with pytest.raises(DataInsufficientError):
        fit_probit_model([(10, 3, 7), (10, 5, 5)])


def test_fit_rejects_unfiltered_zero_concentration(reference_series):
    with pytest.raises(ValueError):
        fit_probit_model([(0, 0, 10)] + reference_series)


def test_invalid_target_probability(reference_model):
    for bad in (0.0, 1.0, -0.1, 1.5, float("nan")):
        with pytest.raises(InvalidProbabilityError):
            inverse_predict(reference_model, [0.5, bad])


def test_flat_response_is_degenerate():
    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always")
        model = fit_probit_model([(10, 5, 5), (100, 5, 5), (1000, 5, 5)])
        assert any("not positive" in str(item.message) for item in w)

    assert model.slope == pytest.approx(0.0, abs=1e-12)
    with pytest.raises(DegenerateModelError):
        inverse_predict(model, [0.95])


def test_negative_slope_warns_but_fits():
    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always")
        model = fit_probit_model([(1, 9, 1), (10, 5, 5), (100, 1, 9)])

        assert len(w) == 1
        assert "slope" in str(w[0].message).lower()
        assert issubclass(w[0].category, UserWarning)

    assert model.slope < 0
    inverse = inverse_predict(model, [0.5])
    assert 1.0 < inverse.concentrations[0] < 100.0


def test_separated_levels_warn_about_boundary_probabilities():
    with warnings.catch_warnings(record=True) as w:
        warnings.simplefilter("always")
        model = fit_probit_model(
            [(1, 0, 10), (10, 0, 10), (100, 10, 0), (1000, 10, 0)]
        )

        messages = [
            str(item.message) for item in w if issubclass(item.category, UserWarning)
        ]
        assert any("numerically 0 or 1" in msg for msg in messages)

    assert model.converged
    assert model.slope > 0


def test_separated_levels_give_saturated_limits_without_overflow_warning():
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        model = fit_probit_model([(10, 0, 10), (100, 10, 0)])

    with warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        inverse = inverse_predict(model, TARGETS)

    assert np.all(np.isfinite(inverse.concentrations))
    assert np.all(inverse.lower <= inverse.concentrations)
    assert np.all(inverse.concentrations <= inverse.upper)


def test_estimator_runs_full_pipeline(reference_series):
    result = LoDEstimator().estimate([(0, 0, 10)] + reference_series)

    assert len(result.observations) == 5
    assert len(result.curve) == 1000
    assert result.inverse.probabilities == TARGETS
    assert result.lod == pytest.approx(result.inverse.concentrations[-1])


def test_estimator_uses_config(reference_series):
    config = EstimatorConfig(
        target_probabilities=(0.9, 0.5), grid_size=25, confidence_level=0.9
    )
    result = LoDEstimator(config).estimate(reference_series)

    assert len(result.curve) == 25
    assert result.curve.confidence_level == 0.9
    assert result.inverse.probabilities == (0.9, 0.5)
    assert result.lod == pytest.approx(result.inverse.concentrations[0])


def test_estimator_accepts_dataframe(reference_series):
    frame = pd.DataFrame(reference_series, columns=["Concentration", "Hits", "Misses"])
    from_frame = LoDEstimator().estimate(frame)
    from_tuples = LoDEstimator().estimate(reference_series)
    assert from_frame.model.intercept == pytest.approx(from_tuples.model.intercept)
    assert from_frame.model.slope == pytest.approx(from_tuples.model.slope)


def test_estimator_propagates_insufficient_data():
    with pytest.raises(DataInsufficientError):
        LoDEstimator().estimate([(0, 0, 10), (10, 4, 6)])
