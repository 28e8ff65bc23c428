"""Tests for model selection: residual diagnostics, rolling-origin CV and ranking."""

import numpy as np
import pandas as pd
import pytest

from ozone_core.exceptions import ConfigError, DataQualityError, InsufficientDataError
from ozone_core.forecasting.models import BoxCoxARIMAModel, ExponentialSmoothingModel, SeasonalNaiveModel
from ozone_core.forecasting.models.base import ForecastModel
from ozone_core.forecasting.preprocessing import build_monthly_series
from ozone_core.forecasting.selection import (
    SCORE_COLUMNS,
    ModelSelectionConfig,
    _rank,
    ljung_box_lag,
    ljung_box_test,
    rolling_origin_errors,
    select_model,
)


class FailingModel(ForecastModel):
    """Model family that can never be fitted."""

    name = "broken"
    complexity = 0

    def fit(self, series):
        raise InsufficientDataError("broken: never fits")


class ComplexNaive(SeasonalNaiveModel):
    """Seasonal naive under another name and a higher complexity rank."""

    name = "snaive_complex"
    complexity = 5


def _monthly(values) -> pd.Series:
    index = pd.date_range("2016-01-01", periods=len(values), freq="MS", name="date")
    return pd.Series(np.asarray(values, dtype=float), index=index, name="S01")


def _noisy_seasonal(n: int = 36, seed: int = 7) -> pd.Series:
    rng = np.random.default_rng(seed)
    t = np.arange(n)
    return _monthly(0.05 + 0.01 * np.sin(2 * np.pi * t / 12) + rng.normal(0, 0.002, n))


def test_ljung_box_lag_rule() -> None:
    """Lag = max(fitdf + 3, min(24, round(n / 5)))."""
    assert ljung_box_lag(120, 2) == 24
    assert ljung_box_lag(40, 2) == 8
    assert ljung_box_lag(20, 4) == 7
    assert ljung_box_lag(500, 0) == 24


def test_ljung_box_flags_autocorrelation() -> None:
    """A smooth periodic signal is strongly autocorrelated; noise p-values stay in [0, 1]."""
    t = np.arange(120)
    lag, stat, pvalue = ljung_box_test(pd.Series(np.sin(2 * np.pi * t / 12)), n_params=0)

    assert lag == 24
    assert stat > 0
    assert pvalue < 0.05

    rng = np.random.default_rng(0)
    _, _, noise_pvalue = ljung_box_test(pd.Series(rng.normal(size=200)), n_params=0)
    assert 0.0 <= noise_pvalue <= 1.0


def test_ljung_box_too_few_residuals() -> None:
    lag, stat, pvalue = ljung_box_test(pd.Series([0.1, -0.2, 0.3]), n_params=2)
    assert lag == 5
    assert np.isnan(stat) and np.isnan(pvalue)


def test_rolling_origin_error_matrix_shape() -> None:
    """Origins run from `initial` to n-1, horizons beyond the series are NaN."""
    pattern = 0.05 + 0.01 * np.sin(2 * np.pi * np.arange(12) / 12)
    series = _monthly(np.tile(pattern, 3)[:30])
    errors = rolling_origin_errors(series, SeasonalNaiveModel(), horizon=3, initial=12)

    assert errors.shape == (18, 3)
    assert list(errors.columns) == [1, 2, 3]
    assert errors.index[0] == series.index[11]
    assert errors.index.name == "origin"
    # Last origin can only check one step, the one before it two
    assert errors.iloc[-1].notna().tolist() == [True, False, False]
    assert errors.iloc[-2].notna().tolist() == [True, True, False]
    # A perfectly periodic series is forecast exactly
    values = errors.to_numpy()
    assert np.allclose(values[np.isfinite(values)], 0.0)


def test_rolling_origin_failed_fits_are_nan() -> None:
    errors = rolling_origin_errors(_noisy_seasonal(), FailingModel(), horizon=2, initial=12)
    assert errors.isna().all().all()


def test_rolling_origin_parallel_matches_sequential() -> None:
    series = _noisy_seasonal()
    sequential = rolling_origin_errors(series, SeasonalNaiveModel(), horizon=4, initial=12)
    threaded = rolling_origin_errors(series, SeasonalNaiveModel(), horizon=4, initial=12, max_workers=4)
    pd.testing.assert_frame_equal(sequential, threaded)


def test_rank_prefers_white_then_mse_then_complexity() -> None:
    scores = pd.DataFrame(
        {
            "model": ["a", "b", "c", "d", "e"],
            "complexity": [0, 2, 1, 1, 0],
            "residuals_white": [False, True, True, True, True],
            "cv_mse": [0.5, 1.0, np.inf, 1.0 * (1 + 1e-12), 3.0],
        }
    )
    ranked = _rank(scores)

    # b and d tie on MSE; the simpler one goes first
    assert ranked["model"].tolist() == ["d", "b", "e", "a", "c"]


def test_rank_tie_goes_to_lower_complexity() -> None:
    scores = pd.DataFrame(
        {
            "model": ["arima", "snaive"],
            "complexity": [2, 0],
            "residuals_white": [True, True],
            "cv_mse": [2.0, 2.0],
        }
    )
    assert _rank(scores)["model"].iloc[0] == "snaive"


def test_select_model_tie_breaks_on_complexity() -> None:
    """Identical forecasts tie on MSE and the simpler family wins."""
    config = ModelSelectionConfig(candidates=[ComplexNaive(), SeasonalNaiveModel()], horizon=3)
    result = select_model(_noisy_seasonal(), config)

    assert result.best_name == "snaive"
    assert list(result.scores.columns) == SCORE_COLUMNS
    assert result.scores["cv_mse"].iloc[0] == pytest.approx(result.scores["cv_mse"].iloc[1])


def test_select_model_unfittable_candidate_ranks_last() -> None:
    config = ModelSelectionConfig(candidates=[FailingModel(), SeasonalNaiveModel()], horizon=2)
    result = select_model(_noisy_seasonal(), config)

    assert result.best_name == "snaive"
    assert result.scores["model"].iloc[-1] == "broken"
    assert np.isinf(result.scores["cv_mse"].iloc[-1])
    assert result.scores["n_errors"].iloc[-1] == 0
    assert set(result.errors) == {"broken", "snaive"}
    assert list(result.mse_by_horizon.columns) == [1, 2]


def test_select_model_all_fail() -> None:
    with pytest.raises(DataQualityError):
        select_model(_noisy_seasonal(), ModelSelectionConfig(candidates=[FailingModel()]))


def test_select_model_config_errors() -> None:
    with pytest.raises(ConfigError):
        select_model(_noisy_seasonal(), ModelSelectionConfig(candidates=[]))
    with pytest.raises(ConfigError):
        select_model(
            _noisy_seasonal(),
            ModelSelectionConfig(candidates=[SeasonalNaiveModel(), SeasonalNaiveModel()]),
        )
    with pytest.raises(ConfigError):
        ModelSelectionConfig(horizon=0)


def test_selection_invariant_to_row_order(make_readings) -> None:
    """Shuffling the raw readings does not change the cross-validated MSE."""
    readings = make_readings(n_stations=1, months=36)
    shuffled = readings.sample(frac=1.0, random_state=11)
    config = ModelSelectionConfig(candidates=[SeasonalNaiveModel()], horizon=3)

    ordered = select_model(build_monthly_series(readings, "S01"), config)
    permuted = select_model(build_monthly_series(shuffled, "S01"), config)

    pd.testing.assert_frame_equal(ordered.scores, permuted.scores)


@pytest.mark.slow
def test_select_model_with_statsmodels_families() -> None:
    """All three families are cross-validated; the ARIMA search stays within its fit budget."""
    arima = BoxCoxARIMAModel(max_evaluations=4)
    config = ModelSelectionConfig(
        candidates=[SeasonalNaiveModel(), ExponentialSmoothingModel(), arima],
        horizon=2,
    )
    series = _noisy_seasonal(n=30)
    result = select_model(series, config)

    assert set(result.scores["model"]) == {"snaive", "ets", "arima"}
    assert result.best_name in {"snaive", "ets", "arima"}
    assert (result.scores["n_errors"] > 0).all()
    assert result.errors["arima"].shape == (18, 2)
    assert arima.fit(series).details["evaluations"] <= 4
