"""Tests for the forecasting model families."""

import warnings

import numpy as np
import pandas as pd
import pytest
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from ozone_core.exceptions import ConfigError, InsufficientDataError
from ozone_core.forecasting.models import (
    BoxCoxARIMAModel,
    ExponentialSmoothingModel,
    SeasonalNaiveModel,
    default_candidates,
    get_model,
)
from ozone_core.forecasting.models.arima import choose_differencing, seasonal_strength
from ozone_core.forecasting.models.ets import ETSSpec, candidate_specs

warnings.filterwarnings("ignore", category=ConvergenceWarning)


def _monthly(values, start="2015-01-01") -> pd.Series:
    index = pd.date_range(start, periods=len(values), freq="MS", name="date")
    return pd.Series(np.asarray(values, dtype=float), index=index, name="S01")


def _seasonal_series(n: int = 48, seed: int = 1) -> pd.Series:
    rng = np.random.default_rng(seed)
    t = np.arange(n)
    return _monthly(0.05 + 0.01 * np.sin(2 * np.pi * t / 12) + rng.normal(0, 0.001, n))


def test_seasonal_naive_constant_input() -> None:
    """Constant input v forecasts v at every horizon."""
    fitted = SeasonalNaiveModel().fit(_monthly([0.05] * 24))
    forecast = fitted.point_forecast(13)

    assert np.allclose(forecast.to_numpy(), 0.05)
    assert forecast.index[0] == pd.Timestamp("2017-01-01")


def test_seasonal_naive_repeats_last_season() -> None:
    """y[T+h] = y[T+h-12k] for the smallest k that lands in the sample."""
    fitted = SeasonalNaiveModel().fit(_monthly(range(1, 25)))
    forecast = fitted.point_forecast(13).to_numpy()

    assert forecast[0] == 13
    assert forecast[11] == 24
    assert forecast[12] == 13


def test_seasonal_naive_intervals_widen_each_season() -> None:
    """Interval width grows by sqrt(2) once the forecast looks back two seasons."""
    fitted = SeasonalNaiveModel().fit(_monthly(range(1, 25)))
    table = fitted.forecast(24, alpha=0.05)
    width = (table["upper"] - table["lower"]).to_numpy()

    assert list(table.columns) == ["mean", "lower", "upper"]
    assert np.allclose(width[:12], width[0])
    assert width[12] / width[0] == pytest.approx(np.sqrt(2.0))


def test_seasonal_naive_residuals_and_length() -> None:
    fitted = SeasonalNaiveModel().fit(_monthly(range(1, 25)))
    resid = fitted.residuals()

    assert resid.iloc[:12].isna().all()
    assert np.allclose(resid.iloc[12:].to_numpy(), 12.0)
    assert fitted.n_params == 0

    with pytest.raises(InsufficientDataError):
        SeasonalNaiveModel().fit(_monthly(range(1, 11)))


def test_ets_spec_label_and_candidates() -> None:
    """Admissible specs exclude multiplicative parts on non-positive data."""
    assert ETSSpec("mul", "add", True, "mul").label == "ETS(M,Ad,M)"
    assert ETSSpec("add").label == "ETS(A,N,N)"

    non_positive = candidate_specs(positive=False, seasonal=True)
    assert not any(spec.multiplicative for spec in non_positive)

    positive = candidate_specs(positive=True, seasonal=True)
    assert len(positive) == 15
    assert not any(spec.error == "add" and spec.seasonal == "mul" for spec in positive)

    short = candidate_specs(positive=True, seasonal=False)
    assert all(spec.seasonal is None for spec in short)


def test_ets_fit_and_forecast() -> None:
    """A restricted ETS search fits a seasonal series and forecasts it."""
    model = ExponentialSmoothingModel(specs=[ETSSpec("add", None, False, "add")])
    fitted = model.fit(_seasonal_series())
    table = fitted.forecast(3)

    assert fitted.details["spec"] == "ETS(A,N,A)"
    assert len(table) == 3
    assert np.all(np.isfinite(table.to_numpy()))
    assert (table["lower"] <= table["mean"]).all()
    assert (table["mean"] <= table["upper"]).all()
    assert len(fitted.residuals()) == 48


def test_ets_rejects_degenerate_series() -> None:
    model = ExponentialSmoothingModel()
    with pytest.raises(InsufficientDataError):
        model.fit(_monthly([0.05] * 36))
    with pytest.raises(InsufficientDataError):
        model.fit(_seasonal_series(n=12))


@pytest.mark.slow
def test_arima_small_grid_forecast() -> None:
    """A one-order ARIMA grid with Box-Cox forecasts positive values."""
    model = BoxCoxARIMAModel(
        lmbda="auto",
        p_range=(1,),
        d_range=(0,),
        q_range=(0,),
        p_seasonal_range=(0,),
        d_seasonal_range=(0,),
        q_seasonal_range=(0,),
    )
    fitted = model.fit(_seasonal_series(n=36))
    forecast = fitted.point_forecast(2)

    assert fitted.order == (1, 0, 0)
    assert fitted.n_params == 1
    assert fitted.lmbda is not None
    assert len(forecast) == 2
    assert np.all(np.isfinite(forecast.to_numpy()))
    assert np.all(forecast.to_numpy() > 0)


def test_seasonal_strength_and_differencing() -> None:
    """Strong seasonality takes one seasonal difference; a trend takes one regular difference."""
    seasonal = _seasonal_series(n=48).to_numpy()
    assert seasonal_strength(seasonal) > 0.9
    assert seasonal_strength(seasonal[:20]) == 0.0
    assert choose_differencing(seasonal)[1] == 1

    t = np.arange(48)
    trend = 0.02 + 0.001 * t + np.random.default_rng(3).normal(0, 0.0005, 48)
    assert choose_differencing(trend, d_seasonal_range=(0,)) == (1, 0)

    # Single-value ranges are taken as given
    assert choose_differencing(seasonal, d_range=(0,), d_seasonal_range=(0,)) == (0, 0)


def test_arima_order_search_respects_evaluation_cap() -> None:
    """The stepwise search stops after max_evaluations SARIMAX fits."""
    model = BoxCoxARIMAModel(
        lmbda=None,
        d_range=(0,),
        d_seasonal_range=(1,),
        q_seasonal_range=(0,),
        p_seasonal_range=(0,),
        max_evaluations=3,
    )
    fitted = model.fit(_seasonal_series(n=36))

    assert fitted.details["evaluations"] <= 3
    assert fitted.seasonal_order[1] == 1
    assert fitted.order[1] == 0
    assert np.all(np.isfinite(fitted.point_forecast(2).to_numpy()))

    with pytest.raises(ValueError):
        BoxCoxARIMAModel(max_evaluations=0)


def test_arima_rejects_non_positive_under_box_cox() -> None:
    values = _seasonal_series(n=36).to_numpy() - 0.05
    with pytest.raises(InsufficientDataError, match="strictly positive"):
        BoxCoxARIMAModel(lmbda="auto").fit(_monthly(values))


def test_arima_rejects_short_series() -> None:
    with pytest.raises(InsufficientDataError):
        BoxCoxARIMAModel().fit(_seasonal_series(n=20))


def test_arima_invalid_lambda() -> None:
    with pytest.raises(ValueError):
        BoxCoxARIMAModel(lmbda="mle")


def test_model_registry() -> None:
    """Families are available by name with distinct complexity ranks."""
    assert isinstance(get_model("snaive"), SeasonalNaiveModel)
    assert isinstance(get_model("ets"), ExponentialSmoothingModel)
    assert isinstance(get_model("arima", lmbda=None), BoxCoxARIMAModel)
    with pytest.raises(ConfigError):
        get_model("prophet")

    ranks = [m.complexity for m in default_candidates()]
    assert ranks == sorted(ranks)
    assert len(set(ranks)) == 3
