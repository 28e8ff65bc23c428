"""Seasonal naive forecasting model.

This model forecasts each future month with the value observed in the same
calendar month of the last available year. It is the simplest candidate in
model selection and the baseline the other families must beat.
"""

from __future__ import annotations

from typing import Any, Dict

import numpy as np
import pandas as pd
from scipy.stats import norm

from ozone_core.forecasting.config import SEASONAL_PERIOD
from ozone_core.forecasting.models.base import (
    FittedModel,
    ForecastModel,
    future_index,
    require_length,
)


class FittedSeasonalNaive(FittedModel):
    """Seasonal naive fit: the training series plus its residual scale."""

    name = "snaive"
    n_params = 0

    def __init__(self, series: pd.Series, seasonal_period: int) -> None:
        self.series = series
        self.seasonal_period = seasonal_period
        resid = self.residuals().dropna()
        self.sigma = float(np.sqrt(np.mean(resid.to_numpy() ** 2))) if len(resid) else np.nan
        self.details: Dict[str, Any] = {
            "seasonal_period": seasonal_period,
            "sigma": self.sigma,
            "last_observation": series.index[-1].isoformat(),
        }

    def point_forecast(self, steps: int) -> pd.Series:
        m = self.seasonal_period
        values = self.series.to_numpy(dtype=float)
        last_season = values[-m:]
        forecast = [last_season[(h - 1) % m] for h in range(1, steps + 1)]
        return pd.Series(forecast, index=future_index(self.series, steps), name="mean")

    def forecast(self, steps: int, alpha: float = 0.05) -> pd.DataFrame:
        mean = self.point_forecast(steps)
        # Variance grows with the number of whole seasons looked back
        seasons_back = np.floor((np.arange(1, steps + 1) - 1) / self.seasonal_period) + 1
        se = self.sigma * np.sqrt(seasons_back)
        z = norm.ppf(1 - alpha / 2)
        return pd.DataFrame(
            {"mean": mean.to_numpy(), "lower": mean.to_numpy() - z * se, "upper": mean.to_numpy() + z * se},
            index=mean.index,
        )

    def residuals(self) -> pd.Series:
        return self.series - self.series.shift(self.seasonal_period)


class SeasonalNaiveModel(ForecastModel):
    """Seasonal naive model: y[T+h] = y[T+h-m*k] for the smallest valid k."""

    name = "snaive"
    complexity = 0

    def __init__(self, seasonal_period: int = SEASONAL_PERIOD) -> None:
        """Initialize the seasonal naive model.

        Args:
            seasonal_period: Season length in months (default: 12).
        """
        self.seasonal_period = seasonal_period

    def fit(self, series: pd.Series) -> FittedSeasonalNaive:
        require_length(series, self.seasonal_period, self.name)
        return FittedSeasonalNaive(series.astype(float), self.seasonal_period)
