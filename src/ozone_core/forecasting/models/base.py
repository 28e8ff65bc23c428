"""Base model interface for forecasting models.

This module defines the abstract base classes that all forecasting models must
implement, enabling model selection and per-station forecasting to treat the
seasonal naive, ETS and ARIMA families uniformly.

A ``ForecastModel`` is a configuration object: ``fit()`` never mutates it and
returns a new ``FittedModel``, so one instance can be fitted concurrently for
many stations without sharing state between fits.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict

import numpy as np
import pandas as pd

from ozone_core.exceptions import InsufficientDataError
from ozone_core.forecasting.config import MONTHLY_FREQ


def future_index(series: pd.Series, steps: int) -> pd.DatetimeIndex:
    """Return the monthly index of the ``steps`` periods after ``series``."""
    start = series.index[-1] + pd.offsets.MonthBegin(1)
    return pd.date_range(start=start, periods=steps, freq=MONTHLY_FREQ)


def require_length(series: pd.Series, min_obs: int, model_name: str) -> None:
    """Raise InsufficientDataError when ``series`` is shorter than ``min_obs``."""
    if len(series) < min_obs:
        raise InsufficientDataError(
            f"{model_name}: insufficient data ({len(series)} obs, need {min_obs})"
        )


def require_variation(series: pd.Series, model_name: str) -> None:
    """Raise InsufficientDataError for constant or non-finite series."""
    values = series.to_numpy(dtype=float)
    if not np.all(np.isfinite(values)):
        raise InsufficientDataError(f"{model_name}: series contains non-finite values")
    if np.ptp(values) == 0:
        raise InsufficientDataError(f"{model_name}: series is constant")


class FittedModel(ABC):
    """A model fitted to one series.

    Attributes:
        name: Short identifier of the model family.
        n_params: Number of estimated parameters (used as the Ljung-Box
            degrees-of-freedom correction).
        details: JSON-like payload describing the fit (order, AIC, ...).
    """

    name: str = "model"
    n_params: int = 0
    details: Dict[str, Any]

    @abstractmethod
    def point_forecast(self, steps: int) -> pd.Series:
        """Return the mean forecast for the next ``steps`` months.

        The series is indexed by the forecast months, on the original scale.
        """

    @abstractmethod
    def forecast(self, steps: int, alpha: float = 0.05) -> pd.DataFrame:
        """Return mean forecasts with prediction intervals.

        Returns:
            DataFrame indexed by forecast month with columns
            ``mean``, ``lower``, ``upper``.
        """

    @abstractmethod
    def residuals(self) -> pd.Series:
        """Return the in-sample residuals used for whiteness diagnostics."""


class ForecastModel(ABC):
    """Abstract base class for forecasting model families.

    Attributes:
        name: Short identifier, e.g. "snaive", "ets", "arima".
        complexity: Rank used to break ties in model selection
            (lower means simpler).
    """

    name: str = "model"
    complexity: int = 0

    @abstractmethod
    def fit(self, series: pd.Series) -> FittedModel:
        """Fit the model family to a monthly series.

        Args:
            series: Monthly series with a DatetimeIndex (freq "MS"),
                raw values (not transformed).

        Returns:
            A new FittedModel.

        Raises:
            InsufficientDataError: If the series is too short or degenerate.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
