"""Exponential smoothing (ETS) model implementation.

Fits statsmodels' state-space ETSModel over a set of error/trend/seasonal
specifications and keeps the one with the lowest AICc, so each fit picks its
own specification the way the ARIMA family picks its own order.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.exponential_smoothing.ets import ETSModel

from ozone_core.exceptions import InsufficientDataError
from ozone_core.forecasting.config import MAX_ITER, MIN_OBS_MODEL, SEASONAL_PERIOD
from ozone_core.forecasting.models.base import (
    FittedModel,
    ForecastModel,
    future_index,
    require_length,
    require_variation,
)

warnings.filterwarnings("ignore", category=ConvergenceWarning)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ETSSpec:
    """One ETS specification, e.g. (A, Ad, M)."""

    error: str
    trend: Optional[str] = None
    damped_trend: bool = False
    seasonal: Optional[str] = None

    @property
    def label(self) -> str:
        code = {"add": "A", "mul": "M", None: "N"}
        trend = code[self.trend] + ("d" if self.damped_trend else "")
        return f"ETS({code[self.error]},{trend},{code[self.seasonal]})"

    @property
    def multiplicative(self) -> bool:
        return "mul" in (self.error, self.trend, self.seasonal)


def candidate_specs(positive: bool, seasonal: bool, allow_multiplicative_trend: bool = False) -> List[ETSSpec]:
    """Enumerate the admissible ETS specifications for a series.

    Multiplicative components need strictly positive data, seasonal
    specifications need at least two full seasons, and additive errors are
    never combined with multiplicative seasonality (numerically unstable).
    """
    errors = ["add", "mul"] if positive else ["add"]
    trends: List[Optional[str]] = [None, "add"]
    if positive and allow_multiplicative_trend:
        trends.append("mul")
    seasonals: List[Optional[str]] = [None]
    if seasonal:
        seasonals += ["add", "mul"] if positive else ["add"]

    specs = []
    for error in errors:
        for trend in trends:
            for damped in ([False, True] if trend else [False]):
                for season in seasonals:
                    if error == "add" and season == "mul":
                        continue
                    specs.append(ETSSpec(error, trend, damped, season))
    return specs


class FittedETS(FittedModel):
    """ETSModel results plus the specification they were fitted with."""

    name = "ets"

    def __init__(self, result: Any, series: pd.Series, spec: ETSSpec) -> None:
        self.result = result
        self.series = series
        self.spec = spec
        self.n_params = len(result.params)
        self.details: Dict[str, Any] = {"spec": spec.label, "aicc": float(result.aicc)}

    def point_forecast(self, steps: int) -> pd.Series:
        mean = np.asarray(self.result.forecast(steps), dtype=float)
        return pd.Series(mean, index=future_index(self.series, steps), name="mean")

    def forecast(self, steps: int, alpha: float = 0.05) -> pd.DataFrame:
        n = len(self.series)
        prediction = self.result.get_prediction(start=n, end=n + steps - 1)
        interval = np.asarray(prediction.pred_int(alpha=alpha), dtype=float)
        return pd.DataFrame(
            {
                "mean": np.asarray(prediction.predicted_mean, dtype=float),
                "lower": interval[:, 0],
                "upper": interval[:, 1],
            },
            index=future_index(self.series, steps),
        )

    def residuals(self) -> pd.Series:
        return pd.Series(np.asarray(self.result.resid, dtype=float), index=self.series.index)


class ExponentialSmoothingModel(ForecastModel):
    """Automatic ETS model (error, trend, seasonality chosen by AICc)."""

    name = "ets"
    complexity = 1

    def __init__(
        self,
        seasonal_period: int = SEASONAL_PERIOD,
        specs: Optional[List[ETSSpec]] = None,
        min_obs: int = MIN_OBS_MODEL,
        maxiter: int = MAX_ITER,
    ) -> None:
        """Initialize the ETS model family.

        Args:
            seasonal_period: Season length in months (default: 12).
            specs: Explicit specifications to search. If None, every
                admissible specification for the series is tried.
            min_obs: Minimum series length (default: two seasons).
            maxiter: Iteration cap for each ETS optimization.
        """
        self.seasonal_period = seasonal_period
        self.specs = specs
        self.min_obs = min_obs
        self.maxiter = maxiter

    def fit(self, series: pd.Series) -> FittedETS:
        series = series.astype(float)
        require_length(series, self.min_obs, self.name)
        require_variation(series, self.name)

        positive = bool((series > 0).all())
        seasonal_ok = len(series) >= 2 * self.seasonal_period
        specs = self.specs or candidate_specs(positive, seasonal_ok)

        best_aicc = np.inf
        best: Optional[FittedETS] = None
        for spec in specs:
            if spec.multiplicative and not positive:
                continue
            if spec.seasonal is not None and not seasonal_ok:
                continue
            try:
                model = ETSModel(
                    series,
                    error=spec.error,
                    trend=spec.trend,
                    damped_trend=spec.damped_trend,
                    seasonal=spec.seasonal,
                    seasonal_periods=self.seasonal_period if spec.seasonal else None,
                )
                res = model.fit(disp=False, maxiter=self.maxiter)
            except Exception as e:
                logger.debug(f"{spec.label} failed: {e}")
                continue

            if np.isfinite(res.aicc) and res.aicc < best_aicc:
                best_aicc = res.aicc
                best = FittedETS(res, series, spec)

        if best is None:
            raise InsufficientDataError(f"{self.name}: no ETS specification could be fitted")

        logger.debug(f"{series.name}: selected {best.spec.label} (AICc={best_aicc:.2f})")
        return best
