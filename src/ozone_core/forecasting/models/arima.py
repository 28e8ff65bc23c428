"""Box-Cox ARIMA model implementation for time series forecasting.

This module implements a seasonal ARIMA model using SARIMAX from statsmodels,
optionally fitted on a Box-Cox transformed series. The transformation helps
stabilize the variance of monthly ozone maxima, whose spread tends to grow
with the level during the high season.

Order selection follows the usual automatic ARIMA recipe:

1. the differencing orders are fixed first (seasonal strength from an STL
   decomposition for D, repeated KPSS tests for d), since AIC values are not
   comparable across differencing orders;
2. p, q, P and Q are then searched by AIC, stepwise from a few starting
   orders, with a cap on the number of SARIMAX fits.
"""

from __future__ import annotations

import logging
import warnings
from itertools import product
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy.special import inv_boxcox
from scipy.stats import boxcox
from statsmodels.tools.sm_exceptions import (
    ConvergenceWarning,
    HessianInversionWarning,
    InterpolationWarning,
)
from statsmodels.tsa.seasonal import STL
from statsmodels.tsa.statespace.sarimax import SARIMAX
from statsmodels.tsa.stattools import kpss

from ozone_core.exceptions import InsufficientDataError
from ozone_core.forecasting.config import (
    KPSS_ALPHA,
    MAX_ITER,
    MAX_ORDER_EVALUATIONS,
    MIN_OBS_MODEL,
    SEASONAL_PERIOD,
    SEASONAL_STRENGTH_THRESHOLD,
)
from ozone_core.forecasting.models.base import (
    FittedModel,
    ForecastModel,
    future_index,
    require_length,
    require_variation,
)

# Suppress frivolous warnings from statsmodels ARIMA fitting
# These warnings are common during grid search when trying many parameter combinations
warnings.filterwarnings("ignore", category=ConvergenceWarning)
warnings.filterwarnings("ignore", category=HessianInversionWarning)
warnings.filterwarnings("ignore", category=InterpolationWarning)
warnings.filterwarnings("ignore", message=".*invertible.*", category=RuntimeWarning)
warnings.filterwarnings("ignore", message=".*non-stationary.*", category=RuntimeWarning)

logger = logging.getLogger(__name__)

Lambda = Union[None, float, str]

# (p, q, P, Q)
ARMAOrder = Tuple[int, int, int, int]

STEPWISE_STARTS: Tuple[ARMAOrder, ...] = ((2, 2, 1, 1), (0, 0, 0, 0), (1, 0, 1, 0), (0, 1, 0, 1))


def seasonal_strength(values: np.ndarray, period: int = SEASONAL_PERIOD) -> float:
    """Strength of seasonality in [0, 1]: 1 - Var(remainder) / Var(season + remainder).

    Returns 0 when the series is shorter than two full seasons.
    """
    values = np.asarray(values, dtype=float)
    if period < 2 or len(values) < 2 * period:
        return 0.0
    decomposition = STL(values, period=period, robust=True).fit()
    detrended = decomposition.seasonal + decomposition.resid
    spread = np.var(detrended)
    if spread <= 0:
        return 0.0
    return float(max(0.0, 1.0 - np.var(decomposition.resid) / spread))


def choose_differencing(
    values: np.ndarray,
    period: int = SEASONAL_PERIOD,
    d_range: Tuple[int, ...] = (0, 1),
    d_seasonal_range: Tuple[int, ...] = (0, 1),
    alpha: float = KPSS_ALPHA,
) -> Tuple[int, int]:
    """Pick (d, D) within the allowed ranges.

    D is raised above its minimum only for strongly seasonal series; d is
    raised one step at a time while the KPSS test rejects stationarity of the
    (seasonally) differenced series.
    """
    values = np.asarray(values, dtype=float)

    D = min(d_seasonal_range)
    if D + 1 in d_seasonal_range and seasonal_strength(values, period) > SEASONAL_STRENGTH_THRESHOLD:
        D += 1
    work = values
    for _ in range(D):
        work = work[period:] - work[:-period]

    d = min(d_range)
    for _ in range(d):
        work = np.diff(work)
    while d + 1 in d_range and len(work) > 3 and np.ptp(work) > 0:
        _, pvalue, *_ = kpss(work, regression="c", nlags="auto")
        if pvalue >= alpha:
            break
        d += 1
        work = np.diff(work)
    return d, D


class FittedARIMA(FittedModel):
    """SARIMAX results plus the Box-Cox parameter used to fit them."""

    name = "arima"

    def __init__(
        self,
        result: Any,
        series: pd.Series,
        lmbda: Optional[float],
        order: Tuple[int, int, int],
        seasonal_order: Tuple[int, int, int, int],
        evaluations: int = 1,
    ) -> None:
        self.result = result
        self.series = series
        self.lmbda = lmbda
        self.order = order
        self.seasonal_order = seasonal_order
        p, _, q = order
        p_seas, _, q_seas, _ = seasonal_order
        self.n_params = p + q + p_seas + q_seas
        self.details: Dict[str, Any] = {
            "order": order,
            "seasonal_order": seasonal_order,
            "lambda": lmbda,
            "aic": float(result.aic),
            "evaluations": evaluations,
        }

    def _inverse(self, values: np.ndarray) -> np.ndarray:
        # No bias adjustment: the back-transformed mean is the forecast median
        if self.lmbda is None:
            return np.asarray(values, dtype=float)
        return inv_boxcox(np.asarray(values, dtype=float), self.lmbda)

    def point_forecast(self, steps: int) -> pd.Series:
        forecast = self.result.get_forecast(steps=steps)
        mean = self._inverse(np.asarray(forecast.predicted_mean))
        return pd.Series(mean, index=future_index(self.series, steps), name="mean")

    def forecast(self, steps: int, alpha: float = 0.05) -> pd.DataFrame:
        forecast = self.result.get_forecast(steps=steps)
        interval = np.asarray(forecast.conf_int(alpha=alpha))
        return pd.DataFrame(
            {
                "mean": self._inverse(np.asarray(forecast.predicted_mean)),
                "lower": self._inverse(interval[:, 0]),
                "upper": self._inverse(interval[:, 1]),
            },
            index=future_index(self.series, steps),
        )

    def residuals(self) -> pd.Series:
        # Innovation residuals on the transformed scale, skipping the diffuse burn-in
        resid = pd.Series(np.asarray(self.result.resid), index=self.series.index)
        return resid.iloc[int(self.result.loglikelihood_burn):]


class BoxCoxARIMAModel(ForecastModel):
    """Seasonal ARIMA with optional Box-Cox transformation.

    The ARIMA order is selected automatically for every fit, so each station
    gets its own order.
    """

    name = "arima"
    complexity = 2

    def __init__(
        self,
        lmbda: Lambda = "auto",
        seasonal_period: int = SEASONAL_PERIOD,
        p_range: tuple[int, ...] = (0, 1, 2),
        d_range: tuple[int, ...] = (0, 1),
        q_range: tuple[int, ...] = (0, 1, 2),
        p_seasonal_range: tuple[int, ...] = (0, 1),
        d_seasonal_range: tuple[int, ...] = (0, 1),
        q_seasonal_range: tuple[int, ...] = (0, 1),
        min_obs: int = MIN_OBS_MODEL,
        maxiter: int = MAX_ITER,
        stepwise: bool = True,
        max_evaluations: int = MAX_ORDER_EVALUATIONS,
    ):
        """Initialize BoxCoxARIMAModel with transform and search ranges.

        Args:
            lmbda: Box-Cox parameter. None fits on the raw scale, a number
                uses that fixed lambda (0 = log), "auto" estimates lambda by
                maximum likelihood on every fit.
            seasonal_period: Seasonal period (default: 12 for monthly data)
            p_range: AR order parameter range (default: (0, 1, 2))
            d_range: Differencing order parameter range (default: (0, 1))
            q_range: MA order parameter range (default: (0, 1, 2))
            p_seasonal_range: Seasonal AR order parameter range (default: (0, 1))
            d_seasonal_range: Seasonal differencing order parameter range (default: (0, 1))
            q_seasonal_range: Seasonal MA order parameter range (default: (0, 1))
            min_obs: Minimum series length (default: two seasons)
            maxiter: Iteration cap for each SARIMAX optimization
            stepwise: Search p/q/P/Q stepwise from a few starting orders
                instead of over the full grid
            max_evaluations: Cap on SARIMAX fits per order search; the best
                order found so far is kept when the cap is reached

        """
        if isinstance(lmbda, str) and lmbda != "auto":
            raise ValueError(f"lmbda must be None, a number or 'auto', got {lmbda!r}")
        if max_evaluations < 1:
            raise ValueError(f"max_evaluations must be >= 1, got {max_evaluations}")
        self.lmbda = lmbda
        self.seasonal_period = seasonal_period
        self.p_range = p_range
        self.d_range = d_range
        self.q_range = q_range
        self.p_seasonal_range = p_seasonal_range
        self.d_seasonal_range = d_seasonal_range
        self.q_seasonal_range = q_seasonal_range
        self.min_obs = min_obs
        self.maxiter = maxiter
        self.stepwise = stepwise
        self.max_evaluations = max_evaluations

    def _transform(self, series: pd.Series) -> Tuple[pd.Series, Optional[float]]:
        if self.lmbda is None:
            return series, None

        values = series.to_numpy(dtype=float)
        if np.any(values <= 0):
            raise InsufficientDataError(
                f"{self.name}: Box-Cox transform requires strictly positive values"
            )
        if self.lmbda == "auto":
            transformed, lmbda = boxcox(values)
        else:
            lmbda = float(self.lmbda)
            transformed = boxcox(values, lmbda=lmbda)
        return pd.Series(transformed, index=series.index, name=series.name), float(lmbda)

    def _in_ranges(self, arma: ARMAOrder) -> bool:
        p, q, p_seas, q_seas = arma
        return (
            p in self.p_range
            and q in self.q_range
            and p_seas in self.p_seasonal_range
            and q_seas in self.q_seasonal_range
        )

    def _clip(self, arma: ARMAOrder) -> ARMAOrder:
        ranges = (self.p_range, self.q_range, self.p_seasonal_range, self.q_seasonal_range)
        return tuple(min(r, key=lambda v: (abs(v - want), v)) for want, r in zip(arma, ranges))

    def _neighbours(self, arma: ARMAOrder) -> List[ARMAOrder]:
        p, q, p_seas, q_seas = arma
        moves = [
            (p + 1, q, p_seas, q_seas),
            (p - 1, q, p_seas, q_seas),
            (p, q + 1, p_seas, q_seas),
            (p, q - 1, p_seas, q_seas),
            (p + 1, q + 1, p_seas, q_seas),
            (p - 1, q - 1, p_seas, q_seas),
            (p, q, p_seas + 1, q_seas),
            (p, q, p_seas - 1, q_seas),
            (p, q, p_seas, q_seas + 1),
            (p, q, p_seas, q_seas - 1),
        ]
        return [m for m in moves if self._in_ranges(m)]

    def fit(self, series: pd.Series) -> FittedARIMA:
        """Choose differencing, search ARMA orders by AIC and keep the best fit.

        Raises:
            InsufficientDataError: If the series is too short, constant,
                non-positive under Box-Cox, or no order could be fitted.
        """
        series = series.astype(float)
        require_length(series, self.min_obs, self.name)
        require_variation(series, self.name)
        transformed, lmbda = self._transform(series)

        d, d_seas = choose_differencing(
            transformed.to_numpy(), self.seasonal_period, self.d_range, self.d_seasonal_range
        )
        if d + d_seas * self.seasonal_period >= len(transformed) - 1:
            raise InsufficientDataError(
                f"{self.name}: series too short for d={d}, D={d_seas} (n={len(transformed)})"
            )

        aic: Dict[ARMAOrder, float] = {}
        results: Dict[ARMAOrder, Any] = {}

        def evaluate(arma: ARMAOrder) -> None:
            if arma in aic or len(aic) >= self.max_evaluations:
                return
            p, q, p_seas, q_seas = arma
            order = (p, d, q)
            seasonal_order = (p_seas, d_seas, q_seas, self.seasonal_period)
            aic[arma] = np.inf
            try:
                model = SARIMAX(
                    transformed,
                    order=order,
                    seasonal_order=seasonal_order,
                    trend="c" if d + d_seas == 0 else "n",
                    enforce_stationarity=False,
                    enforce_invertibility=False,
                )
                res = model.fit(disp=False, maxiter=self.maxiter)
            except Exception as e:
                # Many orders fail (e.g., non-stationary, non-invertible), which is expected
                logger.debug(f"SARIMAX{order}x{seasonal_order} failed: {e}")
                return
            if np.isfinite(res.aic):
                aic[arma] = float(res.aic)
                results[arma] = res

        if self.stepwise:
            for start in STEPWISE_STARTS:
                evaluate(self._clip(start))
            current = min(aic, key=aic.get)
            while len(aic) < self.max_evaluations:
                for arma in self._neighbours(current):
                    evaluate(arma)
                best_arma = min(aic, key=aic.get)
                if best_arma == current:
                    break
                current = best_arma
        else:
            for arma in product(self.p_range, self.q_range, self.p_seasonal_range, self.q_seasonal_range):
                evaluate(arma)

        if not results:
            raise InsufficientDataError(f"{self.name}: no valid model found during order search")

        best_arma = min(results, key=lambda k: aic[k])
        p, q, p_seas, q_seas = best_arma
        order = (p, d, q)
        seasonal_order = (p_seas, d_seas, q_seas, self.seasonal_period)
        logger.debug(
            f"{series.name}: selected SARIMAX{order}x{seasonal_order} "
            f"(AIC={aic[best_arma]:.2f}, {len(aic)} fits)"
        )
        return FittedARIMA(results[best_arma], series, lmbda, order, seasonal_order, evaluations=len(aic))
