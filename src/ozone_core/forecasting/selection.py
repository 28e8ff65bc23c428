"""Model selection for the forecasting stage.

Compares candidate model families on one representative monthly series:

1. each candidate is fitted to the full series and its residuals are checked
   for whiteness with a Ljung-Box test;
2. each candidate is evaluated with rolling-origin cross-validation
   (refit on an expanding window, forecast up to ``horizon`` months);
3. the family with the lowest cross-validated MSE wins, preferring families
   whose residuals pass the whiteness test and, on ties, simpler families.

Selection runs once per pipeline run; the winning family is then refitted
independently for every station.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from statsmodels.stats.diagnostic import acorr_ljungbox

from ozone_core.exceptions import ConfigError, DataQualityError, InsufficientDataError
from ozone_core.forecasting.config import CV_HORIZON, LJUNG_BOX_ALPHA, SEASONAL_PERIOD
from ozone_core.forecasting.models import default_candidates
from ozone_core.forecasting.models.base import ForecastModel
from ozone_core.parallel import parallel_map

logger = logging.getLogger(__name__)

SCORE_COLUMNS = [
    "model",
    "complexity",
    "n_params",
    "ljung_box_lag",
    "ljung_box_stat",
    "ljung_box_pvalue",
    "residuals_white",
    "cv_mse",
    "n_errors",
]


@dataclass
class ModelSelectionConfig:
    """Configuration for model selection.

    Attributes:
        candidates: Model families to compare. If None, uses seasonal naive,
            ETS and Box-Cox ARIMA.
        horizon: Maximum forecast horizon evaluated at every origin.
        initial: Length of the first training window. Earlier origins cannot
            be fitted by any family.
        alpha: Ljung-Box significance level.
        seasonal_period: Season length used for the Ljung-Box lag.
        max_workers: Worker threads for cross-validation origins.
    """

    candidates: Optional[List[ForecastModel]] = None
    horizon: int = CV_HORIZON
    initial: int = SEASONAL_PERIOD
    alpha: float = LJUNG_BOX_ALPHA
    seasonal_period: int = SEASONAL_PERIOD
    max_workers: Optional[int] = 1

    def __post_init__(self) -> None:
        if self.horizon < 1:
            raise ConfigError(f"horizon must be >= 1, got {self.horizon}")
        if self.initial < 1:
            raise ConfigError(f"initial must be >= 1, got {self.initial}")


@dataclass
class ModelSelectionResult:
    """Result of model selection.

    Attributes:
        best: The selected model family (unfitted).
        scores: One row per candidate with columns SCORE_COLUMNS, ordered by
            selection rank.
        mse_by_horizon: Candidates x horizons table of cross-validated MSE.
        errors: Per-candidate origins x horizons forecast error tables.
    """

    best: ForecastModel
    scores: pd.DataFrame
    mse_by_horizon: pd.DataFrame
    errors: Dict[str, pd.DataFrame] = field(default_factory=dict)

    @property
    def best_name(self) -> str:
        return self.best.name


def ljung_box_lag(n_obs: int, n_params: int, seasonal_period: int = SEASONAL_PERIOD) -> int:
    """Lag for the residual whiteness test.

    Two seasons for seasonal data, capped at a fifth of the sample and never
    below the fitted degrees of freedom plus three.
    """
    lag = 2 * seasonal_period if seasonal_period > 1 else 10
    lag = min(lag, int(round(n_obs / 5)))
    return max(n_params + 3, lag)


def ljung_box_test(
    residuals: pd.Series,
    n_params: int,
    seasonal_period: int = SEASONAL_PERIOD,
) -> Tuple[int, float, float]:
    """Run the Ljung-Box test on residuals.

    Returns:
        Tuple of (lag, statistic, p-value). Statistic and p-value are NaN when
        there are too few residuals for the lag.
    """
    resid = residuals.dropna().to_numpy(dtype=float)
    lag = ljung_box_lag(len(resid), n_params, seasonal_period)
    if len(resid) <= lag:
        return lag, np.nan, np.nan

    with np.errstate(invalid="ignore", divide="ignore"):
        table = acorr_ljungbox(resid, lags=[lag], model_df=n_params, return_df=True)
    return lag, float(table["lb_stat"].iloc[0]), float(table["lb_pvalue"].iloc[0])


def rolling_origin_errors(
    series: pd.Series,
    model: ForecastModel,
    horizon: int = CV_HORIZON,
    initial: int = SEASONAL_PERIOD,
    max_workers: Optional[int] = 1,
) -> pd.DataFrame:
    """Time series cross-validation errors on an expanding window.

    For every origin t (``initial <= t < len(series)``) the model is fitted on
    the first t observations and forecasts up to ``horizon`` months ahead.

    Returns:
        DataFrame indexed by the last training month, with columns 1..horizon
        holding ``actual - forecast``. Entries are NaN where the target lies
        beyond the series or the fit failed.
    """
    n = len(series)
    values = series.to_numpy(dtype=float)
    origins = list(range(initial, n))

    def evaluate(t: int) -> np.ndarray:
        row = np.full(horizon, np.nan)
        steps = min(horizon, n - t)
        try:
            fitted = model.fit(series.iloc[:t])
            forecast = fitted.point_forecast(steps).to_numpy(dtype=float)
        except (InsufficientDataError, ValueError, np.linalg.LinAlgError) as e:
            logger.debug(f"{model.name}: origin {t} skipped: {e}")
            return row
        row[:steps] = values[t : t + steps] - forecast
        return row

    rows = parallel_map(evaluate, origins, max_workers)
    errors = pd.DataFrame(
        np.vstack(rows) if rows else np.empty((0, horizon)),
        index=series.index[[t - 1 for t in origins]],
        columns=range(1, horizon + 1),
    )
    errors.index.name = "origin"
    return errors


def _mse(errors: pd.DataFrame) -> Tuple[float, int]:
    squared = errors.to_numpy(dtype=float) ** 2
    valid = np.isfinite(squared)
    if not valid.any():
        return np.inf, 0
    return float(squared[valid].mean()), int(valid.sum())


def _rank(scores: pd.DataFrame) -> pd.DataFrame:
    """Order candidates: scored before unscored, white residuals first, then MSE, then complexity."""
    ranked = scores.assign(
        _unscored=~np.isfinite(scores["cv_mse"].to_numpy(dtype=float)),
        _penalty=~scores["residuals_white"].astype(bool),
    )
    ranked = ranked.sort_values(["_unscored", "_penalty", "cv_mse", "complexity"], kind="mergesort")
    top = ranked.iloc[0]
    tied = (
        (ranked["_unscored"] == top["_unscored"])
        & (ranked["_penalty"] == top["_penalty"])
        & np.isclose(ranked["cv_mse"].to_numpy(dtype=float), float(top["cv_mse"]), rtol=1e-9, atol=0.0)
    )
    # Among MSE ties the simpler family goes first
    head = ranked.loc[tied].sort_values("complexity", kind="mergesort")
    ranked = pd.concat([head, ranked.loc[~tied]])
    return ranked.drop(columns=["_unscored", "_penalty"]).reset_index(drop=True)


def select_model(
    series: pd.Series,
    config: Optional[ModelSelectionConfig] = None,
) -> ModelSelectionResult:
    """Choose the forecasting model family for the whole run.

    Args:
        series: Representative monthly series (DatetimeIndex, freq "MS").
        config: ModelSelectionConfig. If None, uses defaults.

    Returns:
        ModelSelectionResult with the winning family and diagnostics.

    Raises:
        ConfigError: If no candidates are configured or names collide.
        DataQualityError: If no candidate produced any cross-validation error.
    """
    if config is None:
        config = ModelSelectionConfig()
    candidates = config.candidates if config.candidates is not None else default_candidates()
    if not candidates:
        raise ConfigError("At least one candidate model is required")
    names = [c.name for c in candidates]
    if len(set(names)) != len(names):
        raise ConfigError(f"Candidate model names must be unique, got {names}")

    logger.info(
        f"Selecting model for series {series.name!r} ({len(series)} months) "
        f"among {names}, horizon={config.horizon}"
    )

    rows = []
    errors: Dict[str, pd.DataFrame] = {}
    mse_by_horizon: Dict[str, pd.Series] = {}

    for candidate in candidates:
        lag, stat, pvalue = np.nan, np.nan, np.nan
        n_params = np.nan
        white = False
        try:
            fitted = candidate.fit(series)
            n_params = fitted.n_params
            lag, stat, pvalue = ljung_box_test(fitted.residuals(), fitted.n_params, config.seasonal_period)
            white = not (pvalue < config.alpha)
            if not white:
                logger.info(f"{candidate.name}: residuals show autocorrelation (p={pvalue:.4f})")
        except InsufficientDataError as e:
            logger.warning(f"{candidate.name}: could not fit full series: {e}")

        cv_errors = rolling_origin_errors(
            series,
            candidate,
            horizon=config.horizon,
            initial=config.initial,
            max_workers=config.max_workers,
        )
        mse, n_errors = _mse(cv_errors)
        errors[candidate.name] = cv_errors
        mse_by_horizon[candidate.name] = (cv_errors**2).mean(axis=0, skipna=True)

        logger.info(f"{candidate.name}: CV MSE={mse:.6g} over {n_errors} errors")
        rows.append(
            {
                "model": candidate.name,
                "complexity": candidate.complexity,
                "n_params": n_params,
                "ljung_box_lag": lag,
                "ljung_box_stat": stat,
                "ljung_box_pvalue": pvalue,
                "residuals_white": white,
                "cv_mse": mse,
                "n_errors": n_errors,
            }
        )

    scores = pd.DataFrame(rows, columns=SCORE_COLUMNS)
    if not np.isfinite(scores["cv_mse"]).any():
        raise DataQualityError(
            "Model selection failed: no candidate produced cross-validation errors"
        )

    scores = _rank(scores)
    best_name = scores["model"].iloc[0]
    best = next(c for c in candidates if c.name == best_name)
    logger.info(f"Selected model family: {best_name}")

    return ModelSelectionResult(
        best=best,
        scores=scores,
        mse_by_horizon=pd.DataFrame(mse_by_horizon).T,
        errors=errors,
    )
