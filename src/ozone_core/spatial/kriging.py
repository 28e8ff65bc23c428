"""Kriging prediction and leave-one-out cross-validation.

Two interpolation modes are supported:

- ``ordinary``: constant unknown mean (pykrige OrdinaryKriging);
- ``universal``: mean linear in the coordinates (pykrige UniversalKriging
  with a regional linear drift).

Both use the fitted Matérn variogram as a custom pykrige variogram. Every
variant (method x response transform) goes through the same
``kriging_stage``: fit the variogram, cross-validate, optionally predict a
grid. Variants are compared on PRESS computed on the original scale.

Known limitation: predictions on the log scale are back-transformed with
exp() without bias correction, so they estimate the median rather than the
mean (Jensen's inequality).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from pykrige.ok import OrdinaryKriging
from pykrige.uk import UniversalKriging

from ozone_core.config import STATION_COL, X_COL, Y_COL
from ozone_core.exceptions import ConfigError, DataQualityError
from ozone_core.parallel import parallel_map
from ozone_core.spatial.variogram import (
    DEFAULT_KAPPA,
    DEFAULT_N_LAGS,
    MAX_NFEV,
    VariogramModel,
    estimate_variogram,
    pykrige_matern,
)

logger = logging.getLogger(__name__)

METHODS = ("ordinary", "universal")
TRANSFORMS = ("log", "identity")

PRESS_COLUMNS = [
    "transform",
    "method",
    "press",
    "n_folds",
    "n_failed",
    "nugget",
    "psill",
    "range",
    "kappa",
    "converged",
]


@dataclass
class KrigingConfig:
    """Configuration for the spatial interpolation stage.

    Attributes:
        transforms: Response transforms to compare ("log", "identity").
        methods: Kriging methods to compare ("ordinary", "universal").
        n_lags: Number of empirical variogram lag bins.
        cutoff: Maximum pair distance for the empirical variogram. If None,
            one third of the bounding-box diagonal.
        kappa: Matérn shape parameter (0.5 = exponential).
        fit_kappa: Search kappa over a grid instead of fixing it.
        max_nfev: Function evaluation cap for the variogram optimizer.
        min_stations: Fewest stations the stage will krige.
        max_workers: Worker threads for leave-one-out folds.
    """

    transforms: Tuple[str, ...] = TRANSFORMS
    methods: Tuple[str, ...] = METHODS
    n_lags: int = DEFAULT_N_LAGS
    cutoff: Optional[float] = None
    kappa: float = DEFAULT_KAPPA
    fit_kappa: bool = False
    max_nfev: int = MAX_NFEV
    min_stations: int = 3
    max_workers: Optional[int] = 1

    def __post_init__(self) -> None:
        self.transforms = tuple(self.transforms)
        self.methods = tuple(self.methods)
        unknown = [t for t in self.transforms if t not in TRANSFORMS]
        if unknown or not self.transforms:
            raise ConfigError(f"transforms must be a non-empty subset of {TRANSFORMS}, got {self.transforms}")
        unknown = [m for m in self.methods if m not in METHODS]
        if unknown or not self.methods:
            raise ConfigError(f"methods must be a non-empty subset of {METHODS}, got {self.methods}")
        if self.n_lags < 1:
            raise ConfigError(f"n_lags must be >= 1, got {self.n_lags}")
        if self.min_stations < 3:
            raise ConfigError(f"min_stations must be >= 3, got {self.min_stations}")


@dataclass
class LeaveOneOutResult:
    """Leave-one-out cross-validation of one kriging variant.

    Attributes:
        predictions: One row per station with columns x, y, observed,
            predicted (original scale), squared_error and reason; predicted
            and squared_error are NaN for failed folds, whose reason holds
            the error message (empty for successful folds).
        press: Sum of squared errors over successful folds.
        n_failed: Number of folds that could not be solved.
    """

    predictions: pd.DataFrame
    press: float
    n_failed: int

    @property
    def n_folds(self) -> int:
        return len(self.predictions)

    @property
    def failure_reasons(self) -> Dict[str, int]:
        """Number of failed folds per distinct reason."""
        reasons = self.predictions.loc[self.predictions["reason"] != "", "reason"]
        return {str(k): int(v) for k, v in reasons.value_counts(sort=False).sort_index().items()}


@dataclass
class KrigingStageResult:
    """Everything one kriging variant produced."""

    method: str
    transform: str
    variogram: VariogramModel
    loo: LeaveOneOutResult
    surface: Optional[pd.DataFrame] = None


@dataclass
class VariantComparison:
    """PRESS comparison across kriging variants.

    Attributes:
        press: Table with columns PRESS_COLUMNS, one row per variant, sorted
            by failed folds, then PRESS.
        stages: Stage result per (transform, method).
        best: Key of the first-ranked variant.
    """

    press: pd.DataFrame
    stages: Dict[Tuple[str, str], KrigingStageResult] = field(default_factory=dict)
    best: Tuple[str, str] = ("log", "ordinary")

    @property
    def best_stage(self) -> KrigingStageResult:
        return self.stages[self.best]


def transform_values(values: np.ndarray, transform: str) -> np.ndarray:
    """Map values to the kriging scale.

    Raises:
        DataQualityError: If a log transform meets non-positive values.
    """
    values = np.asarray(values, dtype=float)
    if transform == "log":
        if np.any(values <= 0):
            raise DataQualityError("Log transform requires strictly positive values")
        return np.log(values)
    if transform == "identity":
        return values
    raise ConfigError(f"Unknown transform {transform!r}")


def back_transform(values: np.ndarray, transform: str) -> np.ndarray:
    """Map kriging-scale values back to the original scale (no bias correction)."""
    values = np.asarray(values, dtype=float)
    if transform == "log":
        return np.exp(values)
    if transform == "identity":
        return values
    raise ConfigError(f"Unknown transform {transform!r}")


def merge_colocated(observations: pd.DataFrame, value_col: str = "value") -> pd.DataFrame:
    """Average observations that share exact coordinates.

    Two stations at one location make the kriging system singular. Merged
    rows keep the first row's position and join station ids with "+".
    """
    keys = [X_COL, Y_COL]
    duplicated = observations.duplicated(subset=keys, keep=False)
    if not duplicated.any():
        return observations

    agg = {value_col: "mean"}
    if STATION_COL in observations.columns:
        agg[STATION_COL] = lambda ids: "+".join(str(i) for i in ids)
    merged = observations.groupby(keys, sort=False, as_index=False).agg(agg)
    shared = len(observations.loc[duplicated, keys].drop_duplicates())
    logger.warning(
        f"Averaged {int(duplicated.sum())} co-located observations at {shared} location(s); "
        f"{len(merged)} locations remain"
    )
    return merged[[c for c in observations.columns if c in merged.columns]]


def linear_trend_residuals(x: np.ndarray, y: np.ndarray, z: np.ndarray) -> np.ndarray:
    """Residuals of ``z`` after a least-squares fit of a + b*x + c*y."""
    design = np.column_stack([np.ones_like(x, dtype=float), x, y])
    coef, *_ = np.linalg.lstsq(design, z, rcond=None)
    return z - design @ coef


def fit_variant_variogram(
    x: np.ndarray,
    y: np.ndarray,
    z: np.ndarray,
    method: str,
    config: Optional[KrigingConfig] = None,
) -> VariogramModel:
    """Fit the variogram a kriging method needs.

    Ordinary kriging models the response itself; universal kriging models
    the residuals from the linear trend in the coordinates.
    """
    if config is None:
        config = KrigingConfig()
    if method not in METHODS:
        raise ConfigError(f"Unknown kriging method {method!r}")
    response = z if method == "ordinary" else linear_trend_residuals(x, y, z)
    return estimate_variogram(
        x,
        y,
        response,
        n_lags=config.n_lags,
        cutoff=config.cutoff,
        kappa=config.kappa,
        fit_kappa=config.fit_kappa,
        max_nfev=config.max_nfev,
    )


def _build_kriger(x: np.ndarray, y: np.ndarray, z: np.ndarray, variogram: VariogramModel, method: str):
    common = dict(
        variogram_model="custom",
        variogram_parameters=variogram.pykrige_parameters(),
        variogram_function=pykrige_matern,
        verbose=False,
        enable_plotting=False,
    )
    if method == "ordinary":
        return OrdinaryKriging(x, y, z, **common)
    if method == "universal":
        return UniversalKriging(x, y, z, drift_terms=["regional_linear"], **common)
    raise ConfigError(f"Unknown kriging method {method!r}")


def krige(
    x: np.ndarray,
    y: np.ndarray,
    z: np.ndarray,
    variogram: VariogramModel,
    target_x: np.ndarray,
    target_y: np.ndarray,
    method: str = "ordinary",
) -> Tuple[np.ndarray, np.ndarray]:
    """Predict ``z`` at target locations.

    Args:
        x, y, z: Observation coordinates and values (transform scale).
        variogram: Fitted variogram.
        target_x, target_y: Prediction locations.
        method: "ordinary" or "universal".

    Returns:
        Tuple of (prediction, kriging variance) arrays on the transform scale.
    """
    kriger = _build_kriger(
        np.asarray(x, dtype=float), np.asarray(y, dtype=float), np.asarray(z, dtype=float), variogram, method
    )
    prediction, variance = kriger.execute(
        "points", np.atleast_1d(np.asarray(target_x, dtype=float)), np.atleast_1d(np.asarray(target_y, dtype=float))
    )
    return np.asarray(prediction, dtype=float), np.asarray(variance, dtype=float)


def leave_one_out(
    x: np.ndarray,
    y: np.ndarray,
    values: np.ndarray,
    variogram: VariogramModel,
    method: str = "ordinary",
    transform: str = "log",
    max_workers: Optional[int] = 1,
) -> LeaveOneOutResult:
    """Leave-one-out cross-validation with an already-fitted variogram.

    Each station is predicted from all others. Squared errors are measured on
    the original scale (after back-transform) so PRESS is in real units.

    Args:
        x, y: Station coordinates.
        values: Observed values on the original scale.
        variogram: Variogram fitted on all stations (transform scale).
        method: "ordinary" or "universal".
        transform: "log" or "identity".
        max_workers: Worker threads (folds are independent).

    Returns:
        LeaveOneOutResult with per-station predictions and PRESS.

    Raises:
        DataQualityError: If two stations share a location (see
            merge_colocated).
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    values = np.asarray(values, dtype=float)
    z = transform_values(values, transform)
    n = len(z)
    if len(np.unique(np.column_stack([x, y]), axis=0)) < n:
        raise DataQualityError("Leave-one-out needs distinct station locations; merge co-located stations first")

    def fold(i: int) -> Tuple[float, str]:
        keep = np.arange(n) != i
        try:
            prediction, _ = krige(x[keep], y[keep], z[keep], variogram, x[i : i + 1], y[i : i + 1], method)
        except (np.linalg.LinAlgError, ValueError) as e:
            logger.warning(f"LOO fold {i} ({method}, {transform}) failed: {e}")
            return np.nan, f"{type(e).__name__}: {e}"
        return float(prediction[0]), ""

    folds: List[Tuple[float, str]] = parallel_map(fold, range(n), max_workers)
    predicted = back_transform(np.array([p for p, _ in folds], dtype=float), transform)
    squared_error = (values - predicted) ** 2
    valid = np.isfinite(squared_error)
    reasons = [reason or ("" if ok else "non-finite prediction") for (_, reason), ok in zip(folds, valid)]

    predictions = pd.DataFrame(
        {
            X_COL: x,
            Y_COL: y,
            "observed": values,
            "predicted": predicted,
            "squared_error": squared_error,
            "reason": reasons,
        }
    )
    press = float(squared_error[valid].sum()) if valid.any() else np.nan
    return LeaveOneOutResult(predictions=predictions, press=press, n_failed=int((~valid).sum()))


def predict_surface(
    x: np.ndarray,
    y: np.ndarray,
    z: np.ndarray,
    variogram: VariogramModel,
    grid: pd.DataFrame,
    method: str = "ordinary",
    transform: str = "log",
) -> pd.DataFrame:
    """Krige a grid and back-transform the predictions.

    Returns:
        Grid DataFrame with added columns prediction and variance (transform
        scale) and value (original scale).
    """
    prediction, variance = krige(x, y, z, variogram, grid[X_COL].to_numpy(), grid[Y_COL].to_numpy(), method)
    return grid[[X_COL, Y_COL]].assign(
        prediction=prediction,
        variance=variance,
        value=back_transform(prediction, transform),
    )


def _observation_arrays(observations: pd.DataFrame, value_col: str) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    missing = [c for c in (X_COL, Y_COL, value_col) if c not in observations.columns]
    if missing:
        raise DataQualityError(f"Missing required columns in observations: {missing}")
    obs = merge_colocated(observations.dropna(subset=[X_COL, Y_COL, value_col]), value_col)
    return (
        obs[X_COL].to_numpy(dtype=float),
        obs[Y_COL].to_numpy(dtype=float),
        obs[value_col].to_numpy(dtype=float),
    )


def kriging_stage(
    observations: pd.DataFrame,
    method: str,
    transform: str,
    grid: Optional[pd.DataFrame] = None,
    config: Optional[KrigingConfig] = None,
    value_col: str = "value",
) -> KrigingStageResult:
    """Fit the variogram, cross-validate and optionally predict a grid for one variant.

    Args:
        observations: Station table with columns x, y and ``value_col``
            (original scale).
        method: "ordinary" or "universal".
        transform: "log" or "identity".
        grid: Optional x/y grid to predict.
        config: KrigingConfig. If None, uses defaults.
        value_col: Column holding the observed values.

    Raises:
        DataQualityError: If there are fewer than ``config.min_stations``
            stations, or the log transform meets non-positive values.
    """
    if config is None:
        config = KrigingConfig()
    x, y, values = _observation_arrays(observations, value_col)
    if len(values) < config.min_stations:
        raise DataQualityError(
            f"Kriging needs at least {config.min_stations} stations, got {len(values)}"
        )

    z = transform_values(values, transform)
    variogram = fit_variant_variogram(x, y, z, method, config)
    loo = leave_one_out(x, y, values, variogram, method, transform, config.max_workers)
    logger.info(f"{method} kriging ({transform}): PRESS={loo.press:.6g}, failed folds={loo.n_failed}")

    surface = None
    if grid is not None:
        surface = predict_surface(x, y, z, variogram, grid, method, transform)
    return KrigingStageResult(method=method, transform=transform, variogram=variogram, loo=loo, surface=surface)


def rank_variants(press: pd.DataFrame) -> pd.DataFrame:
    """Order variants by failed folds, then PRESS.

    PRESS sums only the folds that were solved, so a variant that lost folds
    is not comparable with one that completed them all and ranks behind it.
    """
    return press.sort_values(["n_failed", "press"], kind="mergesort", na_position="last").reset_index(drop=True)


def compare_kriging_variants(
    observations: pd.DataFrame,
    config: Optional[KrigingConfig] = None,
    value_col: str = "value",
) -> VariantComparison:
    """Run every configured (transform, method) variant and rank them (see rank_variants).

    Raises:
        DataQualityError: If no variant produced a finite PRESS.
    """
    if config is None:
        config = KrigingConfig()

    stages: Dict[Tuple[str, str], KrigingStageResult] = {}
    rows = []
    for transform in config.transforms:
        for method in config.methods:
            stage = kriging_stage(observations, method, transform, grid=None, config=config, value_col=value_col)
            stages[(transform, method)] = stage
            rows.append(
                {
                    "transform": transform,
                    "method": method,
                    "press": stage.loo.press,
                    "n_folds": stage.loo.n_folds,
                    "n_failed": stage.loo.n_failed,
                    **{k: v for k, v in stage.variogram.as_dict().items() if k != "sse"},
                }
            )

    press = pd.DataFrame(rows, columns=PRESS_COLUMNS)
    finite = press.loc[np.isfinite(press["press"].to_numpy(dtype=float))]
    if finite.empty:
        raise DataQualityError("Every kriging variant failed cross-validation")

    press = rank_variants(press)
    best = (press["transform"].iloc[0], press["method"].iloc[0])
    logger.info(f"Selected variant: {best[1]} kriging on {best[0]} scale ({press['press'].iloc[0]:.6g})")
    return VariantComparison(press=press, stages=stages, best=best)
