"""End-to-end ozone surface pipeline.

Composes the forecasting and spatial stages in memory:

validate -> whitelist -> end period -> monthly series -> reference station
-> model selection -> per-station forecasts -> spatial observations
-> kriging variant comparison -> grid prediction -> clipping.

Every stage returns a new table; nothing is read from or written to disk.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ozone_core.config import (
    FORECAST_COL,
    LAT_COL,
    LON_COL,
    STATION_COL,
    STATUS_NON_POSITIVE,
    STATUS_OK,
    X_COL,
    Y_COL,
)
from ozone_core.exceptions import ConfigError, DataGapError, DataQualityError
from ozone_core.forecasting.api import ForecastConfig, run_station_forecasts, summarize_forecasts
from ozone_core.forecasting.config import FORECAST_HORIZON
from ozone_core.forecasting.preprocessing import (
    build_all_monthly_series,
    resolve_end_period,
    to_month_start,
)
from ozone_core.forecasting.selection import ModelSelectionConfig, ModelSelectionResult, select_model
from ozone_core.readings import filter_stations, validate_readings
from ozone_core.spatial.clip import Locator, clip_to_region
from ozone_core.spatial.grid import BBox, GridConfig, bounding_box, make_grid
from ozone_core.spatial.kriging import (
    KrigingConfig,
    compare_kriging_variants,
    merge_colocated,
    predict_surface,
    transform_values,
)
from ozone_core.spatial.variogram import VariogramModel

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Configuration for the full pipeline.

    Attributes:
        stations: Optional whitelist of station ids.
        reference_station: Station whose series drives model selection. If
            None, the station with the longest gap-free series is used.
        end_period: Shared last month of every series. If None, the latest
            month in the readings.
        forecast_horizon: Months ahead of the production forecast.
        selection_horizon: Horizon evaluated by cross-validation. If None,
            matches ``forecast_horizon``.
        selection: Model selection settings (its horizon is overridden by
            ``selection_horizon``).
        kriging: Kriging variant settings.
        grid: Prediction grid settings.
        locator: Optional point-in-region callable used to clip the surface.
        max_workers: Worker threads for the per-station loop.
    """

    stations: Optional[List[str]] = None
    reference_station: Optional[str] = None
    end_period: Optional[str] = None
    forecast_horizon: int = FORECAST_HORIZON
    selection_horizon: Optional[int] = None  # if None, match forecast_horizon
    selection: ModelSelectionConfig = field(default_factory=ModelSelectionConfig)
    kriging: KrigingConfig = field(default_factory=KrigingConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    locator: Optional[Locator] = None
    max_workers: Optional[int] = 1

    def __post_init__(self) -> None:
        if self.forecast_horizon < 1:
            raise ConfigError(f"forecast_horizon must be >= 1, got {self.forecast_horizon}")
        if self.selection_horizon is not None and self.selection_horizon < 1:
            raise ConfigError(f"selection_horizon must be >= 1, got {self.selection_horizon}")

    def resolved_selection(self) -> ModelSelectionConfig:
        """Selection config with the effective cross-validation horizon applied."""
        horizon = self.selection_horizon if self.selection_horizon is not None else self.forecast_horizon
        if horizon != self.forecast_horizon:
            logger.warning(
                f"Model selected on a {horizon}-month CV horizon but forecasts are "
                f"{self.forecast_horizon} month(s) ahead"
            )
        return dataclasses.replace(self.selection, horizon=horizon)


@dataclass
class OzoneSurfaceResult:
    """Outputs of one pipeline run.

    Attributes:
        selection: Model selection diagnostics and the chosen family.
        forecasts: One row per station (successful and skipped).
        variogram: Variogram of the winning kriging variant.
        press: PRESS table over every kriging variant.
        variant: (transform, method) of the winning variant.
        surface: Predicted surface, clipped when a locator was configured.
        metadata: Counts and reasons for skipped stations and folds.
    """

    selection: ModelSelectionResult
    forecasts: pd.DataFrame
    variogram: VariogramModel
    press: pd.DataFrame
    variant: Tuple[str, str]
    surface: pd.DataFrame
    metadata: Dict[str, object] = field(default_factory=dict)


def choose_reference_station(
    series_by_station: Mapping[str, Union[pd.Series, DataGapError]],
    station_id: Optional[str] = None,
) -> str:
    """Pick the station whose series is used for model selection.

    Without an explicit choice, the longest gap-free series wins; ties go to
    the smallest station id.

    Raises:
        DataQualityError: If the requested station has a gap or no station
            has a usable series.
    """
    if station_id is not None:
        station_id = str(station_id)
        series = series_by_station.get(station_id)
        if series is None:
            raise DataQualityError(f"Reference station {station_id} has no readings")
        if isinstance(series, DataGapError):
            raise DataQualityError(f"Reference station {station_id} is unusable: {series}")
        return station_id

    usable = {sid: s for sid, s in series_by_station.items() if isinstance(s, pd.Series)}
    if not usable:
        raise DataQualityError("No station has a gap-free monthly series")
    return min(usable, key=lambda sid: (-len(usable[sid]), sid))


def spatial_observations(forecasts: pd.DataFrame, require_positive: bool) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Turn successful forecasts into kriging observations.

    Args:
        forecasts: Station forecast table.
        require_positive: Drop non-positive forecasts (needed by the log
            transform); they are re-labelled in the returned forecast table.

    Returns:
        Tuple of (updated forecasts, observations with station_id, x, y, value).
        Stations sharing a location are averaged into one observation.
    """
    forecasts = forecasts.copy()
    if require_positive:
        bad = (forecasts["status"] == STATUS_OK) & (forecasts[FORECAST_COL] <= 0)
        if bad.any():
            logger.warning(f"Dropping {int(bad.sum())} non-positive forecast(s) before log kriging")
        forecasts.loc[bad, "status"] = STATUS_NON_POSITIVE
        forecasts.loc[bad, "reason"] = "forecast <= 0 is undefined on the log scale"

    ok = forecasts.loc[forecasts["status"] == STATUS_OK]
    observations = pd.DataFrame(
        {
            STATION_COL: ok[STATION_COL].to_numpy(),
            X_COL: ok[LON_COL].to_numpy(dtype=float),
            Y_COL: ok[LAT_COL].to_numpy(dtype=float),
            "value": ok[FORECAST_COL].to_numpy(dtype=float),
        }
    )
    return forecasts, merge_colocated(observations)


def _grid_bbox(config: PipelineConfig, observations: pd.DataFrame) -> BBox:
    if config.grid.bbox is not None:
        return config.grid.bbox
    bounds = getattr(config.locator, "bounds", None)
    if bounds is not None:
        xmin, ymin, xmax, ymax = bounds
        pad = config.grid.padding
        return (xmin - pad, ymin - pad, xmax + pad, ymax + pad)
    return bounding_box(observations[X_COL], observations[Y_COL], config.grid.padding)


def run_ozone_pipeline(
    readings: pd.DataFrame,
    config: Optional[PipelineConfig] = None,
) -> OzoneSurfaceResult:
    """Forecast next-month ozone per station and interpolate a surface.

    This function:
    - does NOT read or write any files,
    - does NOT parse CLI arguments or read environment variables,
    - MAY log progress via the logging module.

    Args:
        readings: Raw readings with columns station_id, date, ozone_value,
            longitude, latitude.
        config: PipelineConfig. If None, uses defaults.

    Returns:
        OzoneSurfaceResult with forecasts, kriging diagnostics and the surface.

    Raises:
        ConfigError: If the readings are empty or the whitelist matches nothing.
        DataQualityError: If a stage fails for every station or fold.
    """
    if config is None:
        config = PipelineConfig()

    df = filter_stations(validate_readings(readings), config.stations)
    end_period = (
        to_month_start(config.end_period) if config.end_period is not None else resolve_end_period(df)
    )
    logger.info(f"Pipeline: {df[STATION_COL].nunique()} stations, end period {end_period:%Y-%m}")

    # Model selection on one representative station
    series_by_station = build_all_monthly_series(df, end_period)
    reference = choose_reference_station(series_by_station, config.reference_station)
    logger.info(f"Reference station for model selection: {reference}")
    selection_config = config.resolved_selection()
    selection = select_model(series_by_station[reference], selection_config)

    # Per-station production forecasts
    forecast_result = run_station_forecasts(
        df,
        ForecastConfig(
            horizon=config.forecast_horizon,
            model=selection.best,
            end_period=end_period,
            max_workers=config.max_workers,
        ),
    )
    forecasts, observations = spatial_observations(
        forecast_result.forecasts, require_positive="log" in config.kriging.transforms
    )

    # Kriging variants compared on PRESS, then the winner predicts the grid
    comparison = compare_kriging_variants(observations, config.kriging)
    transform, method = comparison.best
    best_stage = comparison.best_stage

    grid = make_grid(_grid_bbox(config, observations), config.grid.step)
    surface = predict_surface(
        observations[X_COL].to_numpy(),
        observations[Y_COL].to_numpy(),
        transform_values(observations["value"].to_numpy(), transform),
        best_stage.variogram,
        grid,
        method,
        transform,
    )
    logger.info(f"Predicted {len(surface)} grid points with {method} kriging ({transform})")
    if config.locator is not None:
        surface = clip_to_region(surface, config.locator)

    summary = summarize_forecasts(forecasts)
    failed_folds = {
        f"{t}/{m}": {"count": stage.loo.n_failed, "reasons": stage.loo.failure_reasons}
        for (t, m), stage in comparison.stages.items()
        if stage.loo.n_failed
    }
    metadata = {
        **summary,
        "end_period": end_period,
        "reference_station": reference,
        "model": selection.best_name,
        "forecast_horizon": config.forecast_horizon,
        "selection_horizon": int(selection_config.horizon),
        "kriging_stations": int(len(observations)),
        "failed_folds": failed_folds,
        "variogram_converged": bool(best_stage.variogram.converged),
        "surface_points": int(len(surface)),
        "surface_mean": float(np.nanmean(surface["value"])) if len(surface) else np.nan,
    }

    return OzoneSurfaceResult(
        selection=selection,
        forecasts=forecasts,
        variogram=best_stage.variogram,
        press=comparison.press,
        variant=(transform, method),
        surface=surface,
        metadata=metadata,
    )
