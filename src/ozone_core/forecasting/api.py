"""Public API for the station forecasting stage.

This module provides a clean, configurable API for forecasting next-month
ozone at every station with in-memory DataFrames and no side effects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from ozone_core.config import STATUS_OK
from ozone_core.exceptions import ConfigError, DataQualityError
from ozone_core.forecasting.config import FORECAST_HORIZON
from ozone_core.forecasting.forecaster import forecast_stations
from ozone_core.forecasting.models.arima import BoxCoxARIMAModel
from ozone_core.forecasting.models.base import ForecastModel
from ozone_core.forecasting.preprocessing import resolve_end_period, to_month_start
from ozone_core.readings import filter_stations, validate_readings

logger = logging.getLogger(__name__)


@dataclass
class ForecastConfig:
    """Configuration for station forecasting.

    Attributes:
        horizon: Months ahead to forecast (default: 1).
        model: Forecast model family. If None, uses BoxCoxARIMAModel.
        stations: Optional whitelist of station ids. If None, every station
            in the readings is forecast.
        end_period: Month all series must end at (e.g. "2023-12"). If None,
            the latest month in the readings is used.
        max_workers: Worker threads for the per-station loop.
    """

    horizon: int = FORECAST_HORIZON
    model: Optional[ForecastModel] = None  # if None, use BoxCoxARIMAModel
    stations: Optional[List[str]] = None  # if None, keep every station
    end_period: Optional[str] = None
    max_workers: Optional[int] = 1

    def __post_init__(self) -> None:
        if self.horizon < 1:
            raise ConfigError(f"horizon must be >= 1, got {self.horizon}")


@dataclass
class StationForecastResult:
    """Result of the station forecasting stage.

    Attributes:
        forecasts: DataFrame with one row per station (see FORECAST_COLUMNS).
        metadata: Counts, end period, horizon, model name and skip reasons.
    """

    forecasts: pd.DataFrame
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def successful(self) -> pd.DataFrame:
        return self.forecasts.loc[self.forecasts["status"] == STATUS_OK].reset_index(drop=True)


def summarize_forecasts(forecasts: pd.DataFrame) -> Dict[str, object]:
    """Count successful and skipped stations, grouped by status."""
    ok = forecasts["status"] == STATUS_OK
    skipped = forecasts.loc[~ok]
    return {
        "stations": int(len(forecasts)),
        "successful_forecasts": int(ok.sum()),
        "failed_forecasts": int((~ok).sum()),
        "skipped_by_status": skipped["status"].value_counts().to_dict(),
        "skipped_stations": dict(zip(skipped["station_id"], skipped["reason"])),
    }


def run_station_forecasts(
    readings: pd.DataFrame,
    config: Optional[ForecastConfig] = None,
) -> StationForecastResult:
    """Run the station forecasting stage in memory.

    This function:
    - does NOT read or write any files,
    - does NOT parse CLI arguments or read environment variables,
    - MAY log progress via the logging module.

    Args:
        readings: Raw readings with columns station_id, date, ozone_value,
            longitude, latitude (one row per station-day).
        config: ForecastConfig. If None, uses defaults.

    Returns:
        StationForecastResult with one row per (whitelisted) station.

    Raises:
        ConfigError: If the readings are empty or the whitelist matches nothing.
        DataQualityError: If required columns are missing or no station could
            be forecast.
    """
    if config is None:
        config = ForecastConfig()

    df = filter_stations(validate_readings(readings), config.stations)
    end_period = (
        to_month_start(config.end_period) if config.end_period is not None else resolve_end_period(df)
    )
    model = config.model if config.model is not None else BoxCoxARIMAModel()

    logger.info(
        f"Forecasting {df['station_id'].nunique()} stations with {model.name}, "
        f"horizon={config.horizon}, end period {end_period:%Y-%m}"
    )

    forecasts = forecast_stations(
        df,
        model,
        horizon=config.horizon,
        end_period=end_period,
        max_workers=config.max_workers,
    )
    summary = summarize_forecasts(forecasts)
    logger.info(
        f"Forecast summary: {summary['successful_forecasts']} successful, "
        f"{summary['failed_forecasts']} failed"
    )

    if summary["successful_forecasts"] == 0:
        raise DataQualityError(
            "No forecasts were generated. Check data availability and model training errors."
        )

    return StationForecastResult(
        forecasts=forecasts,
        metadata={
            **summary,
            "model": model.name,
            "horizon": config.horizon,
            "end_period": end_period,
        },
    )
