"""Per-station one-step-ahead forecasting.

Each station is an independent unit of work: its monthly series is rebuilt,
the chosen model family is fitted fresh and the point forecast is extracted.
Stations whose series have gaps or are too short become missing values
instead of aborting the batch.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional

import numpy as np
import pandas as pd

from ozone_core.config import (
    FORECAST_COL,
    LAT_COL,
    LON_COL,
    STATION_COL,
    STATUS_DATA_GAP,
    STATUS_INSUFFICIENT,
    STATUS_OK,
)
from ozone_core.exceptions import DataGapError, InsufficientDataError
from ozone_core.forecasting.config import FORECAST_HORIZON
from ozone_core.forecasting.models.base import ForecastModel
from ozone_core.forecasting.preprocessing import build_monthly_series
from ozone_core.parallel import parallel_map
from ozone_core.readings import station_locations

logger = logging.getLogger(__name__)

FORECAST_COLUMNS = [
    STATION_COL,
    LON_COL,
    LAT_COL,
    FORECAST_COL,
    "forecast_origin",
    "target_period",
    "status",
    "reason",
]


@dataclass(frozen=True)
class StationForecast:
    """Forecast record for one station.

    ``forecast`` is NaN when ``status`` is not "ok"; ``reason`` then holds the
    error message.
    """

    station_id: str
    longitude: float
    latitude: float
    forecast: float
    forecast_origin: Optional[pd.Timestamp]
    target_period: Optional[pd.Timestamp]
    status: str = STATUS_OK
    reason: str = ""


def forecast_station(series: pd.Series, model: ForecastModel, horizon: int = FORECAST_HORIZON) -> float:
    """Fit ``model`` to one station's series and return the forecast ``horizon`` months ahead.

    Args:
        series: Monthly series for one station.
        model: Model family; fitted fresh, no state carried over.
        horizon: Months ahead (default: 1).

    Returns:
        Point forecast at ``horizon`` on the original scale: the mean for
        seasonal naive and ETS, the median (inverse Box-Cox of the
        transformed mean) for Box-Cox ARIMA.

    Raises:
        InsufficientDataError: If the family cannot fit the series or the
            forecast is not finite.
    """
    fitted = model.fit(series)
    value = float(fitted.point_forecast(horizon).iloc[-1])
    if not np.isfinite(value):
        raise InsufficientDataError(f"{model.name}: non-finite forecast for {series.name}")
    return value


def forecast_stations(
    readings: pd.DataFrame,
    model: ForecastModel,
    horizon: int = FORECAST_HORIZON,
    end_period: Optional[object] = None,
    max_workers: Optional[int] = 1,
) -> pd.DataFrame:
    """Forecast every station in ``readings`` with the same model family.

    Args:
        readings: Validated readings table.
        model: Model family to fit per station.
        horizon: Months ahead (default: 1).
        end_period: Shared last month of every series.
        max_workers: Worker threads (stations are independent).

    Returns:
        DataFrame with columns FORECAST_COLUMNS, one row per station, sorted
        by station id.
    """
    locations = station_locations(readings).set_index(STATION_COL)

    def run(station_id: str) -> StationForecast:
        lon = float(locations.at[station_id, LON_COL])
        lat = float(locations.at[station_id, LAT_COL])
        try:
            series = build_monthly_series(readings, station_id, end_period)
        except DataGapError as e:
            logger.warning(f"{station_id}: skipped ({e})")
            return StationForecast(station_id, lon, lat, np.nan, None, None, STATUS_DATA_GAP, str(e))

        origin = series.index[-1]
        target = origin + pd.offsets.MonthBegin(horizon)
        try:
            value = forecast_station(series, model, horizon)
        except InsufficientDataError as e:
            logger.warning(f"{station_id}: skipped ({e})")
            return StationForecast(station_id, lon, lat, np.nan, origin, target, STATUS_INSUFFICIENT, str(e))

        logger.debug(f"{station_id}: {model.name} forecast for {target:%Y-%m} = {value:.5g}")
        return StationForecast(station_id, lon, lat, value, origin, target)

    records = parallel_map(run, list(locations.index), max_workers)
    if not records:
        return pd.DataFrame(columns=FORECAST_COLUMNS)
    return pd.DataFrame([asdict(r) for r in records], columns=FORECAST_COLUMNS)
