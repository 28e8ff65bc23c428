"""Monthly series preparation for time series forecasting.

This module turns raw, irregular station readings into regularly spaced
monthly maximum series suitable for the forecasting models.
"""

from __future__ import annotations

from typing import Dict, Optional, Union

import pandas as pd

from ozone_core.config import DATE_COL, STATION_COL, VALUE_COL
from ozone_core.exceptions import DataGapError
from ozone_core.forecasting.config import MONTHLY_FREQ


def to_month_start(value: object) -> pd.Timestamp:
    """Normalize a date-like value to the first day of its month."""
    return pd.Timestamp(value).to_period("M").to_timestamp()


def resolve_end_period(readings: pd.DataFrame) -> pd.Timestamp:
    """Return the month every station series must end at.

    This is the latest month present anywhere in the readings, so that
    station forecasts share the same origin.
    """
    return to_month_start(readings[DATE_COL].max())


def build_monthly_series(
    readings: pd.DataFrame,
    station_id: object,
    end_period: Optional[object] = None,
) -> pd.Series:
    """Build the monthly maximum ozone series for one station.

    Readings are grouped by calendar month and the maximum of each month is
    kept. The result is sorted, truncated after ``end_period`` and checked for
    gaps: the models assume a contiguous monthly index.

    Args:
        readings: Readings table with station, date and ozone columns.
        station_id: Station to extract.
        end_period: Month the series must end at. If None, the station's last
            observed month is used.

    Returns:
        Series indexed by month start (freq "MS"), named after the station.

    Raises:
        DataGapError: If months are missing inside the span, or between the
            station's last observation and ``end_period``, or if the station
            has no readings at all before ``end_period``.
    """
    station = readings.loc[readings[STATION_COL].astype(str) == str(station_id), [DATE_COL, VALUE_COL]]
    months = pd.to_datetime(station[DATE_COL]).dt.to_period("M").dt.to_timestamp()
    monthly = station[VALUE_COL].groupby(months).max().sort_index()

    if end_period is not None:
        end = to_month_start(end_period)
        monthly = monthly.loc[monthly.index <= end]
    elif len(monthly):
        end = monthly.index[-1]
    else:
        end = None

    if monthly.empty:
        missing = [end] if end is not None else []
        raise DataGapError(station_id, missing)

    full_index = pd.date_range(start=monthly.index[0], end=end, freq=MONTHLY_FREQ)
    missing = full_index.difference(monthly.index)
    if len(missing) > 0:
        raise DataGapError(station_id, [m.strftime("%Y-%m") for m in missing])

    full_index.name = DATE_COL
    return pd.Series(
        monthly.reindex(full_index).to_numpy(dtype=float),
        index=full_index,
        name=str(station_id),
    )


def build_all_monthly_series(
    readings: pd.DataFrame,
    end_period: Optional[object] = None,
) -> Dict[str, Union[pd.Series, DataGapError]]:
    """Build monthly series for every station in the readings.

    Stations with gaps map to the DataGapError instead of a series so the
    caller can record them as missing without aborting the batch.
    """
    result: Dict[str, Union[pd.Series, DataGapError]] = {}
    for station_id in sorted(readings[STATION_COL].astype(str).unique()):
        try:
            result[station_id] = build_monthly_series(readings, station_id, end_period)
        except DataGapError as exc:
            result[station_id] = exc
    return result
