"""Validation and filtering of raw station readings.

Readings arrive as one row per station-day with at least the columns in
``ozone_core.config.REQUIRED_COLUMNS``. File parsing is the caller's job;
``load_readings`` is a thin convenience for the CLI.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

import pandas as pd

from ozone_core.config import (
    DATE_COL,
    LAT_COL,
    LON_COL,
    REQUIRED_COLUMNS,
    STATION_COL,
    VALUE_COL,
)
from ozone_core.exceptions import ConfigError, DataQualityError

logger = logging.getLogger(__name__)


def load_readings(paths: Sequence[str | Path]) -> pd.DataFrame:
    """Read one or more CSV files and merge them into a single readings table.

    Args:
        paths: CSV files sharing the readings schema.

    Returns:
        Concatenated DataFrame (not yet validated).

    Raises:
        ConfigError: If no paths are given.
        FileNotFoundError: If a file does not exist.
    """
    if not paths:
        raise ConfigError("At least one readings file is required")

    frames = []
    for path in paths:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Readings file not found: {path}")
        frame = pd.read_csv(path)
        logger.info(f"Loaded {len(frame)} rows from {path}")
        frames.append(frame)

    return pd.concat(frames, ignore_index=True)


def validate_readings(readings: pd.DataFrame) -> pd.DataFrame:
    """Check the readings table and return a cleaned copy.

    Dates are coerced to datetime, station ids to strings, and rows without
    an ozone value or a parseable date are dropped.

    Raises:
        ConfigError: If the table is empty (before or after cleaning).
        DataQualityError: If required columns are missing.
    """
    if readings is None or readings.empty:
        raise ConfigError("Readings table is empty; nothing to model")

    missing_columns = [col for col in REQUIRED_COLUMNS if col not in readings.columns]
    if missing_columns:
        raise DataQualityError(
            f"Missing required columns in readings: {missing_columns}. "
            f"Required: {REQUIRED_COLUMNS}"
        )

    df = readings[REQUIRED_COLUMNS].copy()
    df[STATION_COL] = df[STATION_COL].astype(str)
    df[DATE_COL] = pd.to_datetime(df[DATE_COL], errors="coerce")
    df[VALUE_COL] = pd.to_numeric(df[VALUE_COL], errors="coerce")

    before = len(df)
    df = df.dropna(subset=[DATE_COL, VALUE_COL])
    dropped = before - len(df)
    if dropped:
        logger.info(f"Dropped {dropped} readings without a date or ozone value")

    if df.empty:
        raise ConfigError("Readings table has no usable rows after cleaning")

    return df.reset_index(drop=True)


def filter_stations(readings: pd.DataFrame, station_ids: Iterable[object] | None) -> pd.DataFrame:
    """Restrict readings to a whitelist of station identifiers.

    Args:
        readings: Validated readings table.
        station_ids: Whitelisted station ids, or None to keep every station.

    Returns:
        New DataFrame containing only whitelisted stations.

    Raises:
        ConfigError: If the whitelist is empty or matches no readings.
    """
    if station_ids is None:
        return readings.copy()

    whitelist = {str(s) for s in station_ids}
    if not whitelist:
        raise ConfigError("Station whitelist is empty")

    present = set(readings[STATION_COL].unique())
    absent = sorted(whitelist - present)
    if absent:
        logger.warning(f"Whitelisted stations without readings: {absent}")

    excluded = sorted(present - whitelist)
    if excluded:
        logger.info(f"Excluding {len(excluded)} station(s) not on the whitelist")

    filtered = readings.loc[readings[STATION_COL].isin(whitelist)].reset_index(drop=True)
    if filtered.empty:
        raise ConfigError("No readings match the station whitelist")
    return filtered


def station_locations(readings: pd.DataFrame) -> pd.DataFrame:
    """Return one (station_id, longitude, latitude) row per station.

    The first reported coordinates of each station are used.
    """
    locations = (
        readings.sort_values([STATION_COL, DATE_COL])
        .groupby(STATION_COL, sort=True)[[LON_COL, LAT_COL]]
        .first()
        .reset_index()
    )
    return locations
