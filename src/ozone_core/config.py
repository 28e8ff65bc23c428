"""Shared column names for ozone-core tables.

Every stage reads and writes DataFrames with these column names, so callers
only need to rename their raw columns once before entering the pipeline.
"""

# Readings (one row per station-day)
STATION_COL = "station_id"
DATE_COL = "date"
VALUE_COL = "ozone_value"
LON_COL = "longitude"
LAT_COL = "latitude"

REQUIRED_COLUMNS = [STATION_COL, DATE_COL, VALUE_COL, LON_COL, LAT_COL]

# Station forecasts
FORECAST_COL = "forecast"

# Spatial tables
X_COL = "x"
Y_COL = "y"

# Status values for per-station and per-fold records
STATUS_OK = "ok"
STATUS_DATA_GAP = "data_gap"
STATUS_INSUFFICIENT = "insufficient_data"
STATUS_NON_POSITIVE = "non_positive_forecast"
