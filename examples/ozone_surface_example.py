"""Example: Forecast next-month ozone and krige a surface

This example runs the full pipeline on a readings CSV if one is available,
otherwise on synthetic readings for a handful of stations.

Prerequisites:
- A CSV with columns station_id, date, ozone_value, longitude, latitude
  (one row per station-day)
- Optionally a GeoJSON file with the state boundary
"""

import json
from pathlib import Path

import numpy as np
import pandas as pd

from ozone_core import PipelineConfig, run_ozone_pipeline
from ozone_core.forecasting import ModelSelectionConfig, select_model, build_monthly_series
from ozone_core.forecasting.models import ExponentialSmoothingModel, SeasonalNaiveModel
from ozone_core.report import format_report
from ozone_core.spatial import GridConfig, PolygonLocator

# Modify these paths to point to your data
data_file = Path("data/ozone_readings.csv")
boundary_file = Path("data/state_boundary.geojson")


def synthetic_readings(n_stations: int = 12, months: int = 48) -> pd.DataFrame:
    rng = np.random.default_rng(42)
    rows = []
    for i in range(n_stations):
        lon = -121.0 + rng.uniform(0, 3)
        lat = 34.0 + rng.uniform(0, 3)
        for m, month in enumerate(pd.date_range("2016-01-01", periods=months, freq="MS")):
            level = 0.055 + 0.012 * np.sin(2 * np.pi * (m - 3) / 12) + 0.003 * (lon + 121.0)
            for day in (3, 11, 19, 27):
                rows.append(
                    {
                        "station_id": f"06{i:04d}",
                        "date": month + pd.Timedelta(days=day),
                        "ozone_value": level + rng.normal(0, 0.003),
                        "longitude": lon,
                        "latitude": lat,
                    }
                )
    return pd.DataFrame(rows)


print("=" * 80)
print("Example 1: Model selection on one station")
print("=" * 80)

if data_file.exists():
    print(f"\nLoading data from: {data_file}")
    readings = pd.read_csv(data_file)
else:
    print(f"\nData file not found: {data_file}")
    print("Using synthetic data for demonstration instead...")
    readings = synthetic_readings()

print(f"Loaded {len(readings)} readings for {readings['station_id'].nunique()} stations")

station = sorted(readings["station_id"].astype(str).unique())[0]
series = build_monthly_series(readings, station)
selection = select_model(
    series,
    ModelSelectionConfig(candidates=[SeasonalNaiveModel(), ExponentialSmoothingModel()], horizon=3),
)
print(f"\nStation {station}: {len(series)} months")
print(selection.scores)

print("\n" + "=" * 80)
print("Example 2: Full pipeline")
print("=" * 80)

locator = None
if boundary_file.exists():
    with open(boundary_file) as f:
        locator = PolygonLocator.from_geojson(json.load(f))

config = PipelineConfig(
    selection=ModelSelectionConfig(candidates=[SeasonalNaiveModel(), ExponentialSmoothingModel()]),
    grid=GridConfig(step=0.2, padding=0.1),
    locator=locator,
    max_workers=-1,
)
result = run_ozone_pipeline(readings, config)

print()
print(format_report(result))
print("\nSurface (first 10 points):")
print(result.surface.head(10))
