"""Ozone Core - monthly ozone forecasting and kriging surfaces.

This package forecasts next-month maximum ozone at every monitoring station
and interpolates the forecasts into a continuous surface:

- **Forecasting**: monthly maximum series, model family selection by
  residual diagnostics and rolling-origin cross-validation, per-station
  forecasts
- **Spatial**: empirical variogram, Matérn fit, ordinary/universal kriging,
  leave-one-out PRESS, grid prediction and clipping to region polygons

Module Structure:
    ozone_core.readings: Input validation and station whitelist
    ozone_core.forecasting: Time series preprocessing, models and selection
    ozone_core.spatial: Variogram, kriging, grids and clipping
    ozone_core.pipeline: End-to-end in-memory pipeline
    ozone_core.cli: ``ozone-surface`` command

Quick Start:
    >>> import pandas as pd
    >>> from ozone_core import PipelineConfig, run_ozone_pipeline
    >>> from ozone_core.report import format_report
    >>>
    >>> readings = pd.read_csv("readings.csv")
    >>> result = run_ozone_pipeline(readings, PipelineConfig(stations=["060371103", "060376012"]))
    >>> print(format_report(result))
    >>> print(result.surface.head())
"""

__version__ = "0.1.0"

from ozone_core.exceptions import (
    ConfigError,
    DataGapError,
    DataQualityError,
    InsufficientDataError,
    OzoneCoreError,
    VariogramFitWarning,
)
from ozone_core.pipeline import OzoneSurfaceResult, PipelineConfig, run_ozone_pipeline

__all__ = [
    "ConfigError",
    "DataGapError",
    "DataQualityError",
    "InsufficientDataError",
    "OzoneCoreError",
    "OzoneSurfaceResult",
    "PipelineConfig",
    "VariogramFitWarning",
    "__version__",
    "run_ozone_pipeline",
]
