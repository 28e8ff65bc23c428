"""Monthly ozone forecasting module.

This module turns station readings into monthly maximum series, selects a
forecasting model family and forecasts next-month ozone at every station.

Example:
    >>> from ozone_core.forecasting import (
    ...     ForecastConfig,
    ...     build_monthly_series,
    ...     run_station_forecasts,
    ...     select_model,
    ... )
    >>>
    >>> series = build_monthly_series(readings, "060371103")
    >>> selection = select_model(series)
    >>> print(selection.scores)
    >>>
    >>> config = ForecastConfig(horizon=1, model=selection.best)
    >>> result = run_station_forecasts(readings, config)
    >>> print(result.forecasts.head())

"""

from ozone_core.forecasting.api import (
    ForecastConfig,
    StationForecastResult,
    run_station_forecasts,
)
from ozone_core.forecasting.forecaster import (
    StationForecast,
    forecast_station,
    forecast_stations,
)
from ozone_core.forecasting.preprocessing import (
    build_all_monthly_series,
    build_monthly_series,
    resolve_end_period,
)
from ozone_core.forecasting.selection import (
    ModelSelectionConfig,
    ModelSelectionResult,
    select_model,
)

__all__ = [
    "ForecastConfig",
    "ModelSelectionConfig",
    "ModelSelectionResult",
    "StationForecast",
    "StationForecastResult",
    "build_all_monthly_series",
    "build_monthly_series",
    "forecast_station",
    "forecast_stations",
    "resolve_end_period",
    "run_station_forecasts",
    "select_model",
]
