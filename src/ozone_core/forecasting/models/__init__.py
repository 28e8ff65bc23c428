"""Forecasting models module.

Adding a Forecasting Model
==========================

1. Subclass ``ForecastModel`` and give it a unique ``name`` and a
   ``complexity`` rank (ties in model selection go to the lower rank):
   ```python
   class MyModel(ForecastModel):
       name = "mine"
       complexity = 3

       def fit(self, series: pd.Series) -> FittedModel:
           ...
   ```

2. Return a new ``FittedModel`` from ``fit()``; never store fit results on
   the ``ForecastModel`` itself. The same instance is fitted for every
   station, possibly from several threads.

3. Raise ``InsufficientDataError`` for series the family cannot handle
   (too short, constant, non-positive under a transform). The forecaster
   turns it into a missing value for that station.

4. Register the class in ``MODEL_FAMILIES`` so it can be chosen by name.

Example implementations:
- SeasonalNaiveModel: see models/naive.py
- ExponentialSmoothingModel: see models/ets.py
- BoxCoxARIMAModel: see models/arima.py
"""

from __future__ import annotations

from typing import Any, Dict, List, Type

from ozone_core.exceptions import ConfigError
from ozone_core.forecasting.models.arima import BoxCoxARIMAModel
from ozone_core.forecasting.models.base import FittedModel, ForecastModel
from ozone_core.forecasting.models.ets import ExponentialSmoothingModel
from ozone_core.forecasting.models.naive import SeasonalNaiveModel

MODEL_FAMILIES: Dict[str, Type[ForecastModel]] = {
    SeasonalNaiveModel.name: SeasonalNaiveModel,
    ExponentialSmoothingModel.name: ExponentialSmoothingModel,
    BoxCoxARIMAModel.name: BoxCoxARIMAModel,
}


def get_model(name: str, **kwargs: Any) -> ForecastModel:
    """Instantiate a model family by name ("snaive", "ets" or "arima")."""
    try:
        cls = MODEL_FAMILIES[name]
    except KeyError:
        raise ConfigError(
            f"Unknown model family {name!r}. Available: {sorted(MODEL_FAMILIES)}"
        ) from None
    return cls(**kwargs)


def default_candidates() -> List[ForecastModel]:
    """The candidate set compared during model selection."""
    return [SeasonalNaiveModel(), ExponentialSmoothingModel(), BoxCoxARIMAModel()]


__all__ = [
    "BoxCoxARIMAModel",
    "ExponentialSmoothingModel",
    "FittedModel",
    "ForecastModel",
    "MODEL_FAMILIES",
    "SeasonalNaiveModel",
    "default_candidates",
    "get_model",
]
