"""Regular prediction grids."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from ozone_core.config import X_COL, Y_COL
from ozone_core.exceptions import ConfigError

BBox = Tuple[float, float, float, float]

DEFAULT_STEP = 0.1


@dataclass
class GridConfig:
    """Prediction grid settings.

    Attributes:
        step: Grid spacing in coordinate units.
        padding: Margin added around the station bounding box.
        bbox: Explicit (xmin, ymin, xmax, ymax). If None, derived from the
            region polygons or the stations.
    """

    step: float = DEFAULT_STEP
    padding: float = 0.0
    bbox: Optional[BBox] = None

    def __post_init__(self) -> None:
        if self.step <= 0:
            raise ConfigError(f"grid step must be > 0, got {self.step}")
        if self.padding < 0:
            raise ConfigError(f"grid padding must be >= 0, got {self.padding}")


def bounding_box(x: np.ndarray, y: np.ndarray, padding: float = 0.0) -> BBox:
    """(xmin, ymin, xmax, ymax) of the points, grown by ``padding`` on each side."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size == 0:
        raise ConfigError("Cannot build a bounding box from no points")
    return (
        float(x.min() - padding),
        float(y.min() - padding),
        float(x.max() + padding),
        float(y.max() + padding),
    )


def make_grid(bbox: BBox, step: float = DEFAULT_STEP) -> pd.DataFrame:
    """Regular grid covering ``bbox``, x varying fastest.

    Both edges are included when they fall on a grid line.
    """
    xmin, ymin, xmax, ymax = bbox
    if step <= 0:
        raise ConfigError(f"grid step must be > 0, got {step}")
    if xmax < xmin or ymax < ymin:
        raise ConfigError(f"Invalid bounding box {bbox}")

    xs = np.arange(xmin, xmax + step / 2.0, step)
    ys = np.arange(ymin, ymax + step / 2.0, step)
    xx, yy = np.meshgrid(xs, ys)
    return pd.DataFrame({X_COL: xx.ravel(), Y_COL: yy.ravel()})
