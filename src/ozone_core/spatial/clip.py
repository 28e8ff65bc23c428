"""Clip prediction surfaces to region polygons.

The point-in-region lookup is an injected callable so callers can plug in
any boundary source. PolygonLocator is the shapely-backed implementation.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from shapely.geometry import Point, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union
from shapely.prepared import prep

from ozone_core.config import X_COL, Y_COL
from ozone_core.exceptions import ConfigError

logger = logging.getLogger(__name__)

REGION_COL = "region"

Locator = Callable[[Sequence[float], Sequence[float]], List[Optional[str]]]


class PolygonLocator:
    """Map points to the name of the region polygon that covers them.

    Points on a shared boundary go to the first region in insertion order.
    """

    def __init__(self, regions: Mapping[str, BaseGeometry]):
        if not regions:
            raise ConfigError("PolygonLocator needs at least one region")
        self.regions: Dict[str, BaseGeometry] = dict(regions)
        self._prepared = {name: prep(geom) for name, geom in self.regions.items()}

    @classmethod
    def from_geojson(cls, data: Mapping, name_key: str = "name") -> "PolygonLocator":
        """Build from a GeoJSON FeatureCollection, Feature or bare geometry.

        Features without ``name_key`` in their properties are named by position.
        """
        kind = data.get("type")
        if kind == "FeatureCollection":
            features = data.get("features", [])
        elif kind == "Feature":
            features = [data]
        else:
            features = [{"type": "Feature", "geometry": data, "properties": {}}]

        regions = {}
        for i, feature in enumerate(features):
            properties = feature.get("properties") or {}
            name = str(properties.get(name_key, i))
            regions[name] = shape(feature["geometry"])
        return cls(regions)

    @property
    def bounds(self):
        """(xmin, ymin, xmax, ymax) of all regions together."""
        return tuple(float(v) for v in unary_union(list(self.regions.values())).bounds)

    def __call__(self, x: Sequence[float], y: Sequence[float]) -> List[Optional[str]]:
        names: List[Optional[str]] = []
        for px, py in zip(x, y):
            point = Point(px, py)
            match = None
            for name, geom in self._prepared.items():
                if geom.covers(point):
                    match = name
                    break
            names.append(match)
        return names


def clip_to_region(surface: pd.DataFrame, locator: Locator) -> pd.DataFrame:
    """Keep only surface points inside a region and tag them with its name.

    Args:
        surface: Table with x and y columns.
        locator: Callable returning a region name (or None) per point.

    Returns:
        Filtered copy of ``surface`` with an added ``region`` column.
    """
    regions = locator(surface[X_COL].to_numpy(dtype=float), surface[Y_COL].to_numpy(dtype=float))
    tagged = surface.assign(**{REGION_COL: pd.Series(regions, index=surface.index, dtype=object)})
    inside = tagged[REGION_COL].notna().to_numpy()
    logger.info(f"Clipping kept {int(np.sum(inside))} of {len(surface)} grid points")
    return tagged.loc[inside].reset_index(drop=True)
