"""Tests for prediction grids and region clipping."""

import pandas as pd
import pytest
from shapely.geometry import box

from ozone_core.exceptions import ConfigError
from ozone_core.spatial.clip import PolygonLocator, clip_to_region
from ozone_core.spatial.grid import GridConfig, bounding_box, make_grid

TWO_SQUARES = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"name": "west"},
            "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]},
        },
        {
            "type": "Feature",
            "properties": {"name": "east"},
            "geometry": {"type": "Polygon", "coordinates": [[[1, 0], [2, 0], [2, 1], [1, 1], [1, 0]]]},
        },
    ],
}


def test_make_grid_x_varies_fastest() -> None:
    grid = make_grid((0.0, 0.0, 1.0, 0.5), step=0.5)

    assert list(grid.columns) == ["x", "y"]
    assert len(grid) == 6
    assert grid["x"].tolist()[:3] == [0.0, 0.5, 1.0]
    assert grid["y"].tolist()[:3] == [0.0, 0.0, 0.0]
    assert grid["y"].iloc[-1] == 0.5


def test_make_grid_validation() -> None:
    with pytest.raises(ConfigError):
        make_grid((0.0, 0.0, 1.0, 1.0), step=0.0)
    with pytest.raises(ConfigError):
        make_grid((1.0, 0.0, 0.0, 1.0), step=0.1)
    with pytest.raises(ConfigError):
        GridConfig(step=-1.0)


def test_bounding_box_padding() -> None:
    assert bounding_box([0.0, 2.0], [1.0, 3.0], padding=0.5) == (-0.5, 0.5, 2.5, 3.5)
    with pytest.raises(ConfigError):
        bounding_box([], [])


def test_polygon_locator_from_geojson() -> None:
    """Points map to the covering region; shared edges go to the first region."""
    locator = PolygonLocator.from_geojson(TWO_SQUARES)

    assert locator([0.5, 1.5, 3.0, 1.0], [0.5, 0.5, 3.0, 0.5]) == ["west", "east", None, "west"]
    assert locator.bounds == (0.0, 0.0, 2.0, 1.0)


def test_polygon_locator_from_bare_geometry() -> None:
    locator = PolygonLocator.from_geojson(TWO_SQUARES["features"][1]["geometry"])
    assert list(locator.regions) == ["0"]
    assert locator([1.5], [0.5]) == ["0"]


def test_polygon_locator_requires_regions() -> None:
    with pytest.raises(ConfigError):
        PolygonLocator({})


def test_clip_to_region_drops_outside_points() -> None:
    surface = pd.DataFrame({"x": [0.5, 1.5, 5.0], "y": [0.5, 0.5, 5.0], "value": [1.0, 2.0, 3.0]})
    clipped = clip_to_region(surface, PolygonLocator({"state": box(0, 0, 2, 1)}))

    assert clipped["value"].tolist() == [1.0, 2.0]
    assert clipped["region"].tolist() == ["state", "state"]


def test_clip_to_region_accepts_any_callable() -> None:
    surface = pd.DataFrame({"x": [0.0, 1.0], "y": [0.0, 1.0]})

    def only_origin(xs, ys):
        return ["origin" if (x, y) == (0.0, 0.0) else None for x, y in zip(xs, ys)]

    clipped = clip_to_region(surface, only_origin)
    assert len(clipped) == 1
    assert clipped.loc[0, "region"] == "origin"
