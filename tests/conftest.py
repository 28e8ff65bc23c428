"""Shared synthetic data for the test suite."""

from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
import pytest


def station_layout(n_stations: int, seed: int = 0) -> Dict[str, Tuple[float, float]]:
    """Jittered 5-column grid of stations around (-120, 35)."""
    rng = np.random.default_rng(seed)
    layout = {}
    for i in range(n_stations):
        lon = -120.0 + (i % 5) * 0.25 + rng.uniform(-0.05, 0.05)
        lat = 35.0 + (i // 5) * 0.25 + rng.uniform(-0.05, 0.05)
        layout[f"S{i + 1:02d}"] = (lon, lat)
    return layout


@pytest.fixture
def make_readings():
    """Factory for readings tables with two readings per station-month.

    Values follow an annual cycle plus a gentle west-east gradient and small
    noise, so they are always positive.
    """

    def factory(
        n_stations: int = 10,
        months: int = 30,
        start: str = "2018-01-01",
        seed: int = 0,
        stations: Optional[Dict[str, Tuple[float, float]]] = None,
    ) -> pd.DataFrame:
        rng = np.random.default_rng(seed)
        layout = stations if stations is not None else station_layout(n_stations, seed)
        rows = []
        for station_id, (lon, lat) in layout.items():
            for m, month in enumerate(pd.date_range(start, periods=months, freq="MS")):
                level = 0.05 + 0.01 * np.sin(2 * np.pi * m / 12) + 0.004 * (lon + 120.0)
                for day in (4, 19):
                    rows.append(
                        {
                            "station_id": station_id,
                            "date": month + pd.Timedelta(days=day),
                            "ozone_value": level + rng.normal(0.0, 0.002),
                            "longitude": lon,
                            "latitude": lat,
                        }
                    )
        return pd.DataFrame(rows)

    return factory
