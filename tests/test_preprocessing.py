"""Tests for monthly series construction."""

import pandas as pd
import pytest

from ozone_core.exceptions import DataGapError
from ozone_core.forecasting.preprocessing import (
    build_all_monthly_series,
    build_monthly_series,
    resolve_end_period,
    to_month_start,
)


def _readings(rows):
    return pd.DataFrame(rows, columns=["station_id", "date", "ozone_value"]).assign(
        date=lambda df: pd.to_datetime(df["date"])
    )


SAMPLE = [
    ("A", "2020-01-03", 0.03),
    ("A", "2020-01-17", 0.05),
    ("A", "2020-02-10", 0.04),
    ("A", "2020-03-02", 0.06),
    ("A", "2020-03-28", 0.02),
    ("B", "2020-01-10", 0.07),
    ("B", "2020-03-10", 0.08),
]


def test_monthly_max_per_month() -> None:
    """Each month keeps the maximum of its readings, in ascending order."""
    series = build_monthly_series(_readings(SAMPLE), "A")

    assert series.tolist() == [0.05, 0.04, 0.06]
    assert list(series.index) == list(pd.date_range("2020-01-01", periods=3, freq="MS"))
    assert series.index.freqstr == "MS"
    assert series.index.is_monotonic_increasing
    assert series.index.is_unique
    assert series.name == "A"


def test_row_order_does_not_matter() -> None:
    """Shuffled input produces the identical series."""
    readings = _readings(SAMPLE)
    shuffled = readings.sample(frac=1.0, random_state=3)

    pd.testing.assert_series_equal(
        build_monthly_series(readings, "A"),
        build_monthly_series(shuffled, "A"),
    )


def test_internal_gap_raises() -> None:
    """A missing month inside the span is reported."""
    with pytest.raises(DataGapError) as excinfo:
        build_monthly_series(_readings(SAMPLE), "B")

    assert excinfo.value.station_id == "B"
    assert excinfo.value.missing == ["2020-02"]


def test_trailing_gap_to_end_period_raises() -> None:
    """Months between the last reading and the end period count as gaps."""
    with pytest.raises(DataGapError) as excinfo:
        build_monthly_series(_readings(SAMPLE), "A", end_period="2020-05")

    assert excinfo.value.missing == ["2020-04", "2020-05"]


def test_truncates_after_end_period() -> None:
    series = build_monthly_series(_readings(SAMPLE), "A", end_period="2020-02-15")
    assert series.tolist() == [0.05, 0.04]


def test_station_without_readings_before_end() -> None:
    with pytest.raises(DataGapError):
        build_monthly_series(_readings(SAMPLE), "A", end_period="2019-06")
    with pytest.raises(DataGapError):
        build_monthly_series(_readings(SAMPLE), "Z")


def test_resolve_end_period_and_month_start() -> None:
    assert resolve_end_period(_readings(SAMPLE)) == pd.Timestamp("2020-03-01")
    assert to_month_start("2021-07-19") == pd.Timestamp("2021-07-01")


def test_build_all_monthly_series_keeps_failures() -> None:
    """Stations with gaps map to their DataGapError instead of aborting."""
    result = build_all_monthly_series(_readings(SAMPLE), end_period="2020-03")

    assert sorted(result) == ["A", "B"]
    assert isinstance(result["A"], pd.Series)
    assert isinstance(result["B"], DataGapError)
