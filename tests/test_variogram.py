"""Tests for empirical variograms and Matérn fitting."""

import warnings

import numpy as np
import pandas as pd
import pytest

from ozone_core.exceptions import DataQualityError, VariogramFitWarning
from ozone_core.spatial.variogram import (
    VariogramModel,
    empirical_variogram,
    estimate_variogram,
    fit_variogram,
    matern_semivariance,
    pykrige_matern,
)


def _synthetic_empirical(nugget, psill, range_, kappa, n_pairs=50) -> pd.DataFrame:
    lags = np.linspace(0.1, 3.0, 15)
    return pd.DataFrame(
        {
            "lag": lags,
            "semivariance": matern_semivariance(lags, nugget, psill, range_, kappa),
            "n_pairs": n_pairs,
        }
    )


def test_matern_half_is_exponential() -> None:
    """kappa = 0.5 reduces to nugget + psill * (1 - exp(-h / range))."""
    h = np.array([0.1, 0.5, 1.0, 2.0, 5.0])
    expected = 0.1 + 0.9 * (1 - np.exp(-h / 0.7))
    assert np.allclose(matern_semivariance(h, 0.1, 0.9, 0.7, 0.5), expected)


def test_matern_shape() -> None:
    """Zero at the origin, non-decreasing, approaching the sill."""
    h = np.linspace(0.0, 20.0, 200)
    for kappa in (0.5, 1.5, 2.5):
        gamma = matern_semivariance(h, 0.2, 1.0, 1.0, kappa)
        assert gamma[0] == 0.0
        assert np.all(np.diff(gamma[1:]) >= -1e-12)
        assert gamma[-1] == pytest.approx(1.2, rel=1e-3)


def test_pykrige_matern_signature() -> None:
    h = np.array([0.5, 1.0])
    assert np.allclose(pykrige_matern([0.1, 0.9, 0.7, 0.5], h), matern_semivariance(h, 0.1, 0.9, 0.7, 0.5))


def test_empirical_variogram_on_a_line() -> None:
    """Ten points on a line with z = x give gamma(d) = d^2 / 2."""
    x = np.arange(10.0)
    y = np.zeros(10)
    table = empirical_variogram(x, y, x, n_lags=9, cutoff=9.0)

    assert list(table.columns) == ["lag", "semivariance", "n_pairs"]
    assert table["n_pairs"].sum() == 45
    first = table.iloc[0]
    assert first["lag"] == pytest.approx(1.0)
    assert first["semivariance"] == pytest.approx(0.5)
    assert first["n_pairs"] == 9
    assert table["lag"].is_monotonic_increasing


def test_empirical_variogram_cutoff_fallback() -> None:
    """When no pair is within the default cutoff, the maximum distance is used."""
    x = np.array([0.0, 1.0, 0.5])
    y = np.array([0.0, 0.0, np.sqrt(3) / 2])
    table = empirical_variogram(x, y, np.array([1.0, 2.0, 3.0]))

    assert table["n_pairs"].sum() == 3


def test_fit_variogram_recovers_parameters() -> None:
    empirical = _synthetic_empirical(0.1, 1.0, 0.8, 0.5)
    fitted = fit_variogram(empirical, sill_guess=1.0, range_guess=1.0)

    assert fitted.converged
    assert fitted.nugget == pytest.approx(0.1, abs=1e-3)
    assert fitted.psill == pytest.approx(1.0, rel=1e-2)
    assert fitted.range == pytest.approx(0.8, rel=1e-2)
    assert fitted.sill == pytest.approx(fitted.nugget + fitted.psill)
    assert fitted.is_monotone()


def test_fit_variogram_kappa_search() -> None:
    """With fit_kappa the grid value that generated the data wins."""
    empirical = _synthetic_empirical(0.0, 1.0, 0.5, 1.5)
    fitted = fit_variogram(empirical, sill_guess=1.0, range_guess=1.0, fit_kappa=True)

    assert fitted.kappa == 1.5
    assert fitted.sse < 1e-4


def test_fit_variogram_too_few_bins_warns() -> None:
    """Fewer than three bins fall back to heuristic parameters with a warning."""
    empirical = _synthetic_empirical(0.0, 1.0, 0.5, 0.5).iloc[:2]

    with pytest.warns(VariogramFitWarning):
        fitted = fit_variogram(empirical, sill_guess=0.3, range_guess=0.4)

    assert not fitted.converged
    assert fitted.nugget == 0.0
    assert fitted.psill == 0.3
    assert fitted.range == 0.4


def test_estimate_variogram_end_to_end() -> None:
    """A smooth random field yields a positive-sill model."""
    rng = np.random.default_rng(4)
    x = rng.uniform(0, 10, 60)
    y = rng.uniform(0, 10, 60)
    z = np.sin(x / 3) + np.cos(y / 3) + rng.normal(0, 0.05, 60)

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", VariogramFitWarning)
        model = estimate_variogram(x, y, z, n_lags=10)

    assert isinstance(model, VariogramModel)
    assert model.sill > 0
    assert model.range > 0
    assert model.empirical is not None
    assert len(model.pykrige_parameters()) == 4
    assert set(model.as_dict()) == {"nugget", "psill", "range", "kappa", "sse", "converged"}


def test_estimate_variogram_needs_two_points() -> None:
    with pytest.raises(DataQualityError):
        estimate_variogram(np.array([0.0]), np.array([0.0]), np.array([1.0]))
