"""Empirical semivariogram estimation and Matérn model fitting.

The empirical semivariogram bins half squared differences of the response
by the Euclidean distance between stations. A Matérn model (nugget, partial
sill, range, shape kappa) is then fitted to the bins by weighted nonlinear
least squares, with weights N_j / h_j^2 so that well-populated short lags
dominate the fit.

If the optimizer fails or there are too few bins, a VariogramFitWarning is
emitted and heuristic parameters are returned instead of aborting.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from scipy.optimize import OptimizeWarning, curve_fit
from scipy.spatial.distance import pdist
from scipy.special import gamma as gamma_fn
from scipy.special import kv

from ozone_core.exceptions import DataQualityError, VariogramFitWarning

logger = logging.getLogger(__name__)

DEFAULT_N_LAGS = 15
DEFAULT_KAPPA = 0.5
KAPPA_GRID = (0.3, 0.5, 1.0, 1.5, 2.0, 2.5, 5.0)
MAX_NFEV = 2000

_TINY = 1e-12


def matern_semivariance(
    h: np.ndarray | float,
    nugget: float,
    psill: float,
    range: float,
    kappa: float = DEFAULT_KAPPA,
) -> np.ndarray:
    """Matérn semivariance at distances ``h``.

    gamma(h) = nugget + psill * (1 - (h/r)^k K_k(h/r) / (2^(k-1) Gamma(k)))
    for h > 0 and gamma(0) = 0. kappa = 0.5 gives the exponential model.
    """
    h = np.asarray(h, dtype=float)
    scaled = np.maximum(h / max(range, _TINY), _TINY)
    with np.errstate(over="ignore", under="ignore", invalid="ignore"):
        corr = scaled**kappa * kv(kappa, scaled) / (2.0 ** (kappa - 1.0) * gamma_fn(kappa))
    # kv overflows near zero distance, where the correlation tends to 1
    corr = np.clip(np.where(np.isfinite(corr), corr, 1.0), 0.0, 1.0)
    return np.where(h > 0, nugget + psill * (1.0 - corr), 0.0)


def pykrige_matern(params: Sequence[float], dist: np.ndarray) -> np.ndarray:
    """Custom variogram function in the (parameters, distances) form pykrige expects."""
    nugget, psill, range_, kappa = params
    return matern_semivariance(dist, nugget, psill, range_, kappa)


@dataclass(frozen=True)
class VariogramModel:
    """Fitted Matérn variogram.

    Attributes:
        nugget: Semivariance discontinuity at the origin.
        psill: Partial sill (sill minus nugget).
        range: Distance scale parameter (same units as the coordinates).
        kappa: Matérn shape parameter.
        sse: Weighted sum of squared residuals of the fit (NaN if not fitted).
        converged: False when heuristic fallback parameters are used.
        empirical: Empirical variogram the model was fitted to.
    """

    nugget: float
    psill: float
    range: float
    kappa: float = DEFAULT_KAPPA
    sse: float = np.nan
    converged: bool = True
    empirical: Optional[pd.DataFrame] = field(default=None, compare=False, repr=False)

    @property
    def sill(self) -> float:
        return self.nugget + self.psill

    def __call__(self, h: np.ndarray | float) -> np.ndarray:
        return matern_semivariance(h, self.nugget, self.psill, self.range, self.kappa)

    def pykrige_parameters(self) -> list:
        return [self.nugget, self.psill, self.range, self.kappa]

    def is_monotone(self, tolerance: float = 0.0) -> bool:
        """Whether empirical semivariance is non-decreasing up to the fitted range.

        This is a fit-quality indicator only; it is reported, not enforced.
        """
        if self.empirical is None or self.empirical.empty:
            return True
        within = self.empirical.loc[self.empirical["lag"] <= self.range, "semivariance"]
        return bool(np.all(np.diff(within.to_numpy(dtype=float)) >= -tolerance))

    def as_dict(self) -> dict:
        return {
            "nugget": self.nugget,
            "psill": self.psill,
            "range": self.range,
            "kappa": self.kappa,
            "sse": self.sse,
            "converged": self.converged,
        }


def default_cutoff(x: np.ndarray, y: np.ndarray) -> float:
    """One third of the bounding-box diagonal of the locations."""
    return float(np.hypot(np.ptp(x), np.ptp(y)) / 3.0)


def empirical_variogram(
    x: np.ndarray,
    y: np.ndarray,
    z: np.ndarray,
    n_lags: int = DEFAULT_N_LAGS,
    cutoff: Optional[float] = None,
) -> pd.DataFrame:
    """Bin pairwise half squared differences of ``z`` by distance.

    Args:
        x, y: Location coordinates.
        z: Response at each location.
        n_lags: Number of equal-width lag bins.
        cutoff: Maximum pair distance considered. Defaults to one third of
            the bounding-box diagonal, or the largest pair distance when no
            pair falls within that.

    Returns:
        DataFrame with columns lag (mean pair distance in the bin),
        semivariance and n_pairs; empty bins are dropped.
    """
    coords = np.column_stack([np.asarray(x, dtype=float), np.asarray(y, dtype=float)])
    z = np.asarray(z, dtype=float)
    columns = ["lag", "semivariance", "n_pairs"]
    if len(z) < 2:
        return pd.DataFrame(columns=columns)

    distances = pdist(coords)
    half_sq = 0.5 * pdist(z[:, None], metric="sqeuclidean")

    if cutoff is None:
        cutoff = default_cutoff(coords[:, 0], coords[:, 1])
    if cutoff <= 0 or not (distances <= cutoff).any():
        cutoff = float(distances.max())
    if cutoff <= 0:
        return pd.DataFrame(columns=columns)

    width = cutoff / n_lags
    inside = distances <= cutoff
    bins = np.minimum((distances[inside] / width).astype(int), n_lags - 1)

    rows = []
    for k in range(n_lags):
        in_bin = bins == k
        count = int(in_bin.sum())
        if count == 0:
            continue
        rows.append(
            {
                "lag": float(distances[inside][in_bin].mean()),
                "semivariance": float(half_sq[inside][in_bin].mean()),
                "n_pairs": count,
            }
        )
    return pd.DataFrame(rows, columns=columns)


def fit_variogram(
    empirical: pd.DataFrame,
    sill_guess: float,
    range_guess: float,
    kappa: float = DEFAULT_KAPPA,
    fit_kappa: bool = False,
    kappa_grid: Sequence[float] = KAPPA_GRID,
    max_nfev: int = MAX_NFEV,
) -> VariogramModel:
    """Fit a Matérn model to an empirical variogram.

    Nugget, partial sill and range are estimated by weighted least squares
    starting from the heuristic guesses. With ``fit_kappa`` every kappa in
    ``kappa_grid`` is tried and the lowest weighted SSE is kept; otherwise
    kappa stays fixed.

    Args:
        empirical: Output of empirical_variogram.
        sill_guess: Initial sill, typically the sample variance.
        range_guess: Initial range, typically a third of the maximum distance.
        kappa: Fixed Matérn shape when ``fit_kappa`` is False.
        fit_kappa: Search kappa over ``kappa_grid``.
        kappa_grid: Candidate kappa values.
        max_nfev: Function evaluation cap for each optimization.

    Returns:
        Fitted VariogramModel, or heuristic parameters with converged=False
        (after a VariogramFitWarning) if no fit succeeded.
    """
    sill_guess = sill_guess if sill_guess > 0 else 1.0
    range_guess = max(range_guess, _TINY)
    fallback = VariogramModel(
        nugget=0.0,
        psill=sill_guess,
        range=range_guess,
        kappa=kappa,
        converged=False,
        empirical=empirical,
    )

    if len(empirical) < 3:
        warnings.warn(
            f"Only {len(empirical)} variogram bin(s); using heuristic parameters",
            VariogramFitWarning,
            stacklevel=2,
        )
        return fallback

    h = empirical["lag"].to_numpy(dtype=float)
    gamma = empirical["semivariance"].to_numpy(dtype=float)
    sigma = np.maximum(h, _TINY) / np.sqrt(empirical["n_pairs"].to_numpy(dtype=float))

    nugget0 = min(float(gamma.min()), 0.5 * sill_guess)
    p0 = [nugget0, max(sill_guess - nugget0, _TINY), range_guess]
    bounds = ([0.0, 0.0, _TINY], [np.inf, np.inf, np.inf])

    best: Optional[VariogramModel] = None
    for k in (kappa_grid if fit_kappa else (kappa,)):

        def model(hh: np.ndarray, nugget: float, psill: float, range_: float, k: float = k) -> np.ndarray:
            return matern_semivariance(hh, nugget, psill, range_, k)

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", OptimizeWarning)
                params, _ = curve_fit(
                    model, h, gamma, p0=p0, sigma=sigma, bounds=bounds, max_nfev=max_nfev
                )
        except (RuntimeError, ValueError) as e:
            logger.debug(f"Matérn fit with kappa={k} failed: {e}")
            continue

        residual = (gamma - model(h, *params)) / sigma
        sse = float(np.sum(residual**2))
        if best is None or sse < best.sse:
            best = VariogramModel(
                nugget=float(params[0]),
                psill=float(params[1]),
                range=float(params[2]),
                kappa=float(k),
                sse=sse,
                converged=True,
                empirical=empirical,
            )

    if best is None:
        warnings.warn(
            "Variogram fit did not converge; using heuristic parameters",
            VariogramFitWarning,
            stacklevel=2,
        )
        return fallback
    return best


def estimate_variogram(
    x: np.ndarray,
    y: np.ndarray,
    z: np.ndarray,
    n_lags: int = DEFAULT_N_LAGS,
    cutoff: Optional[float] = None,
    kappa: float = DEFAULT_KAPPA,
    fit_kappa: bool = False,
    max_nfev: int = MAX_NFEV,
) -> VariogramModel:
    """Compute the empirical variogram of ``z`` and fit a Matérn model to it.

    Initial guesses: sill = sample variance of ``z``, range = one third of
    the largest station separation.

    Raises:
        DataQualityError: If fewer than two locations are given.
    """
    z = np.asarray(z, dtype=float)
    if len(z) < 2:
        raise DataQualityError(f"Variogram estimation needs at least 2 locations, got {len(z)}")

    empirical = empirical_variogram(x, y, z, n_lags=n_lags, cutoff=cutoff)
    max_distance = float(pdist(np.column_stack([x, y])).max())
    fitted = fit_variogram(
        empirical,
        sill_guess=float(np.var(z, ddof=1)),
        range_guess=max_distance / 3.0,
        kappa=kappa,
        fit_kappa=fit_kappa,
        max_nfev=max_nfev,
    )

    if not fitted.is_monotone():
        logger.info("Empirical semivariance decreases before the fitted range")
    logger.info(
        f"Variogram: nugget={fitted.nugget:.4g}, psill={fitted.psill:.4g}, "
        f"range={fitted.range:.4g}, kappa={fitted.kappa:g}, converged={fitted.converged}"
    )
    return fitted
