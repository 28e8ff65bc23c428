"""Spatial interpolation of station forecasts.

Example:
    >>> from ozone_core.spatial import KrigingConfig, compare_kriging_variants
    >>>
    >>> comparison = compare_kriging_variants(observations, KrigingConfig())
    >>> print(comparison.press)
"""

from ozone_core.spatial.clip import PolygonLocator, clip_to_region
from ozone_core.spatial.grid import GridConfig, bounding_box, make_grid
from ozone_core.spatial.kriging import (
    KrigingConfig,
    KrigingStageResult,
    LeaveOneOutResult,
    VariantComparison,
    compare_kriging_variants,
    krige,
    kriging_stage,
    leave_one_out,
    merge_colocated,
    predict_surface,
    rank_variants,
)
from ozone_core.spatial.variogram import (
    VariogramModel,
    empirical_variogram,
    estimate_variogram,
    fit_variogram,
    matern_semivariance,
)

__all__ = [
    "GridConfig",
    "KrigingConfig",
    "KrigingStageResult",
    "LeaveOneOutResult",
    "PolygonLocator",
    "VariantComparison",
    "VariogramModel",
    "bounding_box",
    "clip_to_region",
    "compare_kriging_variants",
    "empirical_variogram",
    "estimate_variogram",
    "fit_variogram",
    "krige",
    "kriging_stage",
    "leave_one_out",
    "make_grid",
    "matern_semivariance",
    "merge_colocated",
    "predict_surface",
    "rank_variants",
]
