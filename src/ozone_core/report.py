"""Plain-text run report."""

from __future__ import annotations

import numpy as np
import pandas as pd

from ozone_core.pipeline import OzoneSurfaceResult


def _fmt(value: object, spec: str = ".6g") -> str:
    if value is None or (isinstance(value, float) and not np.isfinite(value)):
        return "n/a"
    return format(value, spec)


def format_model_scores(scores: pd.DataFrame) -> list[str]:
    lines = [f"  {'model':<8} {'CV MSE':>12} {'LB p-value':>11} {'white':>6} {'errors':>7}"]
    for row in scores.itertuples(index=False):
        lines.append(
            f"  {row.model:<8} {_fmt(row.cv_mse):>12} {_fmt(row.ljung_box_pvalue, '.4f'):>11} "
            f"{'yes' if row.residuals_white else 'no':>6} {row.n_errors:>7}"
        )
    return lines


def format_press_table(press: pd.DataFrame) -> list[str]:
    lines = [f"  {'transform':<9} {'method':<10} {'PRESS':>12} {'failed':>7} {'converged':>10}"]
    for row in press.itertuples(index=False):
        lines.append(
            f"  {row.transform:<9} {row.method:<10} {_fmt(row.press):>12} "
            f"{row.n_failed:>4}/{row.n_folds:<2} {'yes' if row.converged else 'no':>10}"
        )
    return lines


def format_report(result: OzoneSurfaceResult) -> str:
    """Build a human-readable summary of a pipeline run.

    Args:
        result: Output of run_ozone_pipeline.

    Returns:
        Multi-line report covering model selection, kriging variants, the
        surface and every skipped station or fold.
    """
    meta = result.metadata
    end_period = meta.get("end_period")
    lines = []
    lines.append("Ozone Surface Report")
    lines.append("=" * 60)
    if end_period is not None:
        lines.append(f"End period: {pd.Timestamp(end_period):%Y-%m}")
    lines.append(f"Reference station: {meta.get('reference_station', 'n/a')}")
    lines.append(
        f"Horizons: forecast={meta.get('forecast_horizon')}, selection={meta.get('selection_horizon')}"
    )
    lines.append("")

    lines.append("Model selection")
    lines.append("-" * 60)
    lines.extend(format_model_scores(result.selection.scores))
    lines.append(f"  Selected: {result.selection.best_name}")
    lines.append("")

    lines.append("Station forecasts")
    lines.append("-" * 60)
    lines.append(f"  Stations: {meta.get('stations', len(result.forecasts))}")
    lines.append(f"  Successful: {meta.get('successful_forecasts', 'n/a')}")
    skipped = meta.get("skipped_by_status") or {}
    for status, count in sorted(skipped.items()):
        lines.append(f"  Skipped ({status}): {count}")
    for station_id, reason in sorted((meta.get("skipped_stations") or {}).items()):
        lines.append(f"    {station_id}: {reason}")
    lines.append("")

    transform, method = result.variant
    vm = result.variogram
    lines.append("Kriging")
    lines.append("-" * 60)
    lines.extend(format_press_table(result.press))
    lines.append(f"  Selected: {method} kriging on {transform} scale")
    lines.append(
        f"  Variogram: nugget={_fmt(vm.nugget, '.4g')}, psill={_fmt(vm.psill, '.4g')}, "
        f"range={_fmt(vm.range, '.4g')}, kappa={_fmt(vm.kappa, 'g')}"
        + ("" if vm.converged else " (heuristic, fit did not converge)")
    )
    for variant, failed in sorted((meta.get("failed_folds") or {}).items()):
        lines.append(f"  Failed LOO folds ({variant}): {failed['count']}")
        for reason, count in failed["reasons"].items():
            lines.append(f"    {count} x {reason}")
    lines.append("")

    lines.append(f"Surface: {len(result.surface)} points, mean {_fmt(meta.get('surface_mean'), '.5g')}")
    lines.append("=" * 60)
    return "\n".join(lines)
