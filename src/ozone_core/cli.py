"""CLI wrapper for the ozone surface pipeline.

This module provides a command-line interface for running the pipeline.
All core logic is in ozone_core.pipeline; this module only handles files.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ozone_core.forecasting.models import MODEL_FAMILIES, get_model
from ozone_core.forecasting.selection import ModelSelectionConfig
from ozone_core.pipeline import PipelineConfig, run_ozone_pipeline
from ozone_core.readings import load_readings
from ozone_core.report import format_report
from ozone_core.spatial.clip import PolygonLocator
from ozone_core.spatial.grid import DEFAULT_STEP, GridConfig
from ozone_core.spatial.kriging import KrigingConfig


def read_station_ids(path: str | Path) -> List[str]:
    """Read one station id per line, ignoring blanks and ``#`` comments."""
    ids = []
    for line in Path(path).read_text().splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            ids.append(line)
    return ids


def load_boundary(path: str | Path, name_key: str = "name") -> PolygonLocator:
    with open(path) as f:
        return PolygonLocator.from_geojson(json.load(f), name_key=name_key)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ozone-surface",
        description="Forecast next-month ozone per station and krige a surface.",
    )
    parser.add_argument(
        "--readings",
        nargs="+",
        required=True,
        help="CSV file(s) with station_id, date, ozone_value, longitude, latitude",
    )
    parser.add_argument(
        "--stations",
        type=str,
        help="Text file with one whitelisted station id per line (default: all stations)",
    )
    parser.add_argument(
        "--boundary",
        type=str,
        help="GeoJSON file with region polygons used to clip the surface",
    )
    parser.add_argument(
        "--boundary-name-key",
        type=str,
        default="name",
        help="GeoJSON feature property holding the region name (default: name)",
    )
    parser.add_argument(
        "--reference-station",
        type=str,
        help="Station used for model selection (default: longest series)",
    )
    parser.add_argument(
        "--end-period",
        type=str,
        help="Last month of every series, e.g. 2023-12 (default: latest month in data)",
    )
    parser.add_argument(
        "--horizon",
        type=int,
        default=1,
        help="Months ahead to forecast (default: 1)",
    )
    parser.add_argument(
        "--selection-horizon",
        type=int,
        help="Cross-validation horizon for model selection (default: same as --horizon)",
    )
    parser.add_argument(
        "--models",
        nargs="+",
        choices=sorted(MODEL_FAMILIES),
        help="Candidate model families (default: all)",
    )
    parser.add_argument(
        "--grid-step",
        type=float,
        default=DEFAULT_STEP,
        help=f"Prediction grid spacing in coordinate units (default: {DEFAULT_STEP})",
    )
    parser.add_argument(
        "--padding",
        type=float,
        default=0.0,
        help="Margin around the grid bounding box (default: 0)",
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Write the predicted surface to this CSV file",
    )
    parser.add_argument(
        "--forecasts-output",
        type=str,
        help="Write the per-station forecasts to this CSV file",
    )
    parser.add_argument(
        "--jobs",
        "-j",
        type=int,
        default=1,
        help="Worker threads; 0 or negative counts from the CPU count (default: 1)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main CLI entry point.

    Parses command-line arguments, loads readings and the optional boundary,
    runs the pipeline, prints the report and writes the requested CSV files.
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("=" * 60)
    print("Ozone Surface Pipeline")
    print("=" * 60)

    try:
        print("\n[1/3] Loading inputs...")
        readings = load_readings(args.readings)
        print(f"[OK] Loaded {len(readings)} readings from {len(args.readings)} file(s)")
        stations = read_station_ids(args.stations) if args.stations else None
        if stations is not None:
            print(f"  Station whitelist: {len(stations)} ids")
        locator = load_boundary(args.boundary, args.boundary_name_key) if args.boundary else None
        if locator is not None:
            print(f"  Boundary regions: {len(locator.regions)}")

        candidates = [get_model(name) for name in args.models] if args.models else None
        config = PipelineConfig(
            stations=stations,
            reference_station=args.reference_station,
            end_period=args.end_period,
            forecast_horizon=args.horizon,
            selection_horizon=args.selection_horizon,
            selection=ModelSelectionConfig(candidates=candidates, max_workers=args.jobs),
            kriging=KrigingConfig(max_workers=args.jobs),
            grid=GridConfig(step=args.grid_step, padding=args.padding),
            locator=locator,
            max_workers=args.jobs,
        )

        print("\n[2/3] Running forecasts and kriging...")
        result = run_ozone_pipeline(readings, config)
        print(
            f"[OK] {result.metadata['successful_forecasts']} station forecasts, "
            f"{len(result.surface)} surface points"
        )

        print("\n[3/3] Writing results...")
        print()
        print(format_report(result))
        if args.output:
            result.surface.to_csv(args.output, index=False)
            print(f"[OK] Surface written to {args.output}")
        if args.forecasts_output:
            result.forecasts.to_csv(args.forecasts_output, index=False)
            print(f"[OK] Forecasts written to {args.forecasts_output}")

        print("\n[OK] Pipeline completed successfully")

    except Exception as e:
        print(f"\n[ERROR] Pipeline failed: {e}")
        raise


if __name__ == "__main__":
    main()
