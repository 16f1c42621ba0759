"""CLI that aggregates a trip dataset into OD grid layers and writes them to disk."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, Sequence

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from odgrid.flows.aggregation import (
    cell_stats_to_dataframe,
    flows_to_dataframe,
    self_flows_to_dataframe,
)
from odgrid.grid.domain_types import CellRef, FlowPairKey
from odgrid.service.config import OdGridConfig
from odgrid.service.od_grid_service import OdGridEngine
from odgrid.service.render_adapter import GeoJsonDirectoryAdapter
from odgrid.trips.trip_records import TripRecord
from odgrid.trips.trip_store import DEFAULT_TIMEOUT_SECONDS, RawTripStore, TripLoadError

logger = logging.getLogger(__name__)

FLOWS_CSV = "flows.csv"
SELF_FLOWS_CSV = "self_flows.csv"
CELLS_CSV = "cells.csv"
GRID_JSON = "grid.json"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--source",
        required=False,
        default=None,
        help="Trip dataset: GeoJSON/CSV path or http(s) URL. Overrides the config file.",
    )
    parser.add_argument(
        "--config",
        required=False,
        default=None,
        help="Optional YAML file with OD grid settings.",
    )
    parser.add_argument("--output-dir",
    required=False,
    default="output/odgrid",
    help="Directory receiving GeoJSON layers, filters.json, grid.json and CSV tables.")
    parser.add_argument(
        "--time-band",
        default=None,
        help="Hour band such as 7-9; use an empty string to disable the band from the config file.",
    )
    parser.add_argument("--base-cell-size", type=float, default=None, help="Cell size in meters.")
    parser.add_argument("--min-weight", type=float, default=None, help="Minimum flow weight to draw.")
    parser.add_argument(
        "--focus-direction",
        default=None,
        choices=["all", "out", "in"],
        help="Which flows of a focused cell stay visible.",
    )
    parser.add_argument("--undirected", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--show-all-cells", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--show-stops", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--curve-steps", type=int, default=None)
    parser.add_argument(
        "--focus-cell",
        default=None,
        help="Cell to focus, written as col:row.",
    )
    parser.add_argument(
        "--isolate-pair",
        default=None,
        help="Flow pair id to isolate, written as col:row>col:row.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help="HTTP timeout in seconds for URL sources.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> OdGridConfig:
    config = OdGridConfig.from_yaml(args.config) if args.config else OdGridConfig()
    return config.with_overrides(
        source=args.source,
        time_band=args.time_band,
        base_cell_size_meters=args.base_cell_size,
        min_weight_threshold=args.min_weight,
        focus_direction=args.focus_direction,
        undirected=args.undirected,
        show_all_cells=args.show_all_cells,
        show_stops=args.show_stops,
        curve_steps=args.curve_steps,
    )


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    try:
        config = build_config(args)
    except (FileNotFoundError, TypeError, ValueError) as exc:
        raise SystemExit(str(exc)) from exc
    if not config.source:
        raise SystemExit("No trip source given; pass --source or set 'source' in --config")

    adapter = GeoJsonDirectoryAdapter()
    engine = OdGridEngine(RawTripStore(timeout=args.timeout), adapter, config)
    try:
        _activate_with_progress(engine)
    except TripLoadError as exc:
        raise SystemExit(str(exc)) from exc

    try:
        if args.focus_cell:
            engine.focus_cell(CellRef.parse(args.focus_cell))
        if args.isolate_pair:
            engine.isolate_pair(FlowPairKey.parse(args.isolate_pair))
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    output_dir = Path(args.output_dir)
    adapter.write(output_dir)
    _write_tables(output_dir, engine)
    logger.info(
        "Wrote %d flows and %d self-flows for %s to %s",
        len(engine.result.flows),
        len(engine.result.self_flows),
        config.source,
        output_dir,
    )


def _write_tables(output_dir: Path, engine: OdGridEngine) -> None:
    output_dir.mkdir(parents=True, exist_ok=True)
    result = engine.result
    flows_to_dataframe(result).to_csv(output_dir / FLOWS_CSV, index=False)
    self_flows_to_dataframe(result).to_csv(output_dir / SELF_FLOWS_CSV, index=False)
    cell_stats_to_dataframe(result).to_csv(output_dir / CELLS_CSV, index=False)
    engine.indexer.save(str(output_dir / GRID_JSON))


def _activate_with_progress(engine: OdGridEngine) -> None:
    """Run the first aggregation pass while displaying a progress bar for the trips."""

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        transient=True,
    )

    with progress:
        task_id = progress.add_task("Aggregating trips", total=None)

        def iter_with_progress(records: Sequence[TripRecord]) -> Iterable[TripRecord]:
            progress.update(task_id, total=len(records))
            for record in records:
                yield record
                progress.advance(task_id)

        engine.record_wrapper = iter_with_progress
        try:
            engine.activate()
        finally:
            engine.record_wrapper = None


if __name__ == "__main__":
    main()
