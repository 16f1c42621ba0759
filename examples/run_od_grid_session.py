from __future__ import annotations

import argparse
import json
import logging
import random
from pathlib import Path
from typing import Dict, List, Optional

from odgrid.service.config import OdGridConfig
from odgrid.service.od_grid_service import OdGridEngine
from odgrid.service.render_adapter import InMemoryRenderAdapter, LayerIds, PointerEvent
from odgrid.trips.trip_store import RawTripStore

# Rough station locations around Kashiwa, used to synthesize a small dataset.
SYNTH_STOPS: Dict[str, tuple] = {
    "station": (139.9756, 35.8623),
    "campus": (139.9380, 35.9010),
    "hospital": (139.9602, 35.8811),
    "mall": (139.9901, 35.8712),
    "depot": (139.9523, 35.8505),
}


def _synthetic_payload(num_trips: int, seed: int) -> Dict[str, object]:
    rng = random.Random(seed)
    names = list(SYNTH_STOPS)
    features: List[Dict[str, object]] = []
    for _ in range(num_trips):
        origin, destination = rng.choice(names), rng.choice(names)
        start = rng.randint(5, 21)
        features.append(
            {
                "type": "Feature",
                "properties": {"count": rng.randint(1, 12), "hour_start": start, "hour_end": start + 1},
                "geometry": {
                    "type": "LineString",
                    "coordinates": [list(SYNTH_STOPS[origin]), list(SYNTH_STOPS[destination])],
                },
            }
        )
    return {"type": "FeatureCollection", "features": features}


def _source_path(path: Optional[str], workdir: Path, num_trips: int, seed: int) -> str:
    if path:
        return path
    logging.info("Using %d synthetic trips", num_trips)
    target = workdir / "synthetic_trips.geojson"
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        json.dump(_synthetic_payload(num_trips, seed), handle)
    return str(target)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run an OD grid session smoke test.")
    parser.add_argument("--trips", default=None, help="GeoJSON or CSV trip dataset")
    parser.add_argument("--workdir", default="output/odgrid_example")
    parser.add_argument("--num-trips", type=int, default=200)
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--base-cell-size", type=float, default=500.0)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    source = _source_path(args.trips, Path(args.workdir), args.num_trips, args.seed)

    adapter = InMemoryRenderAdapter()
    engine = OdGridEngine(
        RawTripStore(),
        adapter,
        OdGridConfig(source=source, base_cell_size_meters=args.base_cell_size),
    )
    engine.activate()
    print(f"Lines: {len(adapter.rendered_features(LayerIds.LINES))}")
    print(f"Self-flow bubbles: {len(adapter.rendered_features(LayerIds.BUBBLES))}")

    for band in ("7-9", "17-19"):
        engine.update(time_band=band)
        print(f"Lines in {band}: {len(adapter.rendered_features(LayerIds.LINES))}")

    busiest = max(engine.result.cell_stats.values(), key=lambda stats: stats.total, default=None)
    if busiest is not None:
        cell = busiest.cell
        adapter.emit(PointerEvent("click", LayerIds.CELLS_FILL, {"row": cell.row, "col": cell.col}))
        for direction in ("out", "in"):
            engine.set_focus_direction(direction)
            print(
                f"Cell {cell.key} {direction}: "
                f"{len(adapter.rendered_features(LayerIds.LINES))} lines visible"
            )
    print(f"Aggregation passes: {engine.aggregation_count}")


if __name__ == "__main__":
    main()
