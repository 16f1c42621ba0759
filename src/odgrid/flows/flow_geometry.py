"""Convert an aggregation result into GeoJSON sources for the render layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from shapely.geometry import LineString, Point, mapping

from odgrid.grid.grid_indexer import GridIndexer

from .aggregation import AggregatedFlows
from .curves import DEFAULT_STEPS, curved_coords

SOURCE_LINES = "od-grid-lines"
SOURCE_BUBBLES = "od-grid-bubbles"
SOURCE_STOPS = "od-grid-stops"
SOURCE_CELLS = "od-grid-cells"
SOURCE_CELLS_ALL = "od-grid-cells-all"
SOURCE_GRID = "od-grid-overlay"

FeatureCollection = Dict[str, object]


def _feature(geometry, properties: Dict[str, object]) -> Dict[str, object]:
    return {"type": "Feature", "properties": properties, "geometry": mapping(geometry)}


def _collection(features: List[Dict[str, object]]) -> FeatureCollection:
    return {"type": "FeatureCollection", "features": features}


@dataclass
class FlowGraphGeometry:
    """Renderable sources produced from one aggregation pass."""

    lines: FeatureCollection
    bubbles: FeatureCollection
    stops: FeatureCollection
    cells: FeatureCollection
    cells_all: Optional[FeatureCollection] = None
    grid: Optional[FeatureCollection] = None
    meta: Dict[str, object] = field(default_factory=dict)

    def sources(self) -> Dict[str, FeatureCollection]:
        """Source id -> FeatureCollection, omitting the optional dense grid."""
        out: Dict[str, FeatureCollection] = {
            SOURCE_LINES: self.lines,
            SOURCE_BUBBLES: self.bubbles,
            SOURCE_STOPS: self.stops,
            SOURCE_CELLS: self.cells,
        }
        if self.cells_all is not None:
            out[SOURCE_CELLS_ALL] = self.cells_all
        if self.grid is not None:
            out[SOURCE_GRID] = self.grid
        return out


def build_flow_geometry(
    result: AggregatedFlows,
    indexer: GridIndexer,
    *,
    show_all_cells: bool = False,
    curve_steps: int = DEFAULT_STEPS,
) -> FlowGraphGeometry:
    lines = []
    for key, flow in result.flows.items():
        start = indexer.centroid_of(key.origin)
        end = indexer.centroid_of(key.destination)
        geometry = LineString(curved_coords(start, end, key.pid, curve_steps))
        lines.append(
            _feature(
                geometry,
                {
                    "pid": key.pid,
                    "weight": flow.weight,
                    "o_row": key.origin.row,
                    "o_col": key.origin.col,
                    "d_row": key.destination.row,
                    "d_col": key.destination.col,
                },
            )
        )

    bubbles = [
        _feature(
            Point(indexer.centroid_of(cell)),
            {"cid": cell.key, "weight": flow.weight, "row": cell.row, "col": cell.col},
        )
        for cell, flow in result.self_flows.items()
    ]

    stops = [
        _feature(
            Point(stop.lon, stop.lat),
            {"role": stop.role, "row": stop.cell.row, "col": stop.cell.col},
        )
        for stop in result.stop_points.values()
    ]

    cells = [
        _feature(indexer.cell_polygon(cell), _cell_properties(result, cell))
        for cell in result.cell_stats
    ]

    cells_all = None
    grid = None
    if show_all_cells:
        cells_all = _collection(
            [
                _feature(indexer.cell_polygon(cell), _cell_properties(result, cell))
                for cell in indexer.iter_cells()
            ]
        )
        grid = _collection(
            [_feature(line, {"major": major}) for line, major in indexer.grid_lines()]
        )

    env = indexer.envelope
    meta = {
        "min_lon": env.min_lon,
        "min_lat": env.min_lat,
        "max_lon": env.max_lon,
        "max_lat": env.max_lat,
        "d_lon": indexer.d_lon,
        "d_lat": indexer.d_lat,
        "num_rows": indexer.num_rows,
        "num_cols": indexer.num_cols,
    }
    return FlowGraphGeometry(
        lines=_collection(lines),
        bubbles=_collection(bubbles),
        stops=_collection(stops),
        cells=_collection(cells),
        cells_all=cells_all,
        grid=grid,
        meta=meta,
    )


def _cell_properties(result: AggregatedFlows, cell) -> Dict[str, object]:
    stats = result.cell_stats.get(cell)
    outbound = stats.outbound if stats is not None else 0.0
    inbound = stats.inbound if stats is not None else 0.0
    return {
        "cid": cell.key,
        "row": cell.row,
        "col": cell.col,
        "outbound": outbound,
        "inbound": inbound,
        "total": outbound + inbound,
    }


__all__ = [
    "FlowGraphGeometry",
    "SOURCE_BUBBLES",
    "SOURCE_CELLS",
    "SOURCE_CELLS_ALL",
    "SOURCE_GRID",
    "SOURCE_LINES",
    "SOURCE_STOPS",
    "build_flow_geometry",
]
