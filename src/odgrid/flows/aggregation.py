"""Cell-based origin-destination flow aggregation.

This module turns trip records into the compact flow graph that the render
layer draws. A single pass over the (time-filtered) records accumulates:

1. **flows**: cross-cell totals keyed by :class:`FlowPairKey`. In directed
   mode the key is ``(origin cell, destination cell)``; in undirected mode
   the pair is order-normalized so that ``A -> B`` and ``B -> A`` merge.
2. **self_flows**: totals of trips whose origin and destination fall in the
   same cell. They are drawn as bubbles, never as curves.
3. **cell_stats**: outbound / inbound sums per cell over every trip,
   self-trips included. A self-trip therefore adds its weight to both the
   outbound and the inbound total of its cell.
4. **stop_points**: endpoint locations deduplicated at 6-decimal precision,
   tagged with the roles (origin, destination, or both) they were seen in.

The grid itself comes from a :class:`~odgrid.grid.GridIndexer` built from the
*unfiltered* dataset so cell addresses stay stable when the time band changes.

Example
-------
>>> indexer = GridIndexer.from_trips(dataset.records)
>>> result = aggregate_flows(dataset.records, indexer, TimeBand(7, 9), undirected=True)
>>> flows_to_dataframe(result).head()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

import pandas as pd

from odgrid.grid.domain_types import CellRef, FlowPairKey
from odgrid.grid.grid_indexer import GridIndexer
from odgrid.trips.time_band import TimeBand, passes_time_band
from odgrid.trips.trip_records import Coordinate, TripRecord

logger = logging.getLogger(__name__)

ROLE_ORIGIN = 1
ROLE_DESTINATION = 2
STOP_PRECISION = 6


@dataclass
class AggregatedFlow:
    """
    Summed weight between two distinct cells.

    Endpoint cells are read from ``key``. In undirected mode the key is
    normalized, so ``origin_cell`` is the cell with the smaller key and not
    necessarily the origin of any contributing trip.
    """

    key: FlowPairKey
    weight: float = 0.0

    @property
    def origin_cell(self) -> CellRef:
        return self.key.origin

    @property
    def destination_cell(self) -> CellRef:
        return self.key.destination


@dataclass
class SelfFlow:
    """Summed weight of trips that start and end in the same cell."""

    cell: CellRef
    weight: float = 0.0


@dataclass
class CellStats:
    """Per-cell weight sums; self-trips count toward both directions."""

    cell: CellRef
    outbound: float = 0.0
    inbound: float = 0.0

    @property
    def total(self) -> float:
        return self.outbound + self.inbound


@dataclass
class StopPoint:
    """Deduplicated trip endpoint with its observed role bitmask."""

    lon: float
    lat: float
    cell: CellRef
    role_mask: int = 0

    @property
    def role(self) -> str:
        if self.role_mask == ROLE_ORIGIN | ROLE_DESTINATION:
            return "OD"
        if self.role_mask == ROLE_ORIGIN:
            return "O"
        return "D"


@dataclass
class AggregationStats:
    """Counters reported after every aggregation pass."""

    records_seen: int = 0
    records_out_of_band: int = 0
    records_invalid_weight: int = 0
    records_aggregated: int = 0
    weight_total: float = 0.0


@dataclass
class AggregatedFlows:
    """Result of one aggregation pass."""

    flows: Dict[FlowPairKey, AggregatedFlow] = field(default_factory=dict)
    self_flows: Dict[CellRef, SelfFlow] = field(default_factory=dict)
    cell_stats: Dict[CellRef, CellStats] = field(default_factory=dict)
    stop_points: Dict[Coordinate, StopPoint] = field(default_factory=dict)
    stats: AggregationStats = field(default_factory=AggregationStats)
    undirected: bool = False
    time_band: Optional[TimeBand] = None

    def total_flow_weight(self) -> float:
        """Cross-cell plus self-flow weight; equals the valid input weight."""
        cross = sum(flow.weight for flow in self.flows.values())
        return cross + sum(flow.weight for flow in self.self_flows.values())


class FlowAggregator:
    """Accumulates trip records into an :class:`AggregatedFlows` result."""

    def __init__(
        self,
        indexer: GridIndexer,
        *,
        time_band: Optional[TimeBand] = None,
        undirected: bool = False,
    ) -> None:
        self.indexer = indexer
        self.result = AggregatedFlows(undirected=bool(undirected), time_band=time_band)

    def add(self, record: TripRecord) -> bool:
        """Accumulate one record; returns ``False`` when it was filtered out."""
        stats = self.result.stats
        stats.records_seen += 1
        if not passes_time_band(record, self.result.time_band):
            stats.records_out_of_band += 1
            return False
        if not record.has_valid_weight:
            stats.records_invalid_weight += 1
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Ignoring trip with invalid weight %r", record.weight)
            return False

        weight = float(record.weight)
        origin_cell = self.indexer.cell_of(*record.origin)
        dest_cell = self.indexer.cell_of(*record.destination)

        self._cell(origin_cell).outbound += weight
        self._cell(dest_cell).inbound += weight

        if origin_cell == dest_cell:
            self_flow = self.result.self_flows.get(origin_cell)
            if self_flow is None:
                self_flow = self.result.self_flows[origin_cell] = SelfFlow(cell=origin_cell)
            self_flow.weight += weight
        else:
            key = FlowPairKey.for_trip(origin_cell, dest_cell, undirected=self.result.undirected)
            flow = self.result.flows.get(key)
            if flow is None:
                flow = self.result.flows[key] = AggregatedFlow(key=key)
            flow.weight += weight

        self._stop(record.origin, origin_cell, ROLE_ORIGIN)
        self._stop(record.destination, dest_cell, ROLE_DESTINATION)

        stats.records_aggregated += 1
        stats.weight_total += weight
        return True

    def add_all(self, records: Iterable[TripRecord]) -> "FlowAggregator":
        for record in records:
            self.add(record)
        return self

    def finish(self) -> AggregatedFlows:
        stats = self.result.stats
        if stats.records_invalid_weight:
            logger.warning(
                "Ignored %d trips with non-positive or non-finite weight",
                stats.records_invalid_weight,
            )
        logger.info(
            "Aggregated %d of %d trips (%d outside band) into %d flows, %d self-flows, %d cells",
            stats.records_aggregated,
            stats.records_seen,
            stats.records_out_of_band,
            len(self.result.flows),
            len(self.result.self_flows),
            len(self.result.cell_stats),
        )
        return self.result

    # ----------------------------------------------------------------- helpers
    def _cell(self, cell: CellRef) -> CellStats:
        stats = self.result.cell_stats.get(cell)
        if stats is None:
            stats = self.result.cell_stats[cell] = CellStats(cell=cell)
        return stats

    def _stop(self, coord: Coordinate, cell: CellRef, role: int) -> None:
        key = (round(coord[0], STOP_PRECISION), round(coord[1], STOP_PRECISION))
        stop = self.result.stop_points.get(key)
        if stop is None:
            stop = self.result.stop_points[key] = StopPoint(lon=coord[0], lat=coord[1], cell=cell)
        stop.role_mask |= role


def aggregate_flows(
    records: Iterable[TripRecord],
    indexer: GridIndexer,
    time_band: Optional[TimeBand] = None,
    undirected: bool = False,
) -> AggregatedFlows:
    """Run a full aggregation pass over ``records``."""
    return FlowAggregator(indexer, time_band=time_band, undirected=undirected).add_all(records).finish()


# ---------------------------------------------------------------- DataFrames
def flows_to_dataframe(result: AggregatedFlows) -> pd.DataFrame:
    """Tidy table of cross-cell flows sorted by descending weight then key."""
    columns = ["pid", "o_row", "o_col", "d_row", "d_col", "weight"]
    if not result.flows:
        return pd.DataFrame(columns=columns)
    rows = [
        {
            "pid": flow.key.pid,
            "o_row": flow.origin_cell.row,
            "o_col": flow.origin_cell.col,
            "d_row": flow.destination_cell.row,
            "d_col": flow.destination_cell.col,
            "weight": flow.weight,
        }
        for flow in result.flows.values()
    ]
    df = pd.DataFrame(rows, columns=columns)
    return df.sort_values(["weight", "pid"], ascending=[False, True], kind="mergesort").reset_index(drop=True)


def self_flows_to_dataframe(result: AggregatedFlows) -> pd.DataFrame:
    columns = ["cid", "row", "col", "weight"]
    rows = [
        {"cid": cell.key, "row": cell.row, "col": cell.col, "weight": flow.weight}
        for cell, flow in sorted(result.self_flows.items())
    ]
    return pd.DataFrame(rows, columns=columns)


def cell_stats_to_dataframe(result: AggregatedFlows) -> pd.DataFrame:
    columns = ["cid", "row", "col", "outbound", "inbound", "total"]
    rows = [
        {
            "cid": cell.key,
            "row": cell.row,
            "col": cell.col,
            "outbound": stats.outbound,
            "inbound": stats.inbound,
            "total": stats.total,
        }
        for cell, stats in sorted(result.cell_stats.items())
    ]
    return pd.DataFrame(rows, columns=columns)


__all__ = [
    "AggregatedFlow",
    "AggregatedFlows",
    "AggregationStats",
    "CellStats",
    "FlowAggregator",
    "ROLE_DESTINATION",
    "ROLE_ORIGIN",
    "SelfFlow",
    "StopPoint",
    "aggregate_flows",
    "cell_stats_to_dataframe",
    "flows_to_dataframe",
    "self_flows_to_dataframe",
]
