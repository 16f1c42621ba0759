"""Flow aggregation, curve synthesis and render geometry."""

from .aggregation import (
    AggregatedFlow,
    AggregatedFlows,
    AggregationStats,
    CellStats,
    FlowAggregator,
    SelfFlow,
    StopPoint,
    aggregate_flows,
    cell_stats_to_dataframe,
    flows_to_dataframe,
    self_flows_to_dataframe,
)
from .curves import curved_coords, fnv1a_unit
from .flow_geometry import FlowGraphGeometry, build_flow_geometry

__all__ = [
    "AggregatedFlow",
    "AggregatedFlows",
    "AggregationStats",
    "CellStats",
    "FlowAggregator",
    "FlowGraphGeometry",
    "SelfFlow",
    "StopPoint",
    "aggregate_flows",
    "build_flow_geometry",
    "cell_stats_to_dataframe",
    "curved_coords",
    "flows_to_dataframe",
    "fnv1a_unit",
    "self_flows_to_dataframe",
]
