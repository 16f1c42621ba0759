"""Grid package exports."""

from .domain_types import CellRef, FlowPairKey, GridEnvelope
from .grid_indexer import GridIndexer, cell_size_degrees, envelope_from_points

__all__ = [
    "CellRef",
    "FlowPairKey",
    "GridEnvelope",
    "GridIndexer",
    "cell_size_degrees",
    "envelope_from_points",
]
