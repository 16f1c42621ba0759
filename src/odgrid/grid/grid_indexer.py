"""Equirectangular grid indexer mapping WGS84 coordinates to square-ish cells."""

from __future__ import annotations

import json
import logging
import math
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Tuple

from shapely.geometry import LineString, Polygon

from .domain_types import CellRef, GridEnvelope

if TYPE_CHECKING:  # pragma: no cover
    from odgrid.trips.trip_records import TripRecord

logger = logging.getLogger(__name__)

METERS_PER_DEGREE_LAT = 110_574.0
METERS_PER_DEGREE_LON_AT_EQUATOR = 111_320.0
DEFAULT_BASE_CELL_SIZE_METERS = 100.0
DEFAULT_MEAN_LATITUDE = 35.86

Coordinate = Tuple[float, float]


def cell_size_degrees(base_meters: float, mean_lat_deg: float) -> Tuple[float, float]:
    """Return ``(d_lon, d_lat)`` for cells of roughly ``base_meters`` on a side."""
    if not math.isfinite(base_meters) or base_meters <= 0:
        raise ValueError("base_cell_size_meters must be positive.")
    mean_lat_rad = math.radians(mean_lat_deg)
    d_lat = base_meters / METERS_PER_DEGREE_LAT
    d_lon = base_meters / (METERS_PER_DEGREE_LON_AT_EQUATOR * math.cos(mean_lat_rad))
    return d_lon, d_lat


def envelope_from_points(points: Iterable[Coordinate]) -> GridEnvelope:
    """Compute the bounding envelope and mean latitude of ``points``."""
    min_lon = min_lat = math.inf
    max_lon = max_lat = -math.inf
    sum_lat = 0.0
    count = 0
    for lon, lat in points:
        if lon < min_lon:
            min_lon = lon
        if lat < min_lat:
            min_lat = lat
        if lon > max_lon:
            max_lon = lon
        if lat > max_lat:
            max_lat = lat
        sum_lat += lat
        count += 1
    if not count:
        # Degenerate single-cell grid anchored at the default latitude.
        return GridEnvelope(
            min_lon=0.0,
            min_lat=DEFAULT_MEAN_LATITUDE,
            max_lon=0.0,
            max_lat=DEFAULT_MEAN_LATITUDE,
            mean_lat=DEFAULT_MEAN_LATITUDE,
        )
    return GridEnvelope(
        min_lon=min_lon,
        min_lat=min_lat,
        max_lon=max_lon,
        max_lat=max_lat,
        mean_lat=sum_lat / count,
    )


class GridIndexer:
    """Maps coordinates to :class:`CellRef` values and cells back to geometry."""

    def __init__(
        self,
        envelope: GridEnvelope,
        base_cell_size_meters: float = DEFAULT_BASE_CELL_SIZE_METERS,
    ) -> None:
        self.envelope = envelope
        self.base_cell_size_meters = float(base_cell_size_meters)
        self.d_lon, self.d_lat = cell_size_degrees(
            self.base_cell_size_meters, envelope.mean_lat
        )
        self._num_cols = int(math.floor(envelope.lon_span / self.d_lon)) + 1
        self._num_rows = int(math.floor(envelope.lat_span / self.d_lat)) + 1

    # ------------------------------------------------------------------ builders
    @classmethod
    def from_points(
        cls,
        points: Iterable[Coordinate],
        base_cell_size_meters: float = DEFAULT_BASE_CELL_SIZE_METERS,
    ) -> "GridIndexer":
        return cls(envelope_from_points(points), base_cell_size_meters)

    @classmethod
    def from_trips(
        cls,
        records: Iterable["TripRecord"],
        base_cell_size_meters: float = DEFAULT_BASE_CELL_SIZE_METERS,
    ) -> "GridIndexer":
        """Build the grid from every endpoint of the unfiltered dataset."""

        def _endpoints() -> Iterator[Coordinate]:
            for record in records:
                yield record.origin
                yield record.destination

        indexer = cls.from_points(_endpoints(), base_cell_size_meters)
        logger.debug(
            "Grid envelope lon=[%s, %s] lat=[%s, %s] -> %d x %d cells",
            indexer.envelope.min_lon,
            indexer.envelope.max_lon,
            indexer.envelope.min_lat,
            indexer.envelope.max_lat,
            indexer.num_rows,
            indexer.num_cols,
        )
        return indexer

    # ---------------------------------------------------------------- properties
    @property
    def num_rows(self) -> int:
        return self._num_rows

    @property
    def num_cols(self) -> int:
        return self._num_cols

    @property
    def num_cells(self) -> int:
        return self._num_rows * self._num_cols

    # ----------------------------------------------------------------- indexing
    def cell_of(self, lon: float, lat: float) -> CellRef:
        col = math.floor((lon - self.envelope.min_lon) / self.d_lon)
        row = math.floor((lat - self.envelope.min_lat) / self.d_lat)
        return CellRef(row=int(row), col=int(col))

    def centroid_of(self, cell: CellRef) -> Coordinate:
        return (
            self.envelope.min_lon + (cell.col + 0.5) * self.d_lon,
            self.envelope.min_lat + (cell.row + 0.5) * self.d_lat,
        )

    def polygon_of(self, cell: CellRef) -> List[Coordinate]:
        """Closed ring of five points, counter-clockwise from the lower-left corner."""
        x0 = self.envelope.min_lon + cell.col * self.d_lon
        y0 = self.envelope.min_lat + cell.row * self.d_lat
        x1 = x0 + self.d_lon
        y1 = y0 + self.d_lat
        return [(x0, y0), (x1, y0), (x1, y1), (x0, y1), (x0, y0)]

    def cell_polygon(self, cell: CellRef) -> Polygon:
        return Polygon(self.polygon_of(cell))

    def contains(self, cell: CellRef) -> bool:
        return 0 <= cell.row < self._num_rows and 0 <= cell.col < self._num_cols

    def iter_cells(self) -> Iterator[CellRef]:
        """Every cell of the dense grid, row-major."""
        for row in range(self._num_rows):
            for col in range(self._num_cols):
                yield CellRef(row=row, col=col)

    def grid_lines(self, major_every: int = 5) -> List[Tuple[LineString, bool]]:
        """Vertical and horizontal overlay lines as ``(line, is_major)`` pairs."""
        env = self.envelope
        max_lon = env.min_lon + self._num_cols * self.d_lon
        max_lat = env.min_lat + self._num_rows * self.d_lat
        lines: List[Tuple[LineString, bool]] = []
        for col in range(self._num_cols + 1):
            x = env.min_lon + col * self.d_lon
            lines.append((LineString([(x, env.min_lat), (x, max_lat)]), col % major_every == 0))
        for row in range(self._num_rows + 1):
            y = env.min_lat + row * self.d_lat
            lines.append((LineString([(env.min_lon, y), (max_lon, y)]), row % major_every == 0))
        return lines

    # ------------------------------------------------------------------- IO
    def to_json_dict(self) -> Dict[str, object]:
        env = self.envelope
        return {
            "base_cell_size_meters": self.base_cell_size_meters,
            "envelope": {
                "min_lon": env.min_lon,
                "min_lat": env.min_lat,
                "max_lon": env.max_lon,
                "max_lat": env.max_lat,
                "mean_lat": env.mean_lat,
            },
            "d_lon": self.d_lon,
            "d_lat": self.d_lat,
            "num_rows": self._num_rows,
            "num_cols": self._num_cols,
        }

    def save(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(self.to_json_dict(), handle, indent=2)

    @classmethod
    def load(cls, path: str) -> "GridIndexer":
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
        env = payload.get("envelope") or {}
        envelope = GridEnvelope(
            min_lon=float(env["min_lon"]),
            min_lat=float(env["min_lat"]),
            max_lon=float(env["max_lon"]),
            max_lat=float(env["max_lat"]),
            mean_lat=float(env["mean_lat"]),
        )
        base = float(payload.get("base_cell_size_meters", DEFAULT_BASE_CELL_SIZE_METERS))
        return cls(envelope, base)


__all__ = [
    "DEFAULT_BASE_CELL_SIZE_METERS",
    "GridIndexer",
    "cell_size_degrees",
    "envelope_from_points",
]
