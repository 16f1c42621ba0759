from __future__ import annotations

import math

import pytest

from odgrid.grid.domain_types import CellRef, FlowPairKey, GridEnvelope
from odgrid.grid.grid_indexer import (
    DEFAULT_MEAN_LATITUDE,
    GridIndexer,
    cell_size_degrees,
    envelope_from_points,
)
from odgrid.trips.trip_records import TripRecord


def _envelope(min_lon=139.0, min_lat=35.0, max_lon=139.01, max_lat=35.01, mean_lat=35.0):
    return GridEnvelope(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat, mean_lat=mean_lat)


def test_cell_size_uses_mean_latitude():
    d_lon, d_lat = cell_size_degrees(100.0, 60.0)
    assert d_lat == pytest.approx(100.0 / 110574.0)
    assert d_lon == pytest.approx(100.0 / (111320.0 * 0.5))


def test_cell_size_rejects_non_positive_base():
    with pytest.raises(ValueError):
        cell_size_degrees(0.0, 35.0)
    with pytest.raises(ValueError):
        cell_size_degrees(-5.0, 35.0)


def test_envelope_of_points_and_empty_default():
    env = envelope_from_points([(1.0, 10.0), (3.0, 12.0), (2.0, 14.0)])
    assert (env.min_lon, env.min_lat, env.max_lon, env.max_lat) == (1.0, 10.0, 3.0, 14.0)
    assert env.mean_lat == pytest.approx(12.0)

    empty = envelope_from_points([])
    assert empty.mean_lat == DEFAULT_MEAN_LATITUDE
    indexer = GridIndexer(empty)
    assert (indexer.num_rows, indexer.num_cols) == (1, 1)


def test_cell_of_and_centroid_round_trip():
    indexer = GridIndexer(_envelope(), 100.0)
    cell = CellRef(row=3, col=4)
    lon, lat = indexer.centroid_of(cell)
    assert indexer.cell_of(lon, lat) == cell
    assert indexer.cell_of(139.0, 35.0) == CellRef(0, 0)


def test_every_endpoint_lands_inside_the_dense_grid():
    indexer = GridIndexer(_envelope(), 100.0)
    corner = indexer.cell_of(139.01, 35.01)
    assert indexer.contains(corner)
    assert corner.row == indexer.num_rows - 1
    assert corner.col == indexer.num_cols - 1
    assert indexer.num_cells == indexer.num_rows * indexer.num_cols
    assert len(list(indexer.iter_cells())) == indexer.num_cells


def test_polygon_is_closed_counter_clockwise_ring():
    indexer = GridIndexer(_envelope(), 100.0)
    ring = indexer.polygon_of(CellRef(1, 2))
    assert len(ring) == 5
    assert ring[0] == ring[-1]
    x0, y0 = ring[0]
    assert x0 == pytest.approx(139.0 + 2 * indexer.d_lon)
    assert y0 == pytest.approx(35.0 + 1 * indexer.d_lat)
    polygon = indexer.cell_polygon(CellRef(1, 2))
    assert polygon.exterior.is_ccw
    assert polygon.area == pytest.approx(indexer.d_lon * indexer.d_lat)


def test_grid_lines_flag_every_fifth_line_as_major():
    indexer = GridIndexer(_envelope(max_lon=139.0, max_lat=35.0), 100.0)
    lines = indexer.grid_lines()
    # 1 x 1 grid: two vertical and two horizontal lines.
    assert len(lines) == 4
    assert [major for _, major in lines] == [True, False, True, False]


def test_from_trips_uses_all_endpoints():
    records = [
        TripRecord(origin=(139.0, 35.0), destination=(139.002, 35.001), weight=1.0),
        TripRecord(origin=(139.001, 35.003), destination=(139.0, 35.0), weight=math.nan),
    ]
    indexer = GridIndexer.from_trips(records, 100.0)
    env = indexer.envelope
    assert env.max_lon == pytest.approx(139.002)
    assert env.max_lat == pytest.approx(35.003)


def test_save_and_load(tmp_path):
    indexer = GridIndexer(_envelope(), 250.0)
    path = tmp_path / "grid.json"
    indexer.save(str(path))
    loaded = GridIndexer.load(str(path))
    assert loaded.base_cell_size_meters == 250.0
    assert (loaded.num_rows, loaded.num_cols) == (indexer.num_rows, indexer.num_cols)
    assert loaded.d_lon == pytest.approx(indexer.d_lon)


def test_cell_and_pair_keys():
    a = CellRef(row=1, col=2)
    b = CellRef(row=0, col=5)
    assert a.key == "2:1"
    assert CellRef.parse("2:1") == a
    with pytest.raises(ValueError):
        CellRef.parse("2-1")

    directed = FlowPairKey.directed(a, b)
    assert directed.pid == "2:1>5:0"
    assert FlowPairKey.parse(directed.pid) == directed
    assert FlowPairKey.undirected(a, b) == FlowPairKey.undirected(b, a)
    assert FlowPairKey.for_trip(b, a, undirected=False) != FlowPairKey.for_trip(a, b, undirected=False)
    assert directed.touches(b)
    assert not directed.touches(CellRef(9, 9))
