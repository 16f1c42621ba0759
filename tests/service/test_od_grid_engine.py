from __future__ import annotations

from typing import Callable, Dict, List, Optional

import pytest

from odgrid.grid.domain_types import CellRef, FlowPairKey
from odgrid.service.config import OdGridConfig
from odgrid.service.od_grid_service import OdGridEngine
from odgrid.service.render_adapter import InMemoryRenderAdapter, LayerIds, PointerEvent
from odgrid.trips.trip_records import TripDataset, TripRecord
from odgrid.trips.time_band import TimeBand
from odgrid.trips.trip_store import TripLoadError

P00 = (139.0, 35.0)
P00_NEAR = (139.0003, 35.0003)
P11 = (139.0015, 35.0015)


def _dataset(source_id: str = "trips") -> TripDataset:
    return TripDataset(
        source_id=source_id,
        records=(
            TripRecord(origin=P00, destination=P00_NEAR, weight=5.0, interval=(7.0, 8.0)),
            TripRecord(origin=P00, destination=P11, weight=10.0, interval=(6.0, 8.0)),
            TripRecord(origin=P11, destination=P00, weight=3.0, interval=(9.0, 10.0)),
        ),
    )


class StubStore:
    def __init__(self, datasets: Dict[str, TripDataset]):
        self.datasets = datasets
        self.calls: List[str] = []
        self.on_load: Optional[Callable[[], None]] = None
        self.error: Optional[Exception] = None

    def load(self, source_id: str) -> TripDataset:
        self.calls.append(source_id)
        if self.on_load is not None:
            self.on_load()
        if self.error is not None:
            raise self.error
        return self.datasets[source_id]


def _engine(**config) -> tuple[OdGridEngine, InMemoryRenderAdapter, StubStore]:
    store = StubStore({"trips": _dataset(), "other": _dataset("other")})
    adapter = InMemoryRenderAdapter()
    engine = OdGridEngine(store, adapter, OdGridConfig(source="trips", **config))
    return engine, adapter, store


def _pids(adapter: InMemoryRenderAdapter, layer: str = LayerIds.LINES) -> List[str]:
    return sorted(f["properties"]["pid"] for f in adapter.rendered_features(layer))


def test_activate_uploads_and_filters():
    engine, adapter, _ = _engine()
    assert engine.activate()
    assert engine.aggregation_count == 1
    assert adapter.upload_count == 1
    assert adapter.is_bound
    assert _pids(adapter) == ["0:0>1:1", "1:1>0:0"]
    assert len(adapter.rendered_features(LayerIds.BUBBLES)) == 1
    assert adapter.rendered_features(LayerIds.CELLS_HL) == []


def test_activate_requires_source():
    engine = OdGridEngine(StubStore({}), InMemoryRenderAdapter())
    with pytest.raises(ValueError):
        engine.activate()


def test_threshold_and_focus_changes_do_not_reaggregate():
    engine, adapter, store = _engine()
    engine.activate()

    engine.set_min_weight(5)
    assert _pids(adapter) == ["0:0>1:1"]
    engine.update(focus_direction="out", min_weight_threshold=1, show_stops=False)
    engine.focus_cell(CellRef(1, 1))
    assert _pids(adapter) == ["1:1>0:0"]
    assert adapter.rendered_features(LayerIds.STOPS_OD) == []

    assert engine.aggregation_count == 1
    assert adapter.upload_count == 1
    assert store.calls == ["trips"]


def test_time_band_and_direction_changes_reaggregate_on_the_same_grid():
    engine, adapter, _ = _engine()
    engine.activate()
    grid = engine.indexer

    engine.update(time_band="7-9")
    assert engine.aggregation_count == 2
    assert _pids(adapter) == ["0:0>1:1"]
    assert engine.indexer is grid

    engine.update(time_band="", undirected=True)
    assert engine.aggregation_count == 3
    assert _pids(adapter) == ["0:0>1:1"]
    (line,) = adapter.rendered_features(LayerIds.LINES)
    assert line["properties"]["weight"] == pytest.approx(13.0)


def test_pointer_events_drive_selection():
    engine, adapter, _ = _engine()
    engine.activate()

    adapter.emit(PointerEvent("move", LayerIds.LINES, {"pid": "0:0>1:1"}))
    assert _pids(adapter, LayerIds.LINES_HL) == ["0:0>1:1"]
    adapter.emit(PointerEvent("leave", LayerIds.LINES))
    assert _pids(adapter, LayerIds.LINES_HL) == []

    adapter.emit(PointerEvent("click", LayerIds.LINES, {"pid": "1:1>0:0"}))
    assert engine.state.isolated_pair == FlowPairKey(CellRef(1, 1), CellRef(0, 0))
    assert _pids(adapter) == ["1:1>0:0"]

    # Clicking empty space clears isolation and restores the thresholded set.
    adapter.emit(PointerEvent("click"))
    assert engine.state.isolated_pair is None
    assert _pids(adapter) == ["0:0>1:1", "1:1>0:0"]

    adapter.emit(PointerEvent("click", LayerIds.BUBBLES, {"cid": "0:0", "row": 0, "col": 0}))
    assert engine.state.focus_cell == CellRef(0, 0)
    cells = adapter.rendered_features(LayerIds.CELLS_HL)
    assert [f["properties"]["cid"] for f in cells] == ["0:0"]

    adapter.emit(PointerEvent("move", LayerIds.CELLS_FILL, {"cid": "1:1", "row": 1, "col": 1}))
    assert engine.state.hovered_cell == CellRef(1, 1)
    adapter.emit(PointerEvent("move"))
    assert engine.state.hovered_cell is None


def test_malformed_event_is_ignored():
    engine, adapter, _ = _engine()
    engine.activate()
    assert not engine.handle_event(PointerEvent("click", LayerIds.LINES, {}))
    assert not engine.handle_event(PointerEvent("click", "some-other-layer", {"pid": "0:0>1:1"}))
    assert engine.state.isolated_pair is None


def test_events_bind_once_per_engine():
    engine, adapter, _ = _engine()
    engine.activate()
    engine.activate()
    assert adapter.bind_count == 1
    assert engine.attached

    other_adapter = InMemoryRenderAdapter()
    other = OdGridEngine(engine.store, other_adapter, OdGridConfig(source="trips"))
    other.activate()
    assert other_adapter.bind_count == 1

    engine.deactivate()
    assert not adapter.is_bound
    assert not engine.attached
    assert adapter.sources == {}
    engine.activate()
    assert adapter.bind_count == 2


def test_deactivation_during_load_discards_the_result():
    engine, adapter, store = _engine()
    store.on_load = engine.deactivate
    assert not engine.activate()
    assert engine.result is None
    assert adapter.upload_count == 0
    assert adapter.sources == {}


def test_reentrant_refresh_is_rejected():
    engine, adapter, store = _engine()
    engine.activate()
    results = []
    store.on_load = lambda: results.append(engine.update(time_band="9-10"))
    assert engine.update(time_band="7-9")
    assert results == [False]
    assert engine.aggregation_count == 2
    assert engine.config.time_band == engine.result.time_band == TimeBand(7, 9)

    store.on_load = None
    assert engine.update(show_stops=False)
    assert engine.aggregation_count == 2


def test_threshold_change_during_load_is_kept():
    engine, adapter, store = _engine()
    engine.activate()
    store.on_load = lambda: engine.update(min_weight_threshold=5)
    assert engine.update(time_band="6-8")
    assert engine.config.min_weight_threshold == 5.0
    assert engine.state.min_weight_threshold == 5.0
    assert _pids(adapter) == ["0:0>1:1"]
    assert engine.aggregation_count == 2


def test_load_error_clears_adapter_and_propagates():
    engine, adapter, store = _engine()
    engine.activate()
    store.error = TripLoadError("other", "boom")
    with pytest.raises(TripLoadError):
        engine.update(source="other")
    assert adapter.sources == {}
    assert engine.result is None


def test_source_change_resets_selection():
    engine, _, _ = _engine()
    engine.activate()
    engine.focus_cell(CellRef(1, 1))
    engine.update(source="other")
    assert engine.state.focus_cell is None
    assert engine.aggregation_count == 2


def test_show_all_cells_toggles_dense_layers():
    engine, adapter, _ = _engine()
    engine.activate()
    assert not adapter.is_visible(LayerIds.CELLS_ALL_FILL)
    engine.update(show_all_cells=True)
    assert adapter.is_visible(LayerIds.GRID)
    assert len(adapter.rendered_features(LayerIds.CELLS_ALL_FILL)) == engine.indexer.num_cells


def test_focusing_an_empty_cell_highlights_it_on_the_dense_grid():
    engine, adapter, _ = _engine(show_all_cells=True)
    engine.activate()
    assert CellRef(1, 0) not in engine.result.cell_stats

    adapter.emit(PointerEvent("click", LayerIds.CELLS_ALL_FILL, {"row": 1, "col": 0}))
    assert engine.state.focus_cell == CellRef(1, 0)
    cells = adapter.rendered_features(LayerIds.CELLS_HL)
    assert [f["properties"]["cid"] for f in cells] == ["0:1"]

    engine.update(show_all_cells=False)
    engine.focus_cell(CellRef(1, 0))
    assert adapter.rendered_features(LayerIds.CELLS_HL) == []
