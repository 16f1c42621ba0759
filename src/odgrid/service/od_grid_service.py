"""Session engine that ties trip loading, aggregation and interaction together.

This module provides :class:`OdGridEngine`, which owns one
:class:`~odgrid.trips.trip_store.RawTripStore` reference, one
:class:`~odgrid.service.render_adapter.RenderAdapter`, one
:class:`~odgrid.service.config.OdGridConfig` and one
:class:`~odgrid.interaction.state.InteractionState`.

Lifecycle
---------
1. ``activate()`` loads the configured source, builds (or reuses) the grid
   for that source and cell size, aggregates the trips, uploads the render
   geometry, pushes filters and binds pointer events.
2. ``update()`` / ``set_min_weight()`` / ``focus_cell()`` / ``handle_event()``
   change configuration or interaction state. Only changes to the source,
   time band, direction mode, cell size or the all-cells toggle run a new
   aggregation pass; everything else only pushes filters or visibility.
3. ``deactivate()`` clears the adapter, unbinds events and invalidates any
   load still in flight so its result is discarded.

Example Usage
-------------

.. code-block:: python

    from odgrid.service.config import OdGridConfig
    from odgrid.service.od_grid_service import OdGridEngine
    from odgrid.service.render_adapter import InMemoryRenderAdapter, LayerIds
    from odgrid.trips.trip_store import RawTripStore

    adapter = InMemoryRenderAdapter()
    engine = OdGridEngine(RawTripStore(), adapter, OdGridConfig(source="trips.geojson"))
    engine.activate(time_band="7-9")
    engine.set_min_weight(5)
    print(len(adapter.rendered_features(LayerIds.LINES)))
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from odgrid.flows.aggregation import AggregatedFlows, FlowAggregator
from odgrid.flows.flow_geometry import FlowGraphGeometry, build_flow_geometry
from odgrid.grid.domain_types import CellRef, FlowPairKey
from odgrid.grid.grid_indexer import GridIndexer
from odgrid.interaction.filters import compose_filters
from odgrid.interaction.state import InteractionState
from odgrid.trips.trip_records import TripDataset, TripRecord
from odgrid.trips.trip_store import RawTripStore, TripLoadError

from .config import OdGridConfig
from .render_adapter import (
    EVENT_CLICK,
    EVENT_LEAVE,
    EVENT_MOVE,
    LayerIds,
    PointerEvent,
    RenderAdapter,
)

logger = logging.getLogger(__name__)

RecordWrapper = Callable[[Sequence[TripRecord]], Iterable[TripRecord]]


def _cell_from_properties(properties: Mapping[str, object]) -> CellRef:
    cid = properties.get("cid")
    if cid is not None:
        return CellRef.parse(str(cid))
    return CellRef(int(properties["row"]), int(properties["col"]))


class OdGridEngine:
    """One OD grid session bound to a render adapter."""

    def __init__(
        self,
        store: RawTripStore,
        adapter: RenderAdapter,
        config: Optional[OdGridConfig] = None,
        *,
        record_wrapper: Optional[RecordWrapper] = None,
    ) -> None:
        self.store = store
        self.adapter = adapter
        self.config = config or OdGridConfig()
        self.state = InteractionState(
            min_weight_threshold=self.config.min_weight_threshold,
            focus_direction=self.config.focus_direction,
        )
        self.record_wrapper = record_wrapper
        self.active = False
        self.attached = False
        self.aggregation_count = 0
        self.dataset: Optional[TripDataset] = None
        self.indexer: Optional[GridIndexer] = None
        self.result: Optional[AggregatedFlows] = None
        self.geometry: Optional[FlowGraphGeometry] = None
        self._indexers: Dict[Tuple[str, float], GridIndexer] = {}
        self._aggregation_key: Optional[tuple] = None
        self._generation = 0
        self._in_flight = False

    # ---------------------------------------------------------------- lifecycle
    def activate(self, **overrides: object) -> bool:
        """Start the session; returns ``False`` when the pass was discarded or rejected."""
        if self._in_flight:
            logger.warning("Ignoring activation while an aggregation pass is in flight")
            return False
        self.config = self.config.with_overrides(**overrides)
        if not self.config.source:
            raise ValueError("An OD grid session requires a trip source")
        self.state.set_min_weight(self.config.min_weight_threshold)
        self.state.set_focus_direction(self.config.focus_direction)
        self.active = True
        if not self.attached:
            self.adapter.bind_events(self.handle_event)
            self.attached = True
        return self._refresh()

    def deactivate(self) -> None:
        self._generation += 1
        self.active = False
        self.state.reset()
        self.adapter.clear()
        if self.attached:
            self.adapter.unbind_events()
            self.attached = False
        self._drop_result()
        logger.info("OD grid session deactivated")

    def update(self, **changes: object) -> bool:
        """
        Apply configuration changes.

        Returns ``True`` when the render surface was updated. Only changes to
        the aggregation inputs (source, time band, direction mode, cell size,
        all-cells toggle) trigger a new aggregation pass.
        """
        previous = self.config
        config = previous.with_overrides(**changes)
        if self._in_flight and config.aggregation_key() != previous.aggregation_key():
            logger.warning("Ignoring configuration change while an aggregation pass is in flight")
            return False
        self.config = config
        if self.config.min_weight_threshold != previous.min_weight_threshold:
            self.state.set_min_weight(self.config.min_weight_threshold)
        if self.config.focus_direction != previous.focus_direction:
            self.state.set_focus_direction(self.config.focus_direction)
        if not self.active:
            return False

        if not self._in_flight and self.config.aggregation_key() != self._aggregation_key:
            if (
                self.config.source != previous.source
                or self.config.base_cell_size_meters != previous.base_cell_size_meters
            ):
                # Cell references from the old grid are meaningless on the new one.
                self.state.reset()
            return self._refresh()

        self._apply_visibility()
        self._push_filters()
        return True

    # --------------------------------------------------------------- selection
    def set_min_weight(self, value: float) -> None:
        self.state.set_min_weight(value)
        self.config = self.config.with_overrides(min_weight_threshold=self.state.min_weight_threshold)
        self._push_filters()

    def set_focus_direction(self, direction: str) -> None:
        self.state.set_focus_direction(direction)
        self.config = self.config.with_overrides(focus_direction=self.state.focus_direction)
        self._push_filters()

    def focus_cell(self, cell: CellRef, direction: Optional[str] = None) -> None:
        self.state.focus(cell, direction)
        if direction is not None:
            self.config = self.config.with_overrides(focus_direction=self.state.focus_direction)
        self._push_filters()

    def isolate_pair(self, key: FlowPairKey) -> None:
        self.state.isolate_pair(key)
        self._push_filters()

    def clear_focus(self) -> None:
        self.state.clear_focus()
        self._push_filters()

    def clear_isolation(self) -> None:
        self.state.clear_isolation()
        self._push_filters()

    def handle_event(self, event: PointerEvent) -> bool:
        """Apply one pointer event; returns ``False`` when it was ignored."""
        if not self.active:
            return False
        try:
            handled = self._dispatch(event)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Ignoring %s event on %s with malformed properties %r: %s",
                event.kind,
                event.layer_id,
                event.properties,
                exc,
            )
            return False
        if handled:
            self._push_filters()
        return handled

    def filters(self) -> Dict[str, object]:
        return compose_filters(self.state)

    # ----------------------------------------------------------------- internals
    def _dispatch(self, event: PointerEvent) -> bool:
        layer = event.layer_id
        props = event.properties
        state = self.state

        if event.kind == EVENT_MOVE:
            if layer is None:
                state.leave_all()
            elif layer in LayerIds.CELL_LAYERS:
                state.hover_cell(_cell_from_properties(props))
            elif layer in LayerIds.LINE_LAYERS:
                state.hover_pair(FlowPairKey.parse(str(props["pid"])))
            elif layer in LayerIds.BUBBLE_LAYERS:
                state.hover_bubble(_cell_from_properties(props))
            elif layer in LayerIds.STOP_LAYERS:
                state.hover_stop()
            else:
                return self._unknown_layer(event)
            return True

        if event.kind == EVENT_LEAVE:
            if layer is None:
                state.leave_all()
            elif layer in LayerIds.CELL_LAYERS:
                state.leave_cell()
            elif layer in LayerIds.LINE_LAYERS:
                state.leave_pair()
            elif layer in LayerIds.BUBBLE_LAYERS:
                state.leave_bubble()
            elif layer in LayerIds.STOP_LAYERS:
                state.hover_stop()
            else:
                return self._unknown_layer(event)
            return True

        if event.kind == EVENT_CLICK:
            if layer is None:
                state.clear_selection()
            elif layer in LayerIds.LINE_LAYERS:
                state.isolate_pair(FlowPairKey.parse(str(props["pid"])))
            elif layer in LayerIds.BUBBLE_LAYERS or layer in LayerIds.CELL_LAYERS:
                state.focus(_cell_from_properties(props))
            elif layer in LayerIds.STOP_LAYERS:
                return False
            else:
                return self._unknown_layer(event)
            return True
        return False

    @staticmethod
    def _unknown_layer(event: PointerEvent) -> bool:
        logger.debug("Ignoring %s event on unknown layer %s", event.kind, event.layer_id)
        return False

    def _refresh(self) -> bool:
        if self._in_flight:
            logger.warning("Ignoring refresh request while an aggregation pass is in flight")
            return False
        self._in_flight = True
        generation = self._generation
        config = self.config
        try:
            try:
                dataset = self.store.load(config.source)
            except TripLoadError:
                self.adapter.clear()
                self._drop_result()
                raise
            if generation != self._generation or not self.active:
                logger.info("Discarding trips from %s loaded after deactivation", config.source)
                return False

            indexer = self._indexer_for(dataset, config.base_cell_size_meters)
            aggregator = FlowAggregator(
                indexer, time_band=config.time_band, undirected=config.undirected
            )
            records: Iterable[TripRecord] = dataset.records
            if self.record_wrapper is not None:
                records = self.record_wrapper(dataset.records)
            result = aggregator.add_all(records).finish()
            self.aggregation_count += 1
            geometry = build_flow_geometry(
                result,
                indexer,
                show_all_cells=config.show_all_cells,
                curve_steps=config.curve_steps,
            )

            self.dataset = dataset
            self.indexer = indexer
            self.result = result
            self.geometry = geometry
            self._aggregation_key = config.aggregation_key()
            self.adapter.upload(geometry)
            self._apply_visibility()
            self._push_filters()
            return True
        finally:
            self._in_flight = False

    def _indexer_for(self, dataset: TripDataset, base_cell_size_meters: float) -> GridIndexer:
        # The grid depends on the unfiltered dataset only, so time band and
        # direction changes reuse it.
        key = (dataset.source_id, base_cell_size_meters)
        indexer = self._indexers.get(key)
        if indexer is None:
            indexer = self._indexers[key] = GridIndexer.from_trips(dataset.records, base_cell_size_meters)
        return indexer

    def _apply_visibility(self) -> None:
        for layer_id in LayerIds.STOP_LAYERS:
            self.adapter.set_layer_visibility(layer_id, self.config.show_stops)
        self.adapter.set_layer_visibility(LayerIds.CELLS_ALL_FILL, self.config.show_all_cells)
        self.adapter.set_layer_visibility(LayerIds.GRID, self.config.show_all_cells)

    def _push_filters(self) -> None:
        if not self.active or self.geometry is None:
            return
        self.adapter.apply_filters(compose_filters(self.state))

    def _drop_result(self) -> None:
        self.dataset = None
        self.indexer = None
        self.result = None
        self.geometry = None
        self._aggregation_key = None


__all__ = ["OdGridEngine", "RecordWrapper"]
