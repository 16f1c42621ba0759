"""Boundary between the engine and a map rendering surface.

The engine only talks to a :class:`RenderAdapter`: it uploads the geometry of
an aggregation pass once, then pushes filter expressions and layer
visibility as the interaction state changes. Pointer events come back as
:class:`PointerEvent` values through the bound handler.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from odgrid.flows.flow_geometry import (
    SOURCE_BUBBLES,
    SOURCE_CELLS,
    SOURCE_CELLS_ALL,
    SOURCE_GRID,
    SOURCE_LINES,
    SOURCE_STOPS,
    FlowGraphGeometry,
)
from odgrid.interaction import filters as layer_filters
from odgrid.interaction.filters import evaluate_filter

logger = logging.getLogger(__name__)

EVENT_MOVE = "move"
EVENT_LEAVE = "leave"
EVENT_CLICK = "click"
EVENT_KINDS = (EVENT_MOVE, EVENT_LEAVE, EVENT_CLICK)


class LayerIds:
    """Layer identifiers shared by every adapter."""

    LINES = layer_filters.LAYER_LINES
    LINES_HL = layer_filters.LAYER_LINES_HL
    BUBBLES = layer_filters.LAYER_BUBBLES
    BUBBLES_HL = layer_filters.LAYER_BUBBLES_HL
    CELLS_FILL = layer_filters.LAYER_CELLS_FILL
    CELLS_ALL_FILL = layer_filters.LAYER_CELLS_ALL_FILL
    CELLS_HL = layer_filters.LAYER_CELLS_HL
    STOPS_O = layer_filters.LAYER_STOPS_O
    STOPS_D = layer_filters.LAYER_STOPS_D
    STOPS_OD = layer_filters.LAYER_STOPS_OD
    STOPS_FOCUS_HL = layer_filters.LAYER_STOPS_FOCUS_HL
    GRID = layer_filters.LAYER_GRID

    LINE_LAYERS = (LINES, LINES_HL)
    BUBBLE_LAYERS = (BUBBLES, BUBBLES_HL)
    CELL_LAYERS = (CELLS_FILL, CELLS_ALL_FILL, CELLS_HL)
    STOP_LAYERS = layer_filters.STOP_LAYERS


LAYER_SOURCES: Dict[str, str] = {
    LayerIds.LINES: SOURCE_LINES,
    LayerIds.LINES_HL: SOURCE_LINES,
    LayerIds.BUBBLES: SOURCE_BUBBLES,
    LayerIds.BUBBLES_HL: SOURCE_BUBBLES,
    LayerIds.CELLS_FILL: SOURCE_CELLS,
    LayerIds.CELLS_ALL_FILL: SOURCE_CELLS_ALL,
    LayerIds.CELLS_HL: SOURCE_CELLS,
    LayerIds.STOPS_O: SOURCE_STOPS,
    LayerIds.STOPS_D: SOURCE_STOPS,
    LayerIds.STOPS_OD: SOURCE_STOPS,
    LayerIds.STOPS_FOCUS_HL: SOURCE_STOPS,
    LayerIds.GRID: SOURCE_GRID,
}

# Static filters that split one source across several layers.
BASE_LAYER_FILTERS: Dict[str, list] = {
    LayerIds.STOPS_O: ["==", ["get", "role"], "O"],
    LayerIds.STOPS_D: ["==", ["get", "role"], "D"],
    LayerIds.STOPS_OD: ["==", ["get", "role"], "OD"],
}


@dataclass(frozen=True)
class PointerEvent:
    """Pointer interaction reported by the rendering surface."""

    kind: str
    layer_id: Optional[str] = None
    properties: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.kind not in EVENT_KINDS:
            raise ValueError(f"Pointer event kind must be one of {EVENT_KINDS}: {self.kind!r}")
        object.__setattr__(self, "properties", dict(self.properties or {}))


EventHandler = Callable[[PointerEvent], None]


class RenderAdapter(Protocol):
    def upload(self, geometry: FlowGraphGeometry) -> None:
        ...

    def apply_filters(self, filters: Mapping[str, Any]) -> None:
        ...

    def set_layer_visibility(self, layer_id: str, visible: bool) -> None:
        ...

    def clear(self) -> None:
        ...

    def bind_events(self, handler: EventHandler) -> None:
        ...

    def unbind_events(self) -> None:
        ...


class InMemoryRenderAdapter:
    """
    Headless rendering surface.

    Records uploaded sources, filters and visibility, and evaluates filters
    against the uploaded features so callers can inspect what a map would
    draw for any layer.
    """

    def __init__(self) -> None:
        self.sources: Dict[str, Dict[str, Any]] = {}
        self.meta: Dict[str, object] = {}
        self.filters: Dict[str, Any] = {}
        self.visibility: Dict[str, bool] = {}
        self.handler: Optional[EventHandler] = None
        self.upload_count = 0
        self.filter_push_count = 0
        self.bind_count = 0

    # ------------------------------------------------------------- protocol
    def upload(self, geometry: FlowGraphGeometry) -> None:
        self.sources = dict(geometry.sources())
        self.meta = dict(geometry.meta)
        self.upload_count += 1
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Uploaded sources %s",
                {name: len(fc.get("features", [])) for name, fc in self.sources.items()},
            )

    def apply_filters(self, filters: Mapping[str, Any]) -> None:
        self.filters.update(filters)
        self.filter_push_count += 1

    def set_layer_visibility(self, layer_id: str, visible: bool) -> None:
        self.visibility[layer_id] = bool(visible)

    def clear(self) -> None:
        self.sources.clear()
        self.meta.clear()
        self.filters.clear()
        self.visibility.clear()

    def bind_events(self, handler: EventHandler) -> None:
        self.handler = handler
        self.bind_count += 1

    def unbind_events(self) -> None:
        self.handler = None

    # --------------------------------------------------------------- queries
    @property
    def is_bound(self) -> bool:
        return self.handler is not None

    def emit(self, event: PointerEvent) -> None:
        """Deliver ``event`` to the bound handler, if any."""
        if self.handler is not None:
            self.handler(event)

    def is_visible(self, layer_id: str) -> bool:
        return self.visibility.get(layer_id, True)

    def layer_source(self, layer_id: str) -> str:
        """Source feeding ``layer_id``.

        The cell highlight reads the dense grid whenever that source is uploaded.
        """
        source_id = LAYER_SOURCES.get(layer_id)
        if source_id is None:
            raise KeyError(f"Unknown layer id: {layer_id}")
        if layer_id == LayerIds.CELLS_HL and SOURCE_CELLS_ALL in self.sources:
            return SOURCE_CELLS_ALL
        return source_id

    def rendered_features(self, layer_id: str) -> List[Dict[str, Any]]:
        """Features of ``layer_id``'s source that pass its base and state filters."""
        source_id = self.layer_source(layer_id)
        if not self.is_visible(layer_id):
            return []
        collection = self.sources.get(source_id)
        if collection is None:
            return []
        base = BASE_LAYER_FILTERS.get(layer_id)
        expr = self.filters.get(layer_id)
        out = []
        for feature in collection.get("features", []):
            props = feature.get("properties") or {}
            if base is not None and not evaluate_filter(base, props):
                continue
            if expr is not None and not evaluate_filter(expr, props):
                continue
            out.append(feature)
        return out


class GeoJsonDirectoryAdapter(InMemoryRenderAdapter):
    """In-memory adapter that can dump its state as GeoJSON files."""

    FILTERS_FILENAME = "filters.json"
    META_FILENAME = "meta.json"

    def write(self, out_dir: str | Path) -> List[Path]:
        """
        Write one ``<source>.geojson`` per uploaded source plus ``filters.json``
        (filters and visibility per layer) and ``meta.json`` (grid extent).
        """
        target = Path(out_dir)
        target.mkdir(parents=True, exist_ok=True)
        written: List[Path] = []
        for source_id, collection in sorted(self.sources.items()):
            path = target / f"{source_id}.geojson"
            with path.open("w", encoding="utf-8") as handle:
                json.dump(collection, handle)
            written.append(path)

        layers = {
            layer_id: {
                "source": self.layer_source(layer_id),
                "visible": self.is_visible(layer_id),
                "filter": self.filters.get(layer_id),
                "base_filter": BASE_LAYER_FILTERS.get(layer_id),
            }
            for layer_id in LAYER_SOURCES
            if self.layer_source(layer_id) in self.sources
        }
        filters_path = target / self.FILTERS_FILENAME
        with filters_path.open("w", encoding="utf-8") as handle:
            json.dump(layers, handle, indent=2, sort_keys=True)
        written.append(filters_path)

        meta_path = target / self.META_FILENAME
        with meta_path.open("w", encoding="utf-8") as handle:
            json.dump(self.meta, handle, indent=2, sort_keys=True)
        written.append(meta_path)
        logger.info("Wrote %d render files to %s", len(written), target)
        return written


__all__ = [
    "BASE_LAYER_FILTERS",
    "EVENT_CLICK",
    "EVENT_KINDS",
    "EVENT_LEAVE",
    "EVENT_MOVE",
    "EventHandler",
    "GeoJsonDirectoryAdapter",
    "InMemoryRenderAdapter",
    "LAYER_SOURCES",
    "LayerIds",
    "PointerEvent",
    "RenderAdapter",
]
