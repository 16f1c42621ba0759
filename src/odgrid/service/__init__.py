"""Session engine, configuration and render adapters."""

from .config import OdGridConfig
from .od_grid_service import OdGridEngine
from .render_adapter import (
    GeoJsonDirectoryAdapter,
    InMemoryRenderAdapter,
    LayerIds,
    PointerEvent,
    RenderAdapter,
)

__all__ = [
    "GeoJsonDirectoryAdapter",
    "InMemoryRenderAdapter",
    "LayerIds",
    "OdGridConfig",
    "OdGridEngine",
    "PointerEvent",
    "RenderAdapter",
]
