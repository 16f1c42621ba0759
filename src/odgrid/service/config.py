"""YAML-backed settings for one OD grid session, with validation and override helpers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from odgrid.flows.curves import DEFAULT_STEPS
from odgrid.grid.grid_indexer import DEFAULT_BASE_CELL_SIZE_METERS
from odgrid.interaction.state import DEFAULT_MIN_WEIGHT, FOCUS_ALL, normalize_focus_direction
from odgrid.trips.time_band import TimeBand

logger = logging.getLogger(__name__)

# Changing any of these invalidates the aggregation result.
AGGREGATION_FIELDS = (
    "source",
    "time_band",
    "undirected",
    "base_cell_size_meters",
    "show_all_cells",
)


@dataclass(frozen=True)
class OdGridConfig:
    """
    Settings for one OD grid session.

    ``time_band`` accepts ``None``, an ``"HH-HH"`` string, a ``[start, end]``
    pair or a :class:`TimeBand`; it is stored as a :class:`TimeBand` or ``None``.
    """

    source: Optional[str] = None
    base_cell_size_meters: float = DEFAULT_BASE_CELL_SIZE_METERS
    undirected: bool = False
    min_weight_threshold: float = DEFAULT_MIN_WEIGHT
    focus_direction: str = FOCUS_ALL
    show_all_cells: bool = False
    show_stops: bool = True
    time_band: Optional[TimeBand] = None
    curve_steps: int = DEFAULT_STEPS

    def __post_init__(self) -> None:
        source = str(self.source).strip() if self.source is not None else None
        object.__setattr__(self, "source", source or None)
        object.__setattr__(self, "base_cell_size_meters", float(self.base_cell_size_meters))
        object.__setattr__(self, "undirected", bool(self.undirected))
        object.__setattr__(self, "min_weight_threshold", float(self.min_weight_threshold))
        object.__setattr__(self, "focus_direction", normalize_focus_direction(self.focus_direction))
        object.__setattr__(self, "show_all_cells", bool(self.show_all_cells))
        object.__setattr__(self, "show_stops", bool(self.show_stops))
        object.__setattr__(self, "time_band", TimeBand.parse(self.time_band))
        object.__setattr__(self, "curve_steps", int(self.curve_steps))
        self._validate()

    def _validate(self) -> None:
        base = self.base_cell_size_meters
        if not math.isfinite(base) or base <= 0:
            raise ValueError("base_cell_size_meters must be a positive number")
        if math.isnan(self.min_weight_threshold):
            raise ValueError("min_weight_threshold cannot be NaN")
        if self.curve_steps < 1:
            raise ValueError("curve_steps must be at least 1")

    # ------------------------------------------------------------------ builders
    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "OdGridConfig":
        if not isinstance(data, Mapping):
            raise TypeError("OD grid configuration must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown OD grid configuration keys: {', '.join(unknown)}")
        return cls(**{key: value for key, value in data.items() if value is not None})

    @classmethod
    def from_yaml(cls, path: str | Path) -> "OdGridConfig":
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"OD grid YAML not found at {config_path}")
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, Mapping):
            raise TypeError("OD grid YAML must contain a mapping at the top level")
        config = cls.from_mapping(data)
        logger.debug("Loaded OD grid configuration from %s: %s", config_path, config)
        return config

    def to_mapping(self) -> Dict[str, object]:
        return {
            "source": self.source,
            "base_cell_size_meters": self.base_cell_size_meters,
            "undirected": self.undirected,
            "min_weight_threshold": self.min_weight_threshold,
            "focus_direction": self.focus_direction,
            "show_all_cells": self.show_all_cells,
            "show_stops": self.show_stops,
            "time_band": self.time_band.label if self.time_band is not None else None,
            "curve_steps": self.curve_steps,
        }

    def to_yaml(self, path: str | Path) -> None:
        dest = Path(path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        with dest.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(self.to_mapping(), handle, sort_keys=True)

    def with_overrides(self, **overrides: object) -> "OdGridConfig":
        """
        Copy with ``overrides`` applied.

        ``None`` leaves a field unchanged; pass ``time_band=""`` to drop the band.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown OD grid configuration keys: {', '.join(unknown)}")
        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        return replace(self, **changes)

    def aggregation_key(self) -> tuple:
        """Values whose change requires a new aggregation pass."""
        return tuple(getattr(self, name) for name in AGGREGATION_FIELDS)


__all__ = ["AGGREGATION_FIELDS", "OdGridConfig"]
