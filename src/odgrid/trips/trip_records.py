"""Explicit trip records and the loaders that validate raw payloads into them."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from shapely.errors import ShapelyError
from shapely.geometry import LineString, shape

from .time_band import Interval, extract_interval

logger = logging.getLogger(__name__)

Coordinate = Tuple[float, float]

WEIGHT_PROPERTIES: Sequence[str] = ("count", "weight", "vol")

TABLE_REQUIRED_COLUMNS: Sequence[str] = [
    "origin_lon",
    "origin_lat",
    "dest_lon",
    "dest_lat",
    "weight",
]


@dataclass(frozen=True)
class TripRecord:
    """One weighted origin -> destination observation."""

    origin: Coordinate
    destination: Coordinate
    weight: float
    interval: Optional[Interval] = None
    properties: Dict[str, object] = field(default_factory=dict, compare=False, hash=False)

    @property
    def has_valid_weight(self) -> bool:
        """Only positive, finite weights take part in aggregation."""
        return math.isfinite(self.weight) and self.weight > 0

    def swapped(self) -> "TripRecord":
        """Same trip with origin and destination exchanged."""
        return TripRecord(
            origin=self.destination,
            destination=self.origin,
            weight=self.weight,
            interval=self.interval,
            properties=dict(self.properties),
        )


@dataclass(frozen=True)
class TripDataset:
    """Immutable snapshot of every valid-geometry record loaded from one source."""

    source_id: str
    records: Tuple[TripRecord, ...]
    skipped_features: int = 0

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


def coerce_weight(value: object) -> float:
    """Return a float weight, or NaN when the value is missing or unparsable."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _weight_from_properties(properties: Mapping[str, object]) -> float:
    for name in WEIGHT_PROPERTIES:
        if properties.get(name) is not None:
            return coerce_weight(properties.get(name))
    return math.nan


def _finite_coordinate(raw: Sequence[float]) -> Optional[Coordinate]:
    if len(raw) < 2:
        return None
    lon, lat = float(raw[0]), float(raw[1])
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None
    return lon, lat


def record_from_feature(feature: Mapping[str, object]) -> Optional[TripRecord]:
    """
    Convert one GeoJSON feature into a :class:`TripRecord`.

    The origin is the first vertex of the LineString and the destination the
    last. Returns ``None`` when the geometry is missing or malformed.
    """
    if not isinstance(feature, Mapping):
        return None
    geometry = feature.get("geometry")
    if not geometry:
        return None
    try:
        geom = shape(geometry)
    except (ShapelyError, ValueError, TypeError, KeyError, IndexError, AttributeError):
        return None
    if not isinstance(geom, LineString) or geom.is_empty:
        return None
    coords = list(geom.coords)
    if len(coords) < 2:
        return None
    origin = _finite_coordinate(coords[0])
    destination = _finite_coordinate(coords[-1])
    if origin is None or destination is None:
        return None
    properties = dict(feature.get("properties") or {})
    return TripRecord(
        origin=origin,
        destination=destination,
        weight=_weight_from_properties(properties),
        interval=extract_interval(properties),
        properties=properties,
    )


def records_from_geojson(payload: Mapping[str, object]) -> Tuple[List[TripRecord], int]:
    """Return ``(records, skipped)`` for a GeoJSON FeatureCollection payload."""
    if not isinstance(payload, Mapping):
        raise TypeError("GeoJSON payload must be a mapping")
    features = payload.get("features")
    if not isinstance(features, list):
        raise ValueError("GeoJSON payload must contain a 'features' list")
    records: List[TripRecord] = []
    skipped = 0
    for feature in features:
        record = record_from_feature(feature)
        if record is None:
            skipped += 1
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Skipping feature with malformed geometry: %r", feature)
            continue
        records.append(record)
    return records, skipped


def records_from_dataframe(df: pd.DataFrame) -> Tuple[List[TripRecord], int]:
    """Return ``(records, skipped)`` for a tabular trip export."""
    missing = [column for column in TABLE_REQUIRED_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"Trip table is missing required columns: {', '.join(missing)}")
    records: List[TripRecord] = []
    skipped = 0
    for row in df.to_dict("records"):
        origin = _coordinate_from_row(row, "origin_lon", "origin_lat")
        destination = _coordinate_from_row(row, "dest_lon", "dest_lat")
        if origin is None or destination is None:
            skipped += 1
            continue
        properties = {
            key: value
            for key, value in row.items()
            if not (isinstance(value, float) and pd.isna(value))
        }
        records.append(
            TripRecord(
                origin=origin,
                destination=destination,
                weight=coerce_weight(row.get("weight")),
                interval=extract_interval(properties),
                properties=properties,
            )
        )
    return records, skipped


def _coordinate_from_row(row: Mapping[str, object], lon_key: str, lat_key: str) -> Optional[Coordinate]:
    try:
        lon = float(row.get(lon_key))
        lat = float(row.get(lat_key))
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None
    return lon, lat


def build_dataset(
    source_id: str, records: Iterable[TripRecord], skipped: int = 0
) -> TripDataset:
    dataset = TripDataset(source_id=str(source_id), records=tuple(records), skipped_features=int(skipped))
    if skipped:
        logger.warning(
            "Skipped %d trip features with missing or malformed geometry in %s",
            skipped,
            source_id,
        )
    logger.info("Loaded %d trip records from %s", len(dataset), source_id)
    return dataset


__all__ = [
    "TripDataset",
    "TripRecord",
    "build_dataset",
    "coerce_weight",
    "record_from_feature",
    "records_from_dataframe",
    "records_from_geojson",
]
