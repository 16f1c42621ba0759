"""Core dataclasses shared across the grid, flow and interaction packages."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class CellRef:
    """Integer (row, col) address of a grid cell."""

    row: int
    col: int

    @property
    def key(self) -> str:
        """String key used as the render ``cid`` property."""
        return f"{self.col}:{self.row}"

    @classmethod
    def parse(cls, text: str) -> "CellRef":
        """Inverse of :attr:`key` (``"col:row"``)."""
        parts = str(text).strip().split(":")
        if len(parts) != 2:
            raise ValueError(f"Cell key must look like 'col:row': {text!r}")
        col, row = (int(part) for part in parts)
        return cls(row=row, col=col)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.key


@dataclass(frozen=True)
class FlowPairKey:
    """Composite key of an aggregated flow between two distinct cells."""

    origin: CellRef
    destination: CellRef

    @classmethod
    def directed(cls, origin: CellRef, destination: CellRef) -> "FlowPairKey":
        return cls(origin=origin, destination=destination)

    @classmethod
    def undirected(cls, origin: CellRef, destination: CellRef) -> "FlowPairKey":
        """Order-normalized key: the lexicographically smaller cell key goes first."""
        if origin.key < destination.key:
            return cls(origin=origin, destination=destination)
        return cls(origin=destination, destination=origin)

    @classmethod
    def for_trip(
        cls, origin: CellRef, destination: CellRef, *, undirected: bool
    ) -> "FlowPairKey":
        if undirected:
            return cls.undirected(origin, destination)
        return cls.directed(origin, destination)

    @property
    def pid(self) -> str:
        """String form used as the render ``pid`` property."""
        return f"{self.origin.key}>{self.destination.key}"

    @classmethod
    def parse(cls, text: str) -> "FlowPairKey":
        """Rebuild a key from its :attr:`pid` string, as carried by pointer events."""
        parts = str(text).strip().split(">")
        if len(parts) != 2:
            raise ValueError(f"Pair key must look like 'col:row>col:row': {text!r}")
        return cls(origin=CellRef.parse(parts[0]), destination=CellRef.parse(parts[1]))

    def touches(self, cell: CellRef) -> bool:
        return self.origin == cell or self.destination == cell

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.pid


@dataclass(frozen=True)
class GridEnvelope:
    """Bounding box and mean latitude over every endpoint of a raw dataset."""

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float
    mean_lat: float

    @property
    def lon_span(self) -> float:
        return self.max_lon - self.min_lon

    @property
    def lat_span(self) -> float:
        return self.max_lat - self.min_lat


__all__ = ["CellRef", "FlowPairKey", "GridEnvelope"]
