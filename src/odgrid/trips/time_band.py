"""Hour-of-day interval parsing and the time-band overlap filter."""

from __future__ import annotations

import math
import numbers
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from .trip_records import TripRecord

Interval = Tuple[float, float]

_HOUR_RE = re.compile(r"^(\d{1,2})(?::\d{2})?$")
_HHMM_RE = re.compile(r"^\d{3,4}$")
_BAND_RE = re.compile(r"^(\d{1,2})(?::?\d{2})?\s*-\s*(\d{1,2})(?::?\d{2})?$")


def parse_hour(value: object) -> Optional[float]:
    """
    Parse an hour token into a number.

    Accepts plain numbers, ``"7"``, ``"07:30"`` (minutes dropped) and
    ``"0730"``. Returns ``None`` when the token cannot be interpreted.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        numeric = float(value)
        return numeric if math.isfinite(numeric) else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    match = _HOUR_RE.match(text)
    if match:
        return float(match.group(1))
    if _HHMM_RE.match(text):
        return float(text[:-2])
    return None


def parse_band_text(text: object) -> Optional[Interval]:
    """Parse ``"7-9"``, ``"07:00-09:00"`` or ``"0700-0900"`` into an hour interval."""
    if text is None:
        return None
    match = _BAND_RE.match(str(text).strip())
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))


def extract_interval(properties: Optional[Mapping[str, object]]) -> Optional[Interval]:
    """Read a trip's interval from ``hour_start``/``hour_end`` or a band string."""
    if not properties:
        return None
    start = parse_hour(properties.get("hour_start"))
    end = parse_hour(properties.get("hour_end"))
    if start is not None and end is not None:
        return start, end
    band_text = properties.get("timeband")
    if band_text is None:
        band_text = properties.get("time")
    return parse_band_text(band_text)


def bands_overlap(a0: float, a1: float, b0: float, b1: float) -> bool:
    """Half-open overlap test: touching boundaries do not overlap."""
    return a0 < b1 and b0 < a1


@dataclass(frozen=True)
class TimeBand:
    """
    Active hour-of-day band ``[start_hour, end_hour)``.

    Bands must satisfy ``0 <= start_hour < end_hour <= 24``. Bands that wrap
    midnight such as ``"22-2"``, or that run past 24 h, raise ``ValueError``
    rather than selecting no trips.
    """

    start_hour: float
    end_hour: float

    def __post_init__(self) -> None:
        start = float(self.start_hour)
        end = float(self.end_hour)
        if not (math.isfinite(start) and math.isfinite(end)):
            raise ValueError("Time band bounds must be finite numbers")
        if start < 0 or end > 24:
            raise ValueError(f"Time band must lie within [0, 24]: {start}-{end}")
        if start >= end:
            raise ValueError(f"Time band start must be earlier than end: {start}-{end}")
        object.__setattr__(self, "start_hour", start)
        object.__setattr__(self, "end_hour", end)

    @classmethod
    def parse(cls, value: object) -> Optional["TimeBand"]:
        """
        Coerce configuration values into a band.

        ``None`` and ``""`` mean no filtering. Strings use the ``HH-HH`` form;
        two-element sequences are taken as ``[start, end]``.
        """
        if value is None or isinstance(value, TimeBand):
            return value
        if isinstance(value, str):
            if not value.strip():
                return None
            interval = parse_band_text(value)
            if interval is None:
                raise ValueError(f"Time band must use the HH-HH format: {value!r}")
            return cls(*interval)
        if isinstance(value, Sequence) and len(value) == 2:
            start = parse_hour(value[0])
            end = parse_hour(value[1])
            if start is None or end is None:
                raise ValueError(f"Time band bounds must be hours: {value!r}")
            return cls(start, end)
        raise TypeError(f"Unsupported time band value: {value!r}")

    def overlaps(self, interval: Optional[Interval]) -> bool:
        if interval is None:
            return False
        return bands_overlap(self.start_hour, self.end_hour, interval[0], interval[1])

    @property
    def label(self) -> str:
        return f"{self.start_hour:g}-{self.end_hour:g}"


def passes_time_band(record: "TripRecord", band: Optional[TimeBand]) -> bool:
    """``None`` includes everything; otherwise records without an interval fail closed."""
    if band is None:
        return True
    return band.overlaps(record.interval)


def filter_by_time_band(
    records: Iterable["TripRecord"], band: Optional[TimeBand]
) -> Iterator["TripRecord"]:
    for record in records:
        if passes_time_band(record, band):
            yield record


__all__ = [
    "TimeBand",
    "bands_overlap",
    "extract_interval",
    "filter_by_time_band",
    "parse_band_text",
    "parse_hour",
    "passes_time_band",
]
