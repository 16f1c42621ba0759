"""Deterministic curved flow geometry for visually separating overlapping flows."""

from __future__ import annotations

import math
from typing import List, Tuple

import numpy as np

Coordinate = Tuple[float, float]

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
MIN_DISTANCE = 1e-9
BASE_BOW = 0.2
BOW_RANGE = 0.18
DEFAULT_STEPS = 16


def fnv1a_unit(text: str) -> float:
    """32-bit FNV-1a hash of ``text`` scaled to ``[0, 1]``."""
    h = FNV_OFFSET_BASIS
    for char in text:
        h ^= ord(char)
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h / 0xFFFFFFFF


def control_point(a: Coordinate, b: Coordinate, seed_key: str) -> Coordinate:
    """Midpoint pushed along the segment normal by a seed-derived signed offset."""
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    dist = math.hypot(dx, dy) or MIN_DISTANCE
    nx, ny = -dy / dist, dx / dist
    r = fnv1a_unit(seed_key)
    sign = -1.0 if r < 0.5 else 1.0
    amp = dist * (BASE_BOW + BOW_RANGE * ((r * 2) % 1))
    mid_x = (a[0] + b[0]) / 2
    mid_y = (a[1] + b[1]) / 2
    return mid_x + sign * nx * amp, mid_y + sign * ny * amp


def curved_coords(
    a: Coordinate, b: Coordinate, seed_key: str, steps: int = DEFAULT_STEPS
) -> List[Coordinate]:
    """
    Sample a quadratic Bezier arc from ``a`` to ``b``.

    Returns ``steps + 1`` points including both endpoints. The same
    ``seed_key`` always yields the same arc, so overlays drawn on a later
    pass line up with the base geometry.
    """
    if steps < 1:
        raise ValueError("steps must be at least 1.")
    ctrl = control_point(a, b, seed_key)
    t = np.arange(steps + 1, dtype=float) / steps
    u = 1.0 - t
    xs = u * u * a[0] + 2 * u * t * ctrl[0] + t * t * b[0]
    ys = u * u * a[1] + 2 * u * t * ctrl[1] + t * t * b[1]
    return [(float(x), float(y)) for x, y in zip(xs, ys)]


__all__ = ["control_point", "curved_coords", "fnv1a_unit"]
