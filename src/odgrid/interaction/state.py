"""Hover / focus / isolation state owned by one engine session."""

from __future__ import annotations

import math
from typing import Dict, Optional

from odgrid.grid.domain_types import CellRef, FlowPairKey

FOCUS_ALL = "all"
FOCUS_OUT = "out"
FOCUS_IN = "in"
FOCUS_DIRECTIONS = (FOCUS_ALL, FOCUS_OUT, FOCUS_IN)

_DIRECTION_ALIASES: Dict[str, str] = {
    "all": FOCUS_ALL,
    "both": FOCUS_ALL,
    "out": FOCUS_OUT,
    "outbound": FOCUS_OUT,
    "outboundonly": FOCUS_OUT,
    "in": FOCUS_IN,
    "inbound": FOCUS_IN,
    "inboundonly": FOCUS_IN,
}

DEFAULT_MIN_WEIGHT = 1.0


def normalize_focus_direction(value: object) -> str:
    """Map ``all|out|in`` (and their long spellings) to the canonical token."""
    token = str(value or "").strip().replace("_", "").replace("-", "").lower()
    direction = _DIRECTION_ALIASES.get(token)
    if direction is None:
        raise ValueError(f"focus_direction must be one of {FOCUS_DIRECTIONS}: {value!r}")
    return direction


def _validate_threshold(value: float) -> float:
    threshold = float(value)
    if math.isnan(threshold):
        raise ValueError("min_weight_threshold cannot be NaN")
    return threshold


class InteractionState:
    """
    Selection state machine.

    ``focus_cell`` and ``isolated_pair`` are only written through the
    transition methods below, each of which clears the other field, so at
    most one of them is ever set.
    """

    def __init__(
        self,
        *,
        min_weight_threshold: float = DEFAULT_MIN_WEIGHT,
        focus_direction: str = FOCUS_ALL,
    ) -> None:
        self.min_weight_threshold = _validate_threshold(min_weight_threshold)
        self.focus_direction = normalize_focus_direction(focus_direction)
        self.hovered_pair: Optional[FlowPairKey] = None
        self.hovered_cell: Optional[CellRef] = None
        self.hovered_bubble: Optional[CellRef] = None
        self._focus_cell: Optional[CellRef] = None
        self._isolated_pair: Optional[FlowPairKey] = None

    # ---------------------------------------------------------------- selection
    @property
    def focus_cell(self) -> Optional[CellRef]:
        return self._focus_cell

    @property
    def isolated_pair(self) -> Optional[FlowPairKey]:
        return self._isolated_pair

    def isolate_pair(self, key: FlowPairKey) -> None:
        self._isolated_pair = key
        self._focus_cell = None

    def focus(self, cell: CellRef, direction: Optional[str] = None) -> None:
        if direction is not None:
            self.focus_direction = normalize_focus_direction(direction)
        self._focus_cell = cell
        self._isolated_pair = None

    def clear_focus(self) -> None:
        self._focus_cell = None

    def clear_isolation(self) -> None:
        self._isolated_pair = None

    def clear_selection(self) -> None:
        """Click on empty map space."""
        self._focus_cell = None
        self._isolated_pair = None

    # -------------------------------------------------------------------- hover
    def hover_pair(self, key: FlowPairKey) -> None:
        self.hovered_pair = key
        self.hovered_bubble = None

    def hover_bubble(self, cell: CellRef) -> None:
        self.hovered_bubble = cell
        self.hovered_pair = None

    def hover_stop(self) -> None:
        self.hovered_pair = None
        self.hovered_bubble = None

    def hover_cell(self, cell: CellRef) -> None:
        self.hovered_cell = cell

    def leave_pair(self) -> None:
        self.hovered_pair = None

    def leave_bubble(self) -> None:
        self.hovered_bubble = None

    def leave_cell(self) -> None:
        self.hovered_cell = None

    def leave_all(self) -> None:
        self.hovered_pair = None
        self.hovered_bubble = None
        self.hovered_cell = None

    # ------------------------------------------------------------------ settings
    def set_min_weight(self, value: float) -> None:
        self.min_weight_threshold = _validate_threshold(value)

    def set_focus_direction(self, direction: str) -> None:
        self.focus_direction = normalize_focus_direction(direction)

    def reset(self) -> None:
        """Drop hover and selection; keep threshold and focus direction."""
        self.leave_all()
        self.clear_selection()

    def snapshot(self) -> Dict[str, object]:
        return {
            "min_weight_threshold": self.min_weight_threshold,
            "focus_direction": self.focus_direction,
            "hovered_pair": self.hovered_pair.pid if self.hovered_pair else None,
            "hovered_cell": self.hovered_cell.key if self.hovered_cell else None,
            "hovered_bubble": self.hovered_bubble.key if self.hovered_bubble else None,
            "focus_cell": self._focus_cell.key if self._focus_cell else None,
            "isolated_pair": self._isolated_pair.pid if self._isolated_pair else None,
        }


__all__ = [
    "DEFAULT_MIN_WEIGHT",
    "FOCUS_ALL",
    "FOCUS_DIRECTIONS",
    "FOCUS_IN",
    "FOCUS_OUT",
    "InteractionState",
    "normalize_focus_direction",
]
