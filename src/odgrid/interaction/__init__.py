"""Interaction state machine and render filter composition."""

from .filters import compose_filters, evaluate_filter
from .state import (
    FOCUS_ALL,
    FOCUS_DIRECTIONS,
    FOCUS_IN,
    FOCUS_OUT,
    InteractionState,
    normalize_focus_direction,
)

__all__ = [
    "FOCUS_ALL",
    "FOCUS_DIRECTIONS",
    "FOCUS_IN",
    "FOCUS_OUT",
    "InteractionState",
    "compose_filters",
    "evaluate_filter",
    "normalize_focus_direction",
]
