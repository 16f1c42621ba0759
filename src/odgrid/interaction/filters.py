"""Compose interaction state into declarative per-layer filter expressions.

Expressions use the MapLibre JSON expression shape (``["all", ...]``,
``["==", ["get", "pid"], "0:0>1:1"]``) so a rendering surface can apply them
to already-uploaded sources. :func:`evaluate_filter` evaluates the same
subset in Python for headless rendering and tests.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from odgrid.grid.domain_types import CellRef

from .state import FOCUS_IN, FOCUS_OUT, InteractionState

LAYER_LINES = "od-grid-lines-layer"
LAYER_LINES_HL = "od-grid-lines-layer-hl"
LAYER_BUBBLES = "od-grid-bubbles-layer"
LAYER_BUBBLES_HL = "od-grid-bubbles-layer-hl"
LAYER_CELLS_FILL = "od-grid-cells-fill"
LAYER_CELLS_ALL_FILL = "od-grid-cells-all-fill"
LAYER_CELLS_HL = "od-grid-cells-hl"
LAYER_STOPS_O = "od-grid-stops-o"
LAYER_STOPS_D = "od-grid-stops-d"
LAYER_STOPS_OD = "od-grid-stops-od"
LAYER_STOPS_FOCUS_HL = "od-grid-stops-focus-hl"
LAYER_GRID = "od-grid-overlay-layer"

STOP_LAYERS = (LAYER_STOPS_O, LAYER_STOPS_D, LAYER_STOPS_OD, LAYER_STOPS_FOCUS_HL)

NONE_KEY = "__none__"
NONE_ROW = -9999

Expression = List[Any]


def _cell_match(cell: CellRef, row_prop: str = "row", col_prop: str = "col") -> Expression:
    return ["all", ["==", ["get", row_prop], cell.row], ["==", ["get", col_prop], cell.col]]


def _match_nothing() -> Expression:
    return ["==", ["get", "row"], NONE_ROW]


def weight_gate(state: InteractionState) -> Expression:
    return [">=", ["get", "weight"], state.min_weight_threshold]


def lines_filter(state: InteractionState) -> Expression:
    gate = weight_gate(state)
    if state.isolated_pair is not None:
        return ["all", gate, ["==", ["get", "pid"], state.isolated_pair.pid]]
    focus = state.focus_cell
    if focus is None:
        return gate
    origin_match = _cell_match(focus, "o_row", "o_col")
    dest_match = _cell_match(focus, "d_row", "d_col")
    if state.focus_direction == FOCUS_OUT:
        direction = origin_match
    elif state.focus_direction == FOCUS_IN:
        direction = dest_match
    else:
        direction = ["any", origin_match, dest_match]
    return ["all", gate, direction]


def lines_highlight_filter(state: InteractionState) -> Expression:
    target = state.isolated_pair or state.hovered_pair
    pid = target.pid if target is not None else NONE_KEY
    return ["all", lines_filter(state), ["==", ["get", "pid"], pid]]


def bubbles_filter(state: InteractionState) -> Expression:
    gate = weight_gate(state)
    if state.focus_cell is None:
        return gate
    return ["all", gate, _cell_match(state.focus_cell)]


def bubbles_highlight_filter(state: InteractionState) -> Expression:
    cid = state.hovered_bubble.key if state.hovered_bubble is not None else NONE_KEY
    return ["all", bubbles_filter(state), ["==", ["get", "cid"], cid]]


def cells_highlight_filter(state: InteractionState) -> Expression:
    target = state.hovered_cell or state.focus_cell
    if target is None:
        return _match_nothing()
    return _cell_match(target)


def stops_focus_filter(state: InteractionState) -> Expression:
    if state.focus_cell is None:
        return _match_nothing()
    return _cell_match(state.focus_cell)


def compose_filters(state: InteractionState) -> Dict[str, Expression]:
    """Layer id -> filter expression for the current state."""
    return {
        LAYER_LINES: lines_filter(state),
        LAYER_LINES_HL: lines_highlight_filter(state),
        LAYER_BUBBLES: bubbles_filter(state),
        LAYER_BUBBLES_HL: bubbles_highlight_filter(state),
        LAYER_CELLS_HL: cells_highlight_filter(state),
        LAYER_STOPS_FOCUS_HL: stops_focus_filter(state),
    }


# ----------------------------------------------------------------- evaluation
_COMPARATORS = {
    ">=": lambda a, b: a >= b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    "<": lambda a, b: a < b,
}


def evaluate_filter(expr: Any, properties: Optional[Mapping[str, Any]]) -> Any:
    """Evaluate a filter expression against one feature's properties."""
    props = properties or {}
    if not isinstance(expr, list):
        return expr
    if not expr:
        raise ValueError("Empty filter expression")
    op = expr[0]
    args = expr[1:]
    if op == "get":
        return props.get(args[0])
    if op == "literal":
        return args[0]
    if op == "all":
        return all(evaluate_filter(arg, props) for arg in args)
    if op == "any":
        return any(evaluate_filter(arg, props) for arg in args)
    if op == "!":
        return not evaluate_filter(args[0], props)
    if op in ("==", "!="):
        left = evaluate_filter(args[0], props)
        right = evaluate_filter(args[1], props)
        return (left == right) if op == "==" else (left != right)
    if op in _COMPARATORS:
        left = evaluate_filter(args[0], props)
        right = evaluate_filter(args[1], props)
        if left is None or right is None:
            return False
        try:
            return _COMPARATORS[op](left, right)
        except TypeError:
            return False
    raise ValueError(f"Unsupported filter operator: {op!r}")


__all__ = [
    "LAYER_BUBBLES",
    "LAYER_BUBBLES_HL",
    "LAYER_CELLS_ALL_FILL",
    "LAYER_CELLS_FILL",
    "LAYER_CELLS_HL",
    "LAYER_GRID",
    "LAYER_LINES",
    "LAYER_LINES_HL",
    "LAYER_STOPS_D",
    "LAYER_STOPS_FOCUS_HL",
    "LAYER_STOPS_O",
    "LAYER_STOPS_OD",
    "NONE_KEY",
    "STOP_LAYERS",
    "bubbles_filter",
    "bubbles_highlight_filter",
    "cells_highlight_filter",
    "compose_filters",
    "evaluate_filter",
    "lines_filter",
    "lines_highlight_filter",
    "stops_focus_filter",
]
