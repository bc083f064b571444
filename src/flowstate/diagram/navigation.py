"""Keyboard navigation between diagram nodes and edges.

Nodes are located at their centre, edges at the midpoint of their bezier
curve (where the label is drawn). Moving in a direction picks the nearest
item along that axis, widening the perpendicular tolerance step by step
until something qualifies.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Literal

from flowstate.diagram.projector import strip_target_prefix
from flowstate.models.diagram import DiagramEdge, DiagramNode, Position

NavigationDirection = Literal[
    "left", "right", "up", "down", "up-left", "up-right", "down-left", "down-right"
]

MIN_DISTANCE = 20
MAX_TOLERANCE = 500
TOLERANCE_STEP = 50
CONTROL_OFFSET = 50

_DIAGONAL_ANGLES: dict[str, float] = {
    "up-right": -math.pi / 4,
    "down-right": math.pi / 4,
    "down-left": 3 * math.pi / 4,
    "up-left": -3 * math.pi / 4,
}

_HANDLE_OFFSETS: dict[str, tuple[int, int]] = {
    "top": (0, -CONTROL_OFFSET),
    "bottom": (0, CONTROL_OFFSET),
    "left": (-CONTROL_OFFSET, 0),
    "right": (CONTROL_OFFSET, 0),
}


@dataclass(frozen=True)
class SelectableItem:
    id: str
    kind: Literal["node", "edge"]
    x: float
    y: float


def _handle_side(handle: str | None) -> str:
    side = (strip_target_prefix(handle) or "").split("-", 1)[0]
    return side if side in _HANDLE_OFFSETS else "right"


def edge_label_position(edge: DiagramEdge, nodes: Sequence[DiagramNode]) -> Position:
    """Midpoint (t=0.5) of the cubic bezier between the two node centres."""
    by_id = {n.id: n for n in nodes}
    source, target = by_id.get(edge.source), by_id.get(edge.target)
    if source is None or target is None:
        return Position(0, 0)

    p0, p3 = source.center, target.center
    sdx, sdy = _HANDLE_OFFSETS[_handle_side(edge.source_handle)]
    tdx, tdy = _HANDLE_OFFSETS[_handle_side(edge.target_handle)]
    p1 = Position(p0.x + sdx, p0.y + sdy)
    p2 = Position(p3.x + tdx, p3.y + tdy)
    return Position(
        0.125 * p0.x + 0.375 * p1.x + 0.375 * p2.x + 0.125 * p3.x,
        0.125 * p0.y + 0.375 * p1.y + 0.375 * p2.y + 0.125 * p3.y,
    )


def selectable_items(nodes: Sequence[DiagramNode], edges: Sequence[DiagramEdge]) -> list[SelectableItem]:
    items = [SelectableItem(n.id, "node", n.center.x, n.center.y) for n in nodes]
    for edge in edges:
        pos = edge_label_position(edge, nodes)
        items.append(SelectableItem(edge.id, "edge", pos.x, pos.y))
    return items


def _candidate(
    dx: float, dy: float, direction: str, tolerance: float, min_distance: float
) -> tuple[float, float] | None:
    """Return (primary distance, perpendicular offset) if the delta qualifies."""
    if direction in _DIAGONAL_ANGLES:
        distance = math.hypot(dx, dy)
        diff = abs(math.atan2(dy, dx) - _DIAGONAL_ANGLES[direction])
        if diff > math.pi:
            diff = 2 * math.pi - diff
        angular_tolerance = math.pi / 6 + (tolerance / MAX_TOLERANCE) * (math.pi / 6)
        if diff <= angular_tolerance and distance >= min_distance:
            return distance, diff
        return None

    if direction in ("left", "right"):
        primary, perpendicular, forward = abs(dx), abs(dy), (dx < 0 if direction == "left" else dx > 0)
    else:
        primary, perpendicular, forward = abs(dy), abs(dx), (dy < 0 if direction == "up" else dy > 0)
    if forward and primary >= min_distance and perpendicular <= tolerance:
        return primary, perpendicular
    return None


def find_closest_in_direction(
    x: float,
    y: float,
    direction: NavigationDirection,
    items: Sequence[SelectableItem],
    *,
    min_distance: float = MIN_DISTANCE,
    max_tolerance: float = MAX_TOLERANCE,
    tolerance_step: float = TOLERANCE_STEP,
) -> SelectableItem | None:
    """Find the nearest item in ``direction`` from (x, y).

    Args:
        x: Current x (centre of the selected item).
        y: Current y.
        direction: Cardinal or diagonal direction.
        items: Candidates, excluding the current item.
        min_distance: Items closer than this along the primary axis are ignored.
        max_tolerance: Largest perpendicular tolerance tried.
        tolerance_step: Tolerance increment per pass.

    Returns:
        The item with the smallest primary distance within the first
        tolerance band that has any candidate (ties go to the smaller
        perpendicular offset), or None.
    """
    tolerance = tolerance_step
    while tolerance <= max_tolerance:
        best: tuple[float, float] | None = None
        best_item: SelectableItem | None = None
        for item in items:
            score = _candidate(item.x - x, item.y - y, direction, tolerance, min_distance)
            if score is not None and (best is None or score < best):
                best, best_item = score, item
        if best_item is not None:
            return best_item
        tolerance += tolerance_step
    return None


def find_closest_node(
    x: float, y: float, nodes: Sequence[DiagramNode], *, exclude: Sequence[str] = ()
) -> DiagramNode | None:
    """Nearest node centre by Euclidean distance."""
    candidates = [n for n in nodes if n.id not in exclude]
    if not candidates:
        return None
    return min(candidates, key=lambda n: math.hypot(n.center.x - x, n.center.y - y))


def navigate(
    nodes: Sequence[DiagramNode],
    edges: Sequence[DiagramEdge],
    direction: NavigationDirection,
    *,
    editing: bool = False,
) -> tuple[tuple[DiagramNode, ...], tuple[DiagramEdge, ...]]:
    """Move the selection one step in ``direction``.

    Returns the inputs unchanged (as tuples) when editing, when nothing is
    selected, or when no item lies in that direction.
    """
    unchanged = tuple(nodes), tuple(edges)
    if editing:
        return unchanged

    selected_node = next((n for n in nodes if n.selected), None)
    selected_edge = next((e for e in edges if e.selected), None)
    if selected_node is not None:
        origin, current = selected_node.center, ("node", selected_node.id)
    elif selected_edge is not None:
        origin, current = edge_label_position(selected_edge, nodes), ("edge", selected_edge.id)
    else:
        return unchanged

    items = [i for i in selectable_items(nodes, edges) if (i.kind, i.id) != current]
    target = find_closest_in_direction(origin.x, origin.y, direction, items)
    if target is None:
        return unchanged

    new_nodes = tuple(
        n if n.selected == (target.kind == "node" and n.id == target.id)
        else replace(n, selected=not n.selected)
        for n in nodes
    )
    new_edges = tuple(
        e if e.selected == (target.kind == "edge" and e.id == target.id)
        else replace(e, selected=not e.selected)
        for e in edges
    )
    return new_nodes, new_edges
