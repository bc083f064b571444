"""Tests for keyboard navigation between diagram items."""

from flowstate.diagram.navigation import (
    SelectableItem,
    edge_label_position,
    find_closest_in_direction,
    find_closest_node,
    navigate,
)
from flowstate.models.diagram import DiagramEdge, DiagramNode, Position


def _node(node_id: str, x: float, y: float, *, selected: bool = False) -> DiagramNode:
    return DiagramNode(node_id, "component", Position(x, y), 0, 0, selected=selected)


def _item(item_id: str, x: float, y: float) -> SelectableItem:
    return SelectableItem(item_id, "node", x, y)


def test_aligned_item_wins_over_closer_offset_item() -> None:
    items = [_item("b", 200, 0), _item("c", 150, 100)]
    assert find_closest_in_direction(0, 0, "right", items).id == "b"


def test_tolerance_widens_until_something_qualifies() -> None:
    items = [_item("c", 150, 100)]
    assert find_closest_in_direction(0, 0, "right", items).id == "c"


def test_items_behind_or_too_close_are_ignored() -> None:
    items = [_item("behind", -200, 0), _item("close", 10, 0)]
    assert find_closest_in_direction(0, 0, "right", items) is None
    assert find_closest_in_direction(0, 0, "left", items).id == "behind"


def test_ties_break_on_perpendicular_offset() -> None:
    items = [_item("off", 200, 30), _item("straight", 200, 0)]
    assert find_closest_in_direction(0, 0, "right", items).id == "straight"


def test_vertical_directions_use_screen_coordinates() -> None:
    items = [_item("above", 0, -100), _item("below", 0, 100)]
    assert find_closest_in_direction(0, 0, "up", items).id == "above"
    assert find_closest_in_direction(0, 0, "down", items).id == "below"


def test_diagonal_directions() -> None:
    items = [_item("se", 100, 100), _item("ne", 100, -100), _item("e", 100, 0)]
    assert find_closest_in_direction(0, 0, "down-right", items).id == "se"
    assert find_closest_in_direction(0, 0, "up-right", items).id == "ne"
    assert find_closest_in_direction(0, 0, "up-left", items) is None


def test_edge_label_position_is_curve_midpoint() -> None:
    nodes = [_node("a", 0, 0), _node("b", 200, 0)]
    edge = DiagramEdge("a->b", "a", "b", source_handle="right-1", target_handle="target-left-1")
    assert edge_label_position(edge, nodes) == Position(100, 0)


def test_navigate_moves_selection_to_neighbour() -> None:
    nodes = [_node("a", 0, 0, selected=True), _node("b", 200, 0), _node("c", 0, 200)]
    new_nodes, _ = navigate(nodes, [], "right")
    assert [n.id for n in new_nodes if n.selected] == ["b"]
    assert new_nodes[2] is nodes[2]


def test_navigate_can_land_on_an_edge() -> None:
    nodes = [_node("a", 0, 0, selected=True), _node("b", 0, 400)]
    edges = [DiagramEdge("a->b", "a", "b", source_handle="bottom-1", target_handle="target-top-1")]
    new_nodes, new_edges = navigate(nodes, edges, "down")
    assert not any(n.selected for n in new_nodes)
    assert new_edges[0].selected


def test_navigate_is_noop_when_editing_or_nothing_selected() -> None:
    nodes = [_node("a", 0, 0, selected=True), _node("b", 200, 0)]
    assert navigate(nodes, [], "right", editing=True) == (tuple(nodes), ())
    unselected = [_node("a", 0, 0), _node("b", 200, 0)]
    assert navigate(unselected, [], "right") == (tuple(unselected), ())


def test_find_closest_node_excludes_ids() -> None:
    nodes = [_node("a", 0, 0), _node("b", 50, 0), _node("c", 500, 0)]
    assert find_closest_node(40, 0, nodes).id == "b"
    assert find_closest_node(40, 0, nodes, exclude=["b"]).id == "a"
    assert find_closest_node(0, 0, []) is None
