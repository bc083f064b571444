"""Tests for projecting the model onto diagram nodes and edges."""

from flowstate.diagram.projector import (
    compute_boundary_memberships,
    patch_node,
    project_model,
    select_only,
    sort_nodes_by_render_order,
)
from flowstate.models.diagram import ARROW_MARKER, BOUNDARY_NODE, COMPONENT_NODE, Position
from flowstate.models.threat_model import Boundary, Component, DataFlow, ThreatModel
from flowstate.text.codec import parse_model


def test_project_model_builds_nodes_and_edges(sample_text: str) -> None:
    nodes, edges = project_model(parse_model(sample_text))
    assert [n.id for n in nodes] == ["boundary-1", "web", "api", "db"]

    web = next(n for n in nodes if n.id == "web")
    assert web.type == COMPONENT_NODE
    assert web.position == Position(100, 100)
    assert (web.width, web.height) == (140, 80)
    assert web.data["label"] == "Web App"
    assert web.data["assets"] == ["A01"]

    edge = edges[0]
    assert (edge.id, edge.source, edge.target) == ("web->api", "web", "api")
    assert edge.source_handle == "right-1"
    assert edge.target_handle == "target-left-1"
    assert edge.marker_start is None
    assert edge.marker_end == ARROW_MARKER
    assert edge.data == {"direction": "unidirectional", "label": "DF1", "edge_ref": "web->api"}


def test_bidirectional_edge_has_both_markers() -> None:
    model = ThreatModel(
        components=(Component("a", "A"), Component("b", "B")),
        data_flows=(DataFlow("a<->b", "a", "b", direction="bidirectional"),),
    )
    _, edges = project_model(model)
    assert edges[0].marker_start == ARROW_MARKER


def test_components_without_position_are_staggered() -> None:
    model = ThreatModel(components=(Component("a", "A"), Component("b", "B")))
    nodes, _ = project_model(model)
    assert [n.position for n in nodes] == [Position(100, 100), Position(250, 250)]


def test_boundary_without_geometry_wraps_members() -> None:
    model = ThreatModel(
        components=(Component("a", "A", x=100, y=100), Component("b", "B", x=300, y=200)),
        boundaries=(Boundary("b1", "Zone", components=("a", "b")),),
    )
    nodes, _ = project_model(model)
    boundary = next(n for n in nodes if n.type == BOUNDARY_NODE)
    assert boundary.position == Position(60, 60)
    assert (boundary.width, boundary.height) == (420, 260)


def test_boundary_without_geometry_or_members_gets_default_box() -> None:
    nodes, _ = project_model(ThreatModel(boundaries=(Boundary("b1", "Zone"),)))
    assert nodes[0].position == Position(100, 100)
    assert (nodes[0].width, nodes[0].height) == (400, 300)


def test_render_order_puts_selected_boundaries_last(sample_text: str) -> None:
    nodes, _ = project_model(parse_model(sample_text))
    nodes = patch_node(nodes, "boundary-1", selected=True)
    assert [n.id for n in sort_nodes_by_render_order(nodes)] == ["web", "api", "db", "boundary-1"]


def test_boundary_memberships_use_component_centres(sample_text: str) -> None:
    nodes, _ = project_model(parse_model(sample_text))
    assert compute_boundary_memberships(nodes) == {"boundary-1": ("api", "db")}
    moved = patch_node(nodes, "web", position=Position(450, 250))
    assert compute_boundary_memberships(moved) == {"boundary-1": ("web", "api", "db")}


def test_select_only_keeps_identity_of_unchanged(sample_text: str) -> None:
    nodes, edges = project_model(parse_model(sample_text))
    new_nodes, new_edges = select_only(nodes, edges, node_id="api")
    assert [n.id for n in new_nodes if n.selected] == ["api"]
    assert new_nodes[1] is nodes[1]
    assert new_edges[0] is edges[0]
