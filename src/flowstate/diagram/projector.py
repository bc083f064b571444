"""Project threat model entities onto diagram nodes and edges.

Nodes and edges are regenerated from entities on load and patched by the
state core on edit. Nothing here reads diagram state back into the model
except ``compute_boundary_memberships``, which the core calls explicitly
after geometry changes.
"""

from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Any

from flowstate.config import COMPONENT_HEIGHT, COMPONENT_WIDTH
from flowstate.models.diagram import (
    ARROW_MARKER,
    BOUNDARY_NODE,
    COMPONENT_NODE,
    DiagramEdge,
    DiagramNode,
    Position,
)
from flowstate.models.threat_model import Boundary, Component, DataFlow, ThreatModel

DEFAULT_NODE_POSITION = Position(100, 100)
NODE_SPACING = 150
BOUNDARY_PADDING = 40
DEFAULT_BOUNDARY_WIDTH = 400
DEFAULT_BOUNDARY_HEIGHT = 300
TARGET_HANDLE_PREFIX = "target-"


def markers_for(direction: str | None) -> tuple[str | None, str]:
    """Return (start, end) arrow markers: bidirectional flows get both."""
    return (ARROW_MARKER if direction == "bidirectional" else None), ARROW_MARKER


def target_handle(point: str | None) -> str | None:
    return f"{TARGET_HANDLE_PREFIX}{point}" if point else None


def strip_target_prefix(handle: str | None) -> str | None:
    if handle and handle.startswith(TARGET_HANDLE_PREFIX):
        return handle[len(TARGET_HANDLE_PREFIX) :]
    return handle


def _component_position(component: Component, index: int) -> Position:
    if component.x is not None and component.y is not None:
        return Position(component.x, component.y)
    return Position(
        DEFAULT_NODE_POSITION.x + index * NODE_SPACING,
        DEFAULT_NODE_POSITION.y + index * NODE_SPACING,
    )


def component_node(component: Component, index: int = 0) -> DiagramNode:
    return DiagramNode(
        id=component.ref,
        type=COMPONENT_NODE,
        position=_component_position(component, index),
        width=COMPONENT_WIDTH,
        height=COMPONENT_HEIGHT,
        data={
            "label": component.name,
            "ref": component.ref,
            "description": component.description,
            "component_type": component.component_type,
            "assets": list(component.assets or ()),
        },
    )


def _bounding_box(
    member_refs: Iterable[str], components: Sequence[Component]
) -> tuple[Position, float, float] | None:
    members = set(member_refs)
    boxes = [
        _component_position(c, i) for i, c in enumerate(components) if c.ref in members
    ]
    if not boxes:
        return None
    min_x = min(p.x for p in boxes)
    min_y = min(p.y for p in boxes)
    max_x = max(p.x + COMPONENT_WIDTH for p in boxes)
    max_y = max(p.y + COMPONENT_HEIGHT for p in boxes)
    return (
        Position(min_x - BOUNDARY_PADDING, min_y - BOUNDARY_PADDING),
        max_x - min_x + 2 * BOUNDARY_PADDING,
        max_y - min_y + 2 * BOUNDARY_PADDING,
    )


def boundary_node(boundary: Boundary, components: Sequence[Component] = ()) -> DiagramNode:
    """Use the boundary's own geometry, else wrap its members, else a default box."""
    if None not in (boundary.x, boundary.y, boundary.width, boundary.height):
        position = Position(boundary.x, boundary.y)  # type: ignore[arg-type]
        width, height = float(boundary.width), float(boundary.height)  # type: ignore[arg-type]
    else:
        box = _bounding_box(boundary.components or (), components)
        if box is not None:
            position, width, height = box
        else:
            position = DEFAULT_NODE_POSITION
            width, height = DEFAULT_BOUNDARY_WIDTH, DEFAULT_BOUNDARY_HEIGHT
    return DiagramNode(
        id=boundary.ref,
        type=BOUNDARY_NODE,
        position=position,
        width=width,
        height=height,
        data={"label": boundary.name, "description": boundary.description},
    )


def data_flow_edge(flow: DataFlow) -> DiagramEdge:
    direction = flow.direction or "unidirectional"
    start, end = markers_for(direction)
    return DiagramEdge(
        id=flow.ref,
        source=flow.source,
        target=flow.destination,
        source_handle=flow.source_point,
        target_handle=target_handle(flow.destination_point),
        label=flow.label,
        marker_start=start,
        marker_end=end,
        data={"direction": direction, "label": flow.label, "edge_ref": flow.ref},
    )


def sort_nodes_by_render_order(nodes: Iterable[DiagramNode]) -> tuple[DiagramNode, ...]:
    """Unselected boundaries (largest first), then components, then selected boundaries."""
    nodes = list(nodes)
    background = sorted(
        (n for n in nodes if n.type == BOUNDARY_NODE and not n.selected),
        key=lambda n: n.area,
        reverse=True,
    )
    foreground = [n for n in nodes if n.type == BOUNDARY_NODE and n.selected]
    others = [n for n in nodes if n.type != BOUNDARY_NODE]
    return (*background, *others, *foreground)


def project_model(model: ThreatModel) -> tuple[tuple[DiagramNode, ...], tuple[DiagramEdge, ...]]:
    """Build the full diagram for a model."""
    nodes = [component_node(c, i) for i, c in enumerate(model.components)]
    nodes.extend(boundary_node(b, model.components) for b in model.boundaries)
    edges = tuple(data_flow_edge(f) for f in model.data_flows)
    return sort_nodes_by_render_order(nodes), edges


def patch_node(
    nodes: Sequence[DiagramNode], node_id: str, *, data: dict[str, Any] | None = None, **changes: Any
) -> tuple[DiagramNode, ...]:
    """Replace fields (and merge ``data`` keys) of one node; other nodes keep identity."""
    out = []
    for node in nodes:
        if node.id == node_id:
            if data:
                node = node.with_data(**data)
            if changes:
                node = replace(node, **changes)
        out.append(node)
    return tuple(out)


def patch_edge(
    edges: Sequence[DiagramEdge], edge_id: str, *, data: dict[str, Any] | None = None, **changes: Any
) -> tuple[DiagramEdge, ...]:
    out = []
    for edge in edges:
        if edge.id == edge_id:
            if data:
                changes["data"] = {**edge.data, **data}
            edge = replace(edge, **changes)
        out.append(edge)
    return tuple(out)


def select_only(
    nodes: Sequence[DiagramNode],
    edges: Sequence[DiagramEdge],
    *,
    node_id: str | None = None,
    edge_id: str | None = None,
) -> tuple[tuple[DiagramNode, ...], tuple[DiagramEdge, ...]]:
    """Select one node or edge and deselect everything else."""
    new_nodes = tuple(
        n if n.selected == (n.id == node_id) else replace(n, selected=n.id == node_id) for n in nodes
    )
    new_edges = tuple(
        e if e.selected == (e.id == edge_id) else replace(e, selected=e.id == edge_id) for e in edges
    )
    return new_nodes, new_edges


def is_component_inside_boundary(component: DiagramNode, boundary: DiagramNode) -> bool:
    """A component is inside when its centre lies within the boundary rectangle."""
    cx = component.position.x + COMPONENT_WIDTH / 2
    cy = component.position.y + COMPONENT_HEIGHT / 2
    left, top = boundary.position.x, boundary.position.y
    return left <= cx <= left + boundary.width and top <= cy <= top + boundary.height


def compute_boundary_memberships(nodes: Sequence[DiagramNode]) -> dict[str, tuple[str, ...]]:
    """Map each boundary id to the component ids whose centres it contains."""
    components = [n for n in nodes if n.type == COMPONENT_NODE]
    return {
        b.id: tuple(c.id for c in components if is_component_inside_boundary(c, b))
        for b in nodes
        if b.type == BOUNDARY_NODE
    }
