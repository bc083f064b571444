"""Diagram nodes and edges, and the snapshot of all four state parts."""

from dataclasses import dataclass, field, replace
from typing import Any

from flowstate.models.threat_model import ThreatModel

COMPONENT_NODE = "component"
BOUNDARY_NODE = "boundary"
DATA_FLOW_EDGE = "data_flow"
ARROW_MARKER = "arrowclosed"

# Interaction-only flags carried in node data; never part of history.
TRANSIENT_NODE_FLAGS: tuple[str, ...] = (
    "is_focused_for_connection",
    "focused_handle_id",
    "is_in_data_flow_creation",
    "is_handle_selection_mode",
    "is_dragging_node",
)


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class DiagramNode:
    """Presentation of a component or boundary; ``id`` equals the entity ref."""

    id: str
    type: str
    position: Position
    width: float
    height: float
    data: dict[str, Any] = field(default_factory=dict)
    selected: bool = False

    @property
    def center(self) -> Position:
        return Position(self.position.x + self.width / 2, self.position.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def with_data(self, **changes: Any) -> "DiagramNode":
        return replace(self, data={**self.data, **changes})


@dataclass(frozen=True)
class DiagramEdge:
    """Presentation of a data flow; ``id`` equals the data-flow ref."""

    id: str
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None
    label: str | None = None
    marker_start: str | None = None
    marker_end: str | None = ARROW_MARKER
    type: str = DATA_FLOW_EDGE
    data: dict[str, Any] = field(default_factory=dict)
    selected: bool = False


def strip_transient(node: DiagramNode) -> DiagramNode:
    if not any(flag in node.data for flag in TRANSIENT_NODE_FLAGS):
        return node
    return replace(node, data={k: v for k, v in node.data.items() if k not in TRANSIENT_NODE_FLAGS})


@dataclass(frozen=True)
class Snapshot:
    """Immutable capture of the document, diagram, and text at one point in time."""

    model: ThreatModel
    nodes: tuple[DiagramNode, ...]
    edges: tuple[DiagramEdge, ...]
    text: str

    @classmethod
    def capture(
        cls,
        model: ThreatModel,
        nodes: tuple[DiagramNode, ...],
        edges: tuple[DiagramEdge, ...],
        text: str,
    ) -> "Snapshot":
        return cls(model, tuple(strip_transient(n) for n in nodes), edges, text)
