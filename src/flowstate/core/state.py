"""Document state core: one owner for the model, the diagram, and the text.

Every public mutation runs inside ``operation()``. An operation writes the
model first, then the diagram, then the text, and ends with exactly one
history entry. If the body raises, all four parts are put back to their
values from before the operation.

Drags and arrow-key nudges move diagram nodes only; the model and text
catch up in a single commit at drag stop or when the nudge debounce fires.
"""

from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any

from loguru import logger

from flowstate.config import NUDGE_FLUSH_DELAY_MS
from flowstate.core import fields as cow
from flowstate.core.history import History
from flowstate.core.refs import (
    generate_data_flow_ref,
    generate_unique_name,
    generate_unique_ref,
    next_data_flow_label,
)
from flowstate.core.scheduling import LoopScheduler
from flowstate.diagram import navigation
from flowstate.diagram.navigation import NavigationDirection, find_closest_node
from flowstate.diagram.projector import (
    boundary_node,
    compute_boundary_memberships,
    component_node,
    data_flow_edge,
    markers_for,
    patch_edge,
    patch_node,
    project_model,
    select_only,
    sort_nodes_by_render_order,
    strip_target_prefix,
    target_handle,
)
from flowstate.models.diagram import (
    COMPONENT_NODE,
    DiagramEdge,
    DiagramNode,
    Position,
    Snapshot,
)
from flowstate.models.threat_model import (
    COMPONENT_TYPES,
    DIRECTIONS,
    Asset,
    Boundary,
    Component,
    Control,
    DataFlow,
    Threat,
    ThreatModel,
    entity_to_dict,
)
from flowstate.protocols import Scheduler, TimerHandle
from flowstate.text import sync
from flowstate.text.codec import parse_model

DRAG_SELECTION = "selection"
ARROW_KEYS = frozenset({"ArrowUp", "ArrowDown", "ArrowLeft", "ArrowRight"})

SCALAR_FIELDS: dict[str, tuple[str, ...]] = {
    "assets": ("name", "description"),
    "threats": ("name", "description", "status", "status_link", "status_note"),
    "controls": ("name", "description", "status", "status_link", "status_note"),
}
ARRAY_FIELDS: dict[str, tuple[str, ...]] = {
    "threats": ("affected_components", "affected_data_flows", "affected_assets"),
    "controls": ("mitigates", "implemented_in"),
}

# Fields that may hold a ref of the given collection, cleaned when it is deleted.
_DEPENDENT_FIELDS: dict[str, tuple[str, ...]] = {
    "components": ("components", "affected_components", "implemented_in"),
    "data_flows": ("affected_data_flows",),
    "assets": ("assets", "affected_assets"),
    "threats": ("mitigates",),
    "controls": (),
    "boundaries": (),
}

_GENERATED_REFS = ("components", "boundaries", "assets", "threats", "controls")

TextListener = Callable[[str, str], None]


@dataclass(frozen=True)
class _Raw:
    model: ThreatModel
    nodes: tuple[DiagramNode, ...]
    edges: tuple[DiagramEdge, ...]
    text: str


def _unselected(snapshot: Snapshot) -> tuple[Any, ...]:
    return (
        snapshot.model,
        snapshot.text,
        tuple(replace(n, selected=False) if n.selected else n for n in snapshot.nodes),
        tuple(replace(e, selected=False) if e.selected else e for e in snapshot.edges),
    )


class DocumentState:
    """Synchronized model, diagram, and text for one open document."""

    def __init__(
        self,
        text: str,
        *,
        scheduler: Scheduler | None = None,
        nudge_delay_ms: float = NUDGE_FLUSH_DELAY_MS,
    ) -> None:
        self.model = parse_model(text)
        self.nodes, self.edges = project_model(self.model)
        self.text = text
        self.history = History(self._restore)
        self.dragging: str | None = None

        self._scheduler = scheduler or LoopScheduler()
        self._nudge_delay_ms = nudge_delay_ms
        self._nudge_timer: TimerHandle | None = None
        self._pending_nudges: set[str] = set()
        self._listeners: list[TextListener] = []
        self._depth = 0
        # Refs handed out or loaded this session; deleted refs are never handed out again.
        self._issued_refs: dict[str, set[str]] = {c: set(self.model.refs(c)) for c in _GENERATED_REFS}

        self._handlers: dict[tuple[str, str], cow.FieldHandler] = {}
        for collection, names in SCALAR_FIELDS.items():
            for name in names:
                self._handlers[collection, name] = cow.make_scalar_updater(
                    collection, name, update_model=self._update_model, update_text=self._update_text
                )
        for collection, names in ARRAY_FIELDS.items():
            for name in names:
                self._handlers[collection, name] = cow.make_array_updater(
                    collection, name, update_model=self._update_model, update_text=self._update_text
                )

        self.history.record_state(self.snapshot())

    # --- plumbing ---

    def snapshot(self) -> Snapshot:
        return Snapshot.capture(self.model, self.nodes, self.edges, self.text)

    def subscribe(self, listener: TextListener) -> None:
        """Call ``listener(name, text)`` whenever the text changes."""
        self._listeners.append(listener)

    def close(self) -> None:
        """Cancel pending timers and drop listeners."""
        if self._nudge_timer is not None:
            self._nudge_timer.cancel()
            self._nudge_timer = None
        self._pending_nudges.clear()
        self._listeners.clear()

    def _update_model(self, fn: cow.ModelUpdate) -> None:
        self.model = fn(self.model)

    def _update_text(self, fn: cow.TextUpdate) -> None:
        self.text = fn(self.text)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.model.name, self.text)

    def _record_if_changed(self) -> None:
        current = self.snapshot()
        present = self.history.present
        if present is None or _unselected(present) != _unselected(current):
            self.history.record_state(current)

    def _set_raw(self, raw: _Raw) -> None:
        self.model, self.nodes, self.edges, self.text = raw.model, raw.nodes, raw.edges, raw.text

    @contextmanager
    def operation(self, label: str, *, record_before: bool = True) -> Iterator[None]:
        """Group writes into one atomic, undoable step.

        Nested operations join the outermost one. Pending nudges are committed
        as their own step first. Exceptions from the body roll every part
        back, are logged, and are not re-raised.
        """
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        if self._pending_nudges:
            self.flush_nudges()
        before = _Raw(self.model, self.nodes, self.edges, self.text)
        if record_before:
            self._record_if_changed()
        self._depth = 1
        try:
            yield
        except Exception:
            self._set_raw(before)
            logger.exception("Edit {!r} failed, state rolled back", label)
            return
        finally:
            self._depth = 0

        self._record_if_changed()
        logger.debug("Committed {!r}", label)
        if self.text != before.text:
            self._notify()

    def _restore(self, snapshot: Snapshot) -> None:
        text_changed = snapshot.text != self.text
        self.dragging = None
        self.model, self.nodes, self.edges, self.text = (
            snapshot.model,
            snapshot.nodes,
            snapshot.edges,
            snapshot.text,
        )
        if text_changed:
            self._notify()

    # --- history ---

    def undo(self) -> bool:
        if self.dragging is not None:
            return False
        self.flush_nudges()
        return self.history.undo()

    def redo(self) -> bool:
        if self.dragging is not None:
            return False
        self.flush_nudges()
        return self.history.redo()

    # --- top-level fields ---

    def set_model_name(self, name: str) -> None:
        with self.operation("model name"):
            self.model = replace(self.model, name=name)
            self.text = sync.update_top_level_field(self.text, "name", name)

    def set_model_description(self, description: str | None) -> None:
        with self.operation("model description"):
            self.model = replace(self.model, description=description)
            self.text = sync.update_top_level_field(self.text, "description", description)

    def set_participants(self, participants: Sequence[str]) -> None:
        normalized = cow.normalize_array(participants)
        with self.operation("participants"):
            self.model = replace(self.model, participants=normalized)
            self.text = sync.update_top_level_field(self.text, "participants", normalized)

    # --- entity fields ---

    def set_field(self, collection: str, ref: str, field: str, value: Any) -> None:
        """Edit one field of one entity, dispatching to the matching operation."""
        handler = self._handlers.get((collection, field))
        if handler is not None:
            with self.operation(f"{collection}.{field}"):
                handler(ref, value)
            return

        setters: dict[tuple[str, str], Callable[[str, Any], None]] = {
            ("components", "name"): self.set_component_name,
            ("components", "component_type"): self.set_component_type,
            ("components", "description"): self.set_component_description,
            ("components", "assets"): self.set_component_assets,
            ("boundaries", "name"): self.set_boundary_name,
            ("boundaries", "description"): self.set_boundary_description,
            ("data_flows", "label"): self.set_data_flow_label,
            ("data_flows", "direction"): self.set_data_flow_direction,
        }
        setter = setters.get((collection, field))
        if setter is None:
            msg = f"Field {field!r} of {collection!r} is not editable"
            raise ValueError(msg)
        setter(ref, value)

    def _edit_entity(
        self,
        collection: str,
        ref: str,
        changes: Mapping[str, Any],
        *,
        node: Mapping[str, Any] | None = None,
        node_data: Mapping[str, Any] | None = None,
        edge_data: Mapping[str, Any] | None = None,
        recompute_membership: bool = False,
    ) -> None:
        if cow.find_entity(self.model, collection, ref) is None:
            return
        with self.operation(f"{collection}.{','.join(changes)}"):
            model = cow.replace_entity(self.model, collection, ref, **changes)
            nodes = self.nodes
            if node or node_data:
                nodes = patch_node(nodes, ref, data=dict(node_data or {}), **dict(node or {}))
            text = self.text
            for name, value in changes.items():
                text = sync.update_field(text, collection, ref, name, value)
            if recompute_membership:
                model, text = self._apply_memberships(model, nodes, text)

            self.model = model
            self.nodes = nodes
            if edge_data is not None:
                self.edges = patch_edge(self.edges, ref, data=dict(edge_data), label=edge_data.get("label"))
            self.text = text

    def set_component_name(self, ref: str, name: str) -> None:
        self._edit_entity("components", ref, {"name": name}, node_data={"label": name})

    def set_component_type(self, ref: str, component_type: str) -> None:
        if component_type not in COMPONENT_TYPES:
            msg = f"Unknown component type {component_type!r}, expected one of {COMPONENT_TYPES}"
            raise ValueError(msg)
        self._edit_entity(
            "components", ref, {"component_type": component_type}, node_data={"component_type": component_type}
        )

    def set_component_description(self, ref: str, description: str | None) -> None:
        self._edit_entity(
            "components", ref, {"description": description}, node_data={"description": description}
        )

    def set_component_assets(self, ref: str, assets: Sequence[str] | None) -> None:
        normalized = cow.normalize_array(assets)
        self._edit_entity(
            "components", ref, {"assets": normalized}, node_data={"assets": list(normalized or ())}
        )

    def set_boundary_name(self, ref: str, name: str) -> None:
        self._edit_entity("boundaries", ref, {"name": name}, node_data={"label": name})

    def set_boundary_description(self, ref: str, description: str | None) -> None:
        self._edit_entity(
            "boundaries", ref, {"description": description}, node_data={"description": description}
        )

    def resize_boundary(
        self,
        ref: str,
        width: float,
        height: float,
        *,
        x: float | None = None,
        y: float | None = None,
    ) -> None:
        """Commit a boundary resize (and the move when resizing from a top or left edge)."""
        changes: dict[str, Any] = {"width": round(width), "height": round(height)}
        node: dict[str, Any] = {"width": changes["width"], "height": changes["height"]}
        if x is not None and y is not None:
            changes = {"x": round(x), "y": round(y), **changes}
            node["position"] = Position(changes["x"], changes["y"])
        self._edit_entity("boundaries", ref, changes, node=node, recompute_membership=True)

    def set_data_flow_label(self, ref: str, label: str | None) -> None:
        self._edit_entity("data_flows", ref, {"label": label}, edge_data={"label": label})

    # --- data-flow direction and endpoints ---

    def _other_flow_refs(self, ref: str) -> list[str]:
        return [r for r in self.model.refs("data_flows") if r != ref]

    def set_data_flow_direction(self, ref: str, direction: str) -> None:
        """Change direction; a changed derived ref is renamed everywhere in the same step."""
        if direction not in DIRECTIONS:
            msg = f"Unknown direction {direction!r}, expected one of {DIRECTIONS}"
            raise ValueError(msg)
        flow: DataFlow | None = cow.find_entity(self.model, "data_flows", ref)
        if flow is None or (flow.direction or "unidirectional") == direction:
            return

        new_ref = generate_data_flow_ref(
            flow.source, flow.destination, direction, self._other_flow_refs(ref)
        )
        start, end = markers_for(direction)
        with self.operation("data flow direction"):
            model = cow.replace_entity(self.model, "data_flows", ref, ref=new_ref, direction=direction)
            self.model = cow.rename_in_field(model, "threats", "affected_data_flows", ref, new_ref)
            self.edges = patch_edge(
                self.edges,
                ref,
                id=new_ref,
                marker_start=start,
                marker_end=end,
                data={"direction": direction, "edge_ref": new_ref},
            )
            text = sync.update_field(self.text, "data_flows", ref, "direction", direction)
            if new_ref != ref:
                text = sync.rename_reference(text, ref, new_ref)
            self.text = text

    def toggle_direction_and_reverse(self, ref: str) -> None:
        """Make a bidirectional flow unidirectional with its endpoints swapped.

        A unidirectional flow simply becomes bidirectional.
        """
        flow: DataFlow | None = cow.find_entity(self.model, "data_flows", ref)
        if flow is None:
            return
        if not flow.is_bidirectional:
            self.set_data_flow_direction(ref, "bidirectional")
            return

        swapped = {
            "source": flow.destination,
            "destination": flow.source,
            "source_point": flow.destination_point,
            "destination_point": flow.source_point,
            "direction": "unidirectional",
        }
        new_ref = generate_data_flow_ref(
            flow.destination, flow.source, "unidirectional", self._other_flow_refs(ref)
        )
        start, end = markers_for("unidirectional")
        with self.operation("reverse data flow"):
            model = cow.replace_entity(self.model, "data_flows", ref, ref=new_ref, **swapped)
            self.model = cow.rename_in_field(model, "threats", "affected_data_flows", ref, new_ref)
            self.edges = patch_edge(
                self.edges,
                ref,
                id=new_ref,
                source=flow.destination,
                target=flow.source,
                source_handle=flow.destination_point,
                target_handle=target_handle(flow.source_point),
                marker_start=start,
                marker_end=end,
                data={"direction": "unidirectional", "edge_ref": new_ref},
            )
            text = self.text
            for name, value in swapped.items():
                text = sync.update_field(text, "data_flows", ref, name, value)
            if new_ref != ref:
                text = sync.rename_reference(text, ref, new_ref)
            self.text = text

    def connect(self, connection: Mapping[str, Any]) -> str | None:
        """Create a data flow between two components; returns its ref.

        Self-connections and connections to unknown components are ignored.
        """
        source, target = connection.get("source"), connection.get("target")
        component_refs = set(self.model.refs("components"))
        if not source or not target or source == target:
            return None
        if source not in component_refs or target not in component_refs:
            return None

        ref = generate_data_flow_ref(source, target, "unidirectional", self.model.refs("data_flows"))
        flow = DataFlow(
            ref=ref,
            source=source,
            destination=target,
            source_point=connection.get("source_handle") or None,
            destination_point=strip_target_prefix(connection.get("target_handle")) or None,
            direction="unidirectional",
            label=next_data_flow_label(len(self.model.data_flows)),
        )
        with self.operation("connect"):
            self.model = cow.append_entity(self.model, "data_flows", flow)
            self.nodes, edges = select_only(self.nodes, self.edges)
            self.edges = (*edges, replace(data_flow_edge(flow), selected=True))
            self.text = sync.append_item(self.text, "data_flows", entity_to_dict(flow))
        return ref

    def reconnect(self, edge_id: str, connection: Mapping[str, Any]) -> str | None:
        """Move an existing flow to new endpoints; returns the (possibly renamed) ref."""
        flow: DataFlow | None = cow.find_entity(self.model, "data_flows", edge_id)
        source, target = connection.get("source"), connection.get("target")
        if flow is None or not source or not target or source == target:
            return None

        source_point = connection.get("source_handle") or None
        destination_point = strip_target_prefix(connection.get("target_handle")) or None
        new_ref = generate_data_flow_ref(source, target, flow.direction, self._other_flow_refs(edge_id))
        endpoints = {
            "source": source,
            "destination": target,
            "source_point": source_point,
            "destination_point": destination_point,
        }
        with self.operation("reconnect"):
            model = cow.replace_entity(self.model, "data_flows", edge_id, ref=new_ref, **endpoints)
            self.model = cow.rename_in_field(model, "threats", "affected_data_flows", edge_id, new_ref)
            self.edges = patch_edge(
                self.edges,
                edge_id,
                id=new_ref,
                source=source,
                target=target,
                source_handle=source_point,
                target_handle=target_handle(destination_point),
                data={"edge_ref": new_ref},
            )
            text = self.text
            for name, value in endpoints.items():
                text = sync.update_field(text, "data_flows", edge_id, name, value)
            if new_ref != edge_id:
                text = sync.rename_reference(text, edge_id, new_ref)
            self.text = text
        return new_ref

    # --- adding and removing entities ---

    def _fresh_ref(self, collection: str, prefix: str, **options: bool) -> str:
        issued = self._issued_refs[collection]
        ref = generate_unique_ref(prefix, issued.union(self.model.refs(collection)), **options)
        issued.add(ref)
        return ref

    def add_component(self, x: float, y: float, *, component_type: str = "internal") -> str:
        ref = self._fresh_ref("components", "component")
        name = generate_unique_name("Component", (c.name for c in self.model.components))
        component = Component(ref=ref, name=name, component_type=component_type, x=round(x), y=round(y))
        with self.operation("add component"):
            model = cow.append_entity(self.model, "components", component)
            nodes, self.edges = select_only(self.nodes, self.edges)
            node = replace(component_node(component), selected=True)
            nodes = sort_nodes_by_render_order((*nodes, node))
            text = sync.append_item(self.text, "components", entity_to_dict(component))
            model, text = self._apply_memberships(model, nodes, text)
            self.model, self.nodes, self.text = model, nodes, text
        return ref

    def add_boundary(self, x: float, y: float, width: float = 400, height: float = 300) -> str:
        ref = self._fresh_ref("boundaries", "boundary")
        name = generate_unique_name("Boundary", (b.name for b in self.model.boundaries))
        boundary = Boundary(ref=ref, name=name, x=round(x), y=round(y), width=round(width), height=round(height))
        with self.operation("add boundary"):
            model = cow.append_entity(self.model, "boundaries", boundary)
            nodes = sort_nodes_by_render_order((*self.nodes, boundary_node(boundary)))
            text = sync.append_item(self.text, "boundaries", entity_to_dict(boundary))
            model, text = self._apply_memberships(model, nodes, text)
            self.model, self.nodes, self.text = model, nodes, text
        return ref

    def _add_table_entity(self, collection: str, entity_cls: type[Any], prefix: str, noun: str) -> str:
        ref = self._fresh_ref(collection, prefix, uppercase=True, zero_pad=True)
        name = generate_unique_name(noun, (e.name for e in self.model.collection(collection)))
        entity = entity_cls(ref=ref, name=name)
        with self.operation(f"add {noun.lower()}"):
            self.model = cow.append_entity(self.model, collection, entity)
            self.text = sync.append_item(self.text, collection, entity_to_dict(entity))
        return ref

    def add_asset(self) -> str:
        return self._add_table_entity("assets", Asset, "A", "Asset")

    def add_threat(self) -> str:
        return self._add_table_entity("threats", Threat, "T", "Threat")

    def add_control(self) -> str:
        return self._add_table_entity("controls", Control, "C", "Control")

    def remove_entity(self, collection: str, ref: str) -> None:
        """Delete an entity and every reference to it."""
        if collection in ("components", "boundaries"):
            self._remove_nodes([ref])
            return
        if collection == "data_flows":
            self._remove_edges([ref])
            return
        if cow.find_entity(self.model, collection, ref) is None:
            return
        dependent = _DEPENDENT_FIELDS[collection]
        with self.operation(f"remove {collection}"):
            model = cow.remove_entities(self.model, collection, [ref])
            self.model = cow.strip_reference(model, ref, dependent)
            if collection == "assets":
                self.nodes = tuple(
                    n.with_data(assets=[a for a in n.data["assets"] if a != ref])
                    if ref in n.data.get("assets", ())
                    else n
                    for n in self.nodes
                )
            text = sync.remove_item(self.text, collection, ref)
            if dependent:
                text = sync.remove_reference_from_fields(text, ref, dependent)
            self.text = text

    def _remove_nodes(self, node_ids: Sequence[str]) -> None:
        removed = [n for n in self.nodes if n.id in node_ids]
        if not removed:
            return
        component_ids = [n.id for n in removed if n.type == COMPONENT_NODE]
        boundary_ids = [n.id for n in removed if n.type != COMPONENT_NODE]
        flow_refs = [
            f.ref
            for f in self.model.data_flows
            if f.source in component_ids or f.destination in component_ids
        ]

        with self.operation("remove nodes"):
            model = cow.remove_entities(self.model, "components", component_ids)
            model = cow.remove_entities(model, "boundaries", boundary_ids)
            model = cow.remove_entities(model, "data_flows", flow_refs)
            for ref in component_ids:
                model = cow.strip_reference(model, ref, _DEPENDENT_FIELDS["components"])
            for ref in flow_refs:
                model = cow.strip_reference(model, ref, _DEPENDENT_FIELDS["data_flows"])
            self.model = model

            remaining = tuple(n for n in self.nodes if n.id not in node_ids)
            edges = tuple(e for e in self.edges if e.id not in flow_refs)
            origin = removed[0].center
            closest = find_closest_node(origin.x, origin.y, remaining)
            self.nodes, self.edges = select_only(
                remaining, edges, node_id=closest.id if closest else None
            )

            text = self.text
            for ref in component_ids:
                text = sync.remove_item(text, "components", ref)
                text = sync.remove_reference_from_fields(text, ref, _DEPENDENT_FIELDS["components"])
            for ref in flow_refs:
                text = sync.remove_item(text, "data_flows", ref)
                text = sync.remove_reference_from_fields(text, ref, _DEPENDENT_FIELDS["data_flows"])
            for ref in boundary_ids:
                text = sync.remove_item(text, "boundaries", ref)
            self.text = text

    def _remove_edges(self, edge_ids: Sequence[str]) -> None:
        flow_refs = [r for r in self.model.refs("data_flows") if r in edge_ids]
        if not flow_refs:
            return
        with self.operation("remove edges"):
            model = cow.remove_entities(self.model, "data_flows", flow_refs)
            for ref in flow_refs:
                model = cow.strip_reference(model, ref, _DEPENDENT_FIELDS["data_flows"])
            self.model = model
            self.edges = tuple(e for e in self.edges if e.id not in flow_refs)
            text = self.text
            for ref in flow_refs:
                text = sync.remove_item(text, "data_flows", ref)
                text = sync.remove_reference_from_fields(text, ref, _DEPENDENT_FIELDS["data_flows"])
            self.text = text

    def reorder(self, collection: str, refs: Sequence[str]) -> None:
        with self.operation(f"reorder {collection}"):
            self.model = cow.reorder_entities(self.model, collection, refs)
            self.text = sync.reorder_section(self.text, collection, refs)

    # --- diagram events ---

    def apply_node_changes(self, changes: Sequence[Mapping[str, Any]]) -> None:
        """Apply a batch of diagram node change events.

        Supported types: ``remove``, ``position``, ``dimensions``, ``select``.
        """
        removals = [c["id"] for c in changes if c.get("type") == "remove"]
        if removals:
            self._remove_nodes(removals)
        for change in changes:
            kind = change.get("type")
            if kind == "position" and change.get("position") is not None:
                self._move_node(change["id"], change["position"], dragging=bool(change.get("dragging")))
            elif kind == "dimensions" and change.get("dimensions") is not None:
                dims = change["dimensions"]
                self.nodes = patch_node(self.nodes, change["id"], width=dims["width"], height=dims["height"])
            elif kind == "select":
                self.nodes = patch_node(self.nodes, change["id"], selected=bool(change.get("selected")))

    def apply_edge_changes(self, changes: Sequence[Mapping[str, Any]]) -> None:
        removals = [c["id"] for c in changes if c.get("type") == "remove"]
        if removals:
            self._remove_edges(removals)
        for change in changes:
            if change.get("type") == "select":
                self.edges = patch_edge(self.edges, change["id"], selected=bool(change.get("selected")))

    def _move_node(self, node_id: str, position: Mapping[str, float], *, dragging: bool) -> None:
        if not any(n.id == node_id for n in self.nodes):
            return
        new_position = Position(position["x"], position["y"])
        if self.dragging is not None or dragging:
            self.nodes = patch_node(self.nodes, node_id, position=new_position)
            return
        if not self._pending_nudges:
            self._record_if_changed()
        self.nodes = patch_node(self.nodes, node_id, position=new_position)
        self._pending_nudges.add(node_id)

    def drag_start(self, node_ids: Sequence[str]) -> None:
        if not node_ids:
            return
        self.flush_nudges()
        self._record_if_changed()
        self.dragging = node_ids[0] if len(node_ids) == 1 else DRAG_SELECTION
        for node_id in node_ids:
            self.nodes = patch_node(self.nodes, node_id, data={"is_dragging_node": True})

    def drag_stop(self, node_ids: Sequence[str]) -> None:
        """Commit final, rounded positions of the dragged nodes as one step."""
        if self.dragging is None:
            return
        self.dragging = None
        with self.operation("drag", record_before=False):
            self._commit_positions(node_ids)

    def key_up(self, key: str) -> None:
        """Re-arm the nudge flush timer after an arrow key is released."""
        if key not in ARROW_KEYS or not self._pending_nudges:
            return
        if self._nudge_timer is not None:
            self._nudge_timer.cancel()
        self._nudge_timer = self._scheduler.call_later(self._nudge_delay_ms, self.flush_nudges)

    def flush_nudges(self) -> None:
        if self._nudge_timer is not None:
            self._nudge_timer.cancel()
            self._nudge_timer = None
        if not self._pending_nudges:
            return
        node_ids = sorted(self._pending_nudges)
        self._pending_nudges.clear()
        with self.operation("nudge", record_before=False):
            self._commit_positions(node_ids)

    def _commit_positions(self, node_ids: Sequence[str]) -> None:
        by_id = {n.id: n for n in self.nodes}
        model, text = self.model, self.text
        nodes = self.nodes
        for node_id in node_ids:
            node = by_id.get(node_id)
            if node is None:
                continue
            collection = "components" if node.type == COMPONENT_NODE else "boundaries"
            x, y = round(node.position.x), round(node.position.y)
            model = cow.replace_entity(model, collection, node_id, x=x, y=y)
            data = {k: v for k, v in node.data.items() if k != "is_dragging_node"}
            nodes = tuple(
                replace(n, position=Position(x, y), data=data) if n.id == node_id else n for n in nodes
            )
            text = sync.update_field(text, collection, node_id, "x", x)
            text = sync.update_field(text, collection, node_id, "y", y)
        model, text = self._apply_memberships(model, nodes, text)
        self.model = model
        self.nodes = nodes
        self.text = text

    def _apply_memberships(
        self, model: ThreatModel, nodes: Sequence[DiagramNode], text: str
    ) -> tuple[ThreatModel, str]:
        for boundary_id, members in compute_boundary_memberships(nodes).items():
            boundary: Boundary | None = cow.find_entity(model, "boundaries", boundary_id)
            value = members or None
            if boundary is None or boundary.components == value:
                continue
            model = cow.replace_entity(model, "boundaries", boundary_id, components=value)
            text = sync.update_field(text, "boundaries", boundary_id, "components", value)
        return model, text

    def navigate(self, direction: NavigationDirection, *, editing: bool = False) -> None:
        """Move the selection; diagram-only, never recorded."""
        self.nodes, self.edges = navigation.navigate(self.nodes, self.edges, direction, editing=editing)

    # --- raw text ---

    def replace_text(self, text: str) -> None:
        """Adopt hand-edited text; parse errors propagate and leave state untouched."""
        model = parse_model(text)
        selected = {n.id for n in self.nodes if n.selected}
        with self.operation("text edit"):
            self.model = model
            nodes, edges = project_model(model)
            self.nodes = tuple(replace(n, selected=True) if n.id in selected else n for n in nodes)
            self.edges = edges
            self.text = text
        for collection, issued in self._issued_refs.items():
            issued.update(model.refs(collection))
