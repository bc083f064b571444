"""Threat model entities and conversion to and from plain mappings.

Entities are frozen; every edit produces a new object through
``dataclasses.replace``. Array fields are tuples, and an absent optional
field is ``None`` (never an empty tuple).
"""

from dataclasses import dataclass, fields
from typing import Any, Literal

ComponentType = Literal["internal", "external", "data_store"]
Direction = Literal["unidirectional", "bidirectional"]
ThreatStatus = Literal["Mitigate", "Accept", "Dismiss", "Evaluate"]
ControlStatus = Literal["To Do", "In Progress", "Done", "Cancelled"]

COMPONENT_TYPES: tuple[str, ...] = ("internal", "external", "data_store")
DIRECTIONS: tuple[str, ...] = ("unidirectional", "bidirectional")


@dataclass(frozen=True)
class Asset:
    """Something of value the system holds or processes."""

    ref: str
    name: str
    description: str | None = None


@dataclass(frozen=True)
class Component:
    """A diagram node: a process, external actor, or data store."""

    ref: str
    name: str
    component_type: str = "internal"
    description: str | None = None
    assets: tuple[str, ...] | None = None
    x: int | None = None
    y: int | None = None


@dataclass(frozen=True)
class DataFlow:
    """A directed (or bidirectional) edge between two components.

    The ref is derived from source, destination and direction.
    """

    ref: str
    source: str
    destination: str
    source_point: str | None = None
    destination_point: str | None = None
    direction: str | None = None
    label: str | None = None

    @property
    def is_bidirectional(self) -> bool:
        return self.direction == "bidirectional"


@dataclass(frozen=True)
class Boundary:
    """A trust boundary drawn around a group of components."""

    ref: str
    name: str
    description: str | None = None
    components: tuple[str, ...] | None = None
    x: int | None = None
    y: int | None = None
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class Threat:
    ref: str
    name: str
    description: str | None = None
    affected_components: tuple[str, ...] | None = None
    affected_data_flows: tuple[str, ...] | None = None
    affected_assets: tuple[str, ...] | None = None
    status: str | None = None
    status_link: str | None = None
    status_note: str | None = None


@dataclass(frozen=True)
class Control:
    ref: str
    name: str
    description: str | None = None
    mitigates: tuple[str, ...] | None = None
    implemented_in: tuple[str, ...] | None = None
    status: str | None = None
    status_link: str | None = None
    status_note: str | None = None


Entity = Asset | Component | DataFlow | Boundary | Threat | Control

# Collection name -> entity class, in canonical emission order.
COLLECTIONS: dict[str, type[Any]] = {
    "assets": Asset,
    "components": Component,
    "data_flows": DataFlow,
    "boundaries": Boundary,
    "threats": Threat,
    "controls": Control,
}

# Array fields that hold refs into another collection: field -> target collection.
REFERENCE_FIELDS: dict[str, str] = {
    "assets": "assets",
    "components": "components",
    "affected_components": "components",
    "affected_data_flows": "data_flows",
    "affected_assets": "assets",
    "mitigates": "threats",
    "implemented_in": "components",
}


@dataclass(frozen=True)
class ThreatModel:
    """The structured entity graph of one document."""

    schema_version: str = "1.0"
    name: str = ""
    description: str | None = None
    participants: tuple[str, ...] | None = None
    assets: tuple[Asset, ...] = ()
    components: tuple[Component, ...] = ()
    data_flows: tuple[DataFlow, ...] = ()
    boundaries: tuple[Boundary, ...] = ()
    threats: tuple[Threat, ...] = ()
    controls: tuple[Control, ...] = ()

    def collection(self, name: str) -> tuple[Any, ...]:
        """Return the entities of a collection by its text section name."""
        if name not in COLLECTIONS:
            msg = f"Unknown collection: {name!r}"
            raise ValueError(msg)
        return getattr(self, name)  # type: ignore[no-any-return]

    def refs(self, name: str) -> list[str]:
        return [e.ref for e in self.collection(name)]


# Top-level scalar/array fields, in emission order.
TOP_LEVEL_FIELDS: tuple[str, ...] = ("schema_version", "name", "description", "participants")


def is_array_field(entity_cls: type[Any], field_name: str) -> bool:
    """Whether a field of an entity class holds a tuple of refs/strings."""
    for f in fields(entity_cls):
        if f.name == field_name:
            return "tuple" in str(f.type)
    msg = f"{entity_cls.__name__} has no field {field_name!r}"
    raise ValueError(msg)


def _coerce(value: Any, *, array: bool, numeric: bool) -> Any:
    if value is None:
        return None
    if array:
        if isinstance(value, str):
            value = [value]
        items = tuple(str(v) for v in value if v is not None)
        return items or None
    if numeric:
        return round(float(value))
    return str(value)


def entity_from_dict(collection: str, data: dict[str, Any]) -> Entity:
    """Build an entity from a mapping, ignoring unknown keys."""
    cls = COLLECTIONS[collection]
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        numeric = f.name in ("x", "y", "width", "height")
        kwargs[f.name] = _coerce(data[f.name], array="tuple" in str(f.type), numeric=numeric)
    kwargs.setdefault("ref", "")
    if any(f.name == "name" for f in fields(cls)):
        kwargs.setdefault("name", "")
    if kwargs.get("component_type") is None and cls is Component:
        kwargs.pop("component_type", None)
    if cls is DataFlow:
        kwargs.setdefault("source", "")
        kwargs.setdefault("destination", "")
    return cls(**kwargs)  # type: ignore[no-any-return]


def entity_to_dict(entity: Entity) -> dict[str, Any]:
    """Return present fields in declaration order; tuples become lists."""
    out: dict[str, Any] = {}
    for f in fields(entity):
        value = getattr(entity, f.name)
        if value is None:
            continue
        out[f.name] = list(value) if isinstance(value, tuple) else value
    return out


def model_from_dict(data: dict[str, Any]) -> ThreatModel:
    """Build a ThreatModel from a parsed mapping."""
    participants = data.get("participants")
    collections = {
        name: tuple(
            entity_from_dict(name, item) for item in (data.get(name) or []) if isinstance(item, dict)
        )
        for name in COLLECTIONS
    }
    return ThreatModel(
        schema_version=str(data.get("schema_version", "1.0")),
        name=str(data.get("name") or ""),
        description=None if data.get("description") is None else str(data["description"]),
        participants=_coerce(participants, array=True, numeric=False),
        **collections,
    )


def model_to_dict(model: ThreatModel) -> dict[str, Any]:
    """Return a plain mapping in canonical key order."""
    out: dict[str, Any] = {"schema_version": model.schema_version, "name": model.name}
    if model.description is not None:
        out["description"] = model.description
    if model.participants:
        out["participants"] = list(model.participants)
    for name in COLLECTIONS:
        out[name] = [entity_to_dict(e) for e in model.collection(name)]
    return out
