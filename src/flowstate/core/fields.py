"""Copy-on-write collection helpers and field update factories.

Every helper returns a new ``ThreatModel`` that shares all untouched
entities and collections with its input. A ref that is not present makes
the helper return the input model itself, so callers can detect no-ops
with an identity check.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from typing import Any

from flowstate.models.threat_model import Entity, ThreatModel
from flowstate.text import sync

ModelUpdate = Callable[[ThreatModel], ThreatModel]
TextUpdate = Callable[[str], str]
FieldHandler = Callable[[str, Any], None]


def find_entity(model: ThreatModel, collection: str, ref: str) -> Any | None:
    for entity in model.collection(collection):
        if entity.ref == ref:
            return entity
    return None


def replace_entity(model: ThreatModel, collection: str, ref: str, /, **changes: Any) -> ThreatModel:
    """Return a model where the entity ``ref`` in ``collection`` has ``changes`` applied."""
    items = model.collection(collection)
    for i, entity in enumerate(items):
        if entity.ref == ref:
            updated = replace(entity, **changes)
            return replace(model, **{collection: (*items[:i], updated, *items[i + 1 :])})
    return model


def append_entity(model: ThreatModel, collection: str, entity: Entity) -> ThreatModel:
    return replace(model, **{collection: (*model.collection(collection), entity)})


def remove_entities(model: ThreatModel, collection: str, refs: Iterable[str]) -> ThreatModel:
    drop = set(refs)
    items = model.collection(collection)
    kept = tuple(e for e in items if e.ref not in drop)
    if len(kept) == len(items):
        return model
    return replace(model, **{collection: kept})


def map_entities(
    model: ThreatModel, collection: str, fn: Callable[[Any], Any]
) -> ThreatModel:
    """Apply ``fn`` to every entity, keeping identity where ``fn`` returns its input."""
    items = model.collection(collection)
    mapped = tuple(fn(e) for e in items)
    if all(a is b for a, b in zip(items, mapped, strict=True)):
        return model
    return replace(model, **{collection: mapped})


def reorder_entities(model: ThreatModel, collection: str, refs: Sequence[str]) -> ThreatModel:
    """Order entities as listed in ``refs``; unlisted entities keep their relative order at the end."""
    items = model.collection(collection)
    by_ref = {e.ref: e for e in items}
    ordered = [by_ref[r] for r in refs if r in by_ref]
    listed = {e.ref for e in ordered}
    ordered.extend(e for e in items if e.ref not in listed)
    return replace(model, **{collection: tuple(ordered)})


def strip_reference(model: ThreatModel, ref: str, field_names: Iterable[str]) -> ThreatModel:
    """Remove ``ref`` from the given array fields of every entity that has them."""
    names = tuple(field_names)

    def clean(entity: Any) -> Any:
        changes: dict[str, Any] = {}
        for name in names:
            values = getattr(entity, name, None)
            if values and ref in values:
                changes[name] = tuple(v for v in values if v != ref) or None
        return replace(entity, **changes) if changes else entity

    for collection in ("components", "boundaries", "threats", "controls"):
        model = map_entities(model, collection, clean)
    return model


def rename_in_field(model: ThreatModel, collection: str, field_name: str, old: str, new: str) -> ThreatModel:
    """Rewrite ``old`` to ``new`` inside one array field across a collection."""

    def rename(entity: Any) -> Any:
        values = getattr(entity, field_name)
        if not values or old not in values:
            return entity
        return replace(entity, **{field_name: tuple(new if v == old else v for v in values)})

    return map_entities(model, collection, rename)


def normalize_array(value: Sequence[str] | None) -> tuple[str, ...] | None:
    """Empty sequences are stored as absent."""
    if not value:
        return None
    return tuple(value)


def make_scalar_updater(
    collection: str,
    field_name: str,
    *,
    update_model: Callable[[ModelUpdate], None],
    update_text: Callable[[TextUpdate], None],
) -> FieldHandler:
    """Build a ``(ref, value)`` handler assigning a scalar field verbatim.

    Args:
        collection: Collection name, e.g. ``"threats"``.
        field_name: Field to assign.
        update_model: Receives a pure model transform and applies it.
        update_text: Receives a pure text transform and applies it.

    Returns:
        A handler that is a no-op for unknown refs.
    """

    def handle(ref: str, value: Any) -> None:
        update_model(lambda model: replace_entity(model, collection, ref, **{field_name: value}))
        update_text(lambda text: sync.update_field(text, collection, ref, field_name, value))

    return handle


def make_array_updater(
    collection: str,
    field_name: str,
    *,
    update_model: Callable[[ModelUpdate], None],
    update_text: Callable[[TextUpdate], None],
) -> FieldHandler:
    """Build a ``(ref, values)`` handler for list fields; ``[]`` removes the field."""

    def handle(ref: str, values: Sequence[str] | None) -> None:
        normalized = normalize_array(values)
        update_model(lambda model: replace_entity(model, collection, ref, **{field_name: normalized}))
        update_text(lambda text: sync.update_field(text, collection, ref, field_name, normalized))

    return handle
