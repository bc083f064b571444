"""YAML text encoding of a threat model.

Parsing goes through ``yaml.safe_load``. Emission is line-oriented so the
same formatting rules serve both full documents and the surgical edits in
``flowstate.text.sync``: items are ``- ref: X`` blocks, arrays are inline
``[a, b]``, and strings stay plain unless YAML would read them back as
something else.
"""

import json
from collections.abc import Mapping, Sequence
from typing import Any

import yaml

from flowstate.models.threat_model import (
    COLLECTIONS,
    ThreatModel,
    entity_to_dict,
    model_from_dict,
)

ITEM_INDENT = 2
_FLOW_INDICATORS = set(",[]{}")


class DocumentParseError(ValueError):
    """Text that cannot be turned into a threat model."""


def format_scalar(value: str) -> str:
    """Render a single-line string plain when it round-trips, else double-quoted."""
    if value and value == value.strip() and "\n" not in value:
        try:
            loaded = yaml.safe_load(value)
        except yaml.YAMLError:
            loaded = None
        if loaded == value and isinstance(loaded, str):
            return value
    return json.dumps(value, ensure_ascii=False)


def format_inline_list(values: Sequence[Any]) -> str:
    rendered = []
    for v in values:
        text = format_scalar(str(v))
        if not text.startswith('"') and _FLOW_INDICATORS & set(text):
            text = json.dumps(str(v), ensure_ascii=False)
        rendered.append(text)
    return "[" + ", ".join(rendered) + "]"


def _can_use_block(value: str) -> bool:
    first = value.split("\n", 1)[0]
    return (
        not value.endswith("\n")
        and not first.startswith((" ", "\t"))
        and "\r" not in value
        and "\t" not in value
    )


def format_field(name: str, value: Any, indent: int) -> list[str]:
    """Render ``name: value`` as lines at the given indent; ``None`` or empty renders nothing."""
    pad = " " * indent
    if value is None:
        return []
    if isinstance(value, bool):
        return [f"{pad}{name}: {'true' if value else 'false'}"]
    if isinstance(value, int):
        return [f"{pad}{name}: {value}"]
    if isinstance(value, float):
        return [f"{pad}{name}: {round(value)}"]
    if isinstance(value, (list, tuple)):
        if not value:
            return []
        return [f"{pad}{name}: {format_inline_list(value)}"]
    text = str(value)
    if "\n" in text and _can_use_block(text):
        body = [f"{pad}  {line}" if line else "" for line in text.split("\n")]
        return [f"{pad}{name}: |-", *body]
    return [f"{pad}{name}: {format_scalar(text)}"]


def format_item(data: Mapping[str, Any], dash_indent: int = ITEM_INDENT) -> list[str]:
    """Render one collection item as a ``- key: value`` block."""
    field_indent = dash_indent + 2
    out: list[str] = []
    for key, value in data.items():
        out.extend(format_field(key, value, field_indent))
    if out:
        out[0] = " " * dash_indent + "- " + out[0][field_indent:]
    return out


def model_to_text(model: ThreatModel) -> str:
    """Emit the canonical text for a whole model."""
    lines = [f"schema_version: {format_scalar(model.schema_version)}"]
    lines.extend(format_field("name", model.name, 0))
    lines.extend(format_field("description", model.description, 0))
    lines.extend(format_field("participants", model.participants, 0))

    for name in COLLECTIONS:
        lines.append("")
        entities = model.collection(name)
        if not entities:
            lines.append(f"{name}: []")
            continue
        lines.append(f"{name}:")
        for i, entity in enumerate(entities):
            if i:
                lines.append("")
            lines.extend(format_item(entity_to_dict(entity)))
    return "\n".join(lines) + "\n"


def parse_model(text: str) -> ThreatModel:
    """Parse YAML text into a model.

    Raises:
        DocumentParseError: The text is not YAML or not a mapping.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        msg = f"YAML parsing error: {e}"
        raise DocumentParseError(msg) from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Invalid YAML: expected a mapping, got {type(data).__name__}"
        raise DocumentParseError(msg)
    try:
        return model_from_dict(data)
    except (TypeError, ValueError) as e:
        msg = f"Invalid threat model: {e}"
        raise DocumentParseError(msg) from e
