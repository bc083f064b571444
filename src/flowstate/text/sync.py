"""Surgical edits of the YAML text.

Each function rewrites only the lines that carry the targeted value and
returns the rest of the text byte-for-byte. Unknown sections or refs leave
the text unchanged.
"""

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import yaml

from flowstate.models.threat_model import COLLECTIONS, TOP_LEVEL_FIELDS
from flowstate.text.codec import format_field, format_inline_list, format_item, format_scalar

# ``lead`` is the indent plus an optional list dash; the key's column is len(lead).
_KEY_LINE = re.compile(r"^(?P<lead> *(?:- +)?)(?P<key>[A-Za-z_]\w*):(?P<rest>(?:\s.*)?)$")
_LIST_ENTRY = re.compile(r"^(?P<lead> *- +)(?P<value>.*)$")


@dataclass(frozen=True)
class _Item:
    start: int
    end: int
    dash_indent: int
    field_indent: int


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _is_filler(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith("#")


def _scalar(raw: str) -> str | None:
    raw = raw.strip()
    if not raw:
        return None
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return raw


def _inline_list(raw: str) -> list[str] | None:
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        return None
    if not isinstance(value, list):
        return None
    return [str(v) for v in value]


def _list_entry_value(line: str) -> str | None:
    """Value of a plain ``- value`` list entry; ``None`` for mappings and other lines."""
    if _KEY_LINE.match(line):
        return None
    m = _LIST_ENTRY.match(line)
    return _scalar(m["value"]) if m else None


def _find_section(lines: Sequence[str], section: str) -> int | None:
    for i, line in enumerate(lines):
        m = _KEY_LINE.match(line)
        if m and m["lead"] == "" and m["key"] == section:
            return i
    return None


def _section_end(lines: Sequence[str], start: int) -> int:
    for i in range(start + 1, len(lines)):
        line = lines[i]
        if _is_filler(line):
            continue
        if _indent(line) == 0 and not line.startswith("-"):
            return i
    return len(lines)


def _items(lines: Sequence[str], start: int, end: int) -> list[_Item]:
    starts: list[int] = []
    item_indent: int | None = None
    for i in range(start + 1, end):
        line = lines[i]
        if _is_filler(line):
            continue
        stripped = line.lstrip(" ")
        if stripped.startswith("- ") or stripped == "-":
            if item_indent is None:
                item_indent = _indent(line)
            if _indent(line) == item_indent:
                starts.append(i)

    items = []
    for k, s in enumerate(starts):
        stop = starts[k + 1] if k + 1 < len(starts) else end
        while stop > s + 1 and _is_filler(lines[stop - 1]):
            stop -= 1
        dash = _indent(lines[s])
        m = _LIST_ENTRY.match(lines[s])
        if m and m["value"].strip():
            field_indent = len(m["lead"])
        elif s + 1 < stop:
            field_indent = _indent(lines[s + 1])
        else:
            field_indent = dash + 2
        items.append(_Item(start=s, end=stop, dash_indent=dash, field_indent=field_indent))
    return items


def _item_ref(lines: Sequence[str], item: _Item) -> str | None:
    for i in range(item.start, item.end):
        m = _KEY_LINE.match(lines[i])
        if m and m["key"] == "ref" and len(m["lead"]) == item.field_indent:
            return _scalar(m["rest"])
    return None


def _locate(lines: Sequence[str], collection: str, ref: str) -> tuple[int, list[_Item], int] | None:
    """Return (section start, items, index of the matching item)."""
    start = _find_section(lines, collection)
    if start is None:
        return None
    items = _items(lines, start, _section_end(lines, start))
    for idx, item in enumerate(items):
        if _item_ref(lines, item) == ref:
            return start, items, idx
    return None


def _block_end(lines: Sequence[str], start: int, column: int, limit: int) -> int:
    """End (exclusive) of the value region of the key at ``lines[start]``."""
    j = start + 1
    while j < limit:
        line = lines[j]
        if line.strip() and _indent(line) < column:
            break
        if line.strip() and _indent(line) == column and not line.lstrip().startswith("-"):
            break
        j += 1
    while j > start + 1 and not lines[j - 1].strip():
        j -= 1
    return j


def _field_spans(lines: Sequence[str], item: _Item) -> dict[str, tuple[int, int]]:
    spans: dict[str, tuple[int, int]] = {}
    i = item.start
    while i < item.end:
        m = _KEY_LINE.match(lines[i])
        if m and len(m["lead"]) == item.field_indent:
            end = _block_end(lines, i, item.field_indent, item.end)
            spans[m["key"]] = (i, end)
            i = end
        else:
            i += 1
    return spans


def _top_level_span(lines: Sequence[str], field: str) -> tuple[int, int] | None:
    for i, line in enumerate(lines):
        m = _KEY_LINE.match(line)
        if m and m["lead"] == "" and m["key"] == field:
            j = i + 1
            while j < len(lines) and (
                not lines[j].strip() or _indent(lines[j]) > 0 or lines[j].startswith("-")
            ):
                j += 1
            while j > i + 1 and not lines[j - 1].strip():
                j -= 1
            return i, j
    return None


def update_field(text: str, collection: str, ref: str, field: str, value: Any) -> str:
    """Set, insert, or remove (``value`` None or empty) one field of one item."""
    lines = text.split("\n")
    found = _locate(lines, collection, ref)
    if found is None:
        return text
    _, items, idx = found
    item = items[idx]
    new = format_field(field, value, item.field_indent)
    spans = _field_spans(lines, item)

    if field not in spans:
        if not new:
            return text
        lines[item.end : item.end] = new
        return "\n".join(lines)

    start, end = spans[field]
    if start == item.start:
        prefix = lines[start][: item.field_indent]
        if new:
            new[0] = prefix + new[0][item.field_indent :]
        else:
            following = [k for k in range(end, item.end) if lines[k].strip()]
            if following and _indent(lines[following[0]]) == item.field_indent:
                k = following[0]
                lines[k] = prefix + lines[k][item.field_indent :]
                end = k
            else:
                new = [prefix.rstrip()]
    lines[start:end] = new
    return "\n".join(lines)


def update_top_level_field(text: str, field: str, value: Any) -> str:
    """Set, insert, or remove a top-level key such as ``name`` or ``description``."""
    lines = text.split("\n")
    new = format_field(field, value, 0)
    span = _top_level_span(lines, field)
    if span is not None:
        start, end = span
        lines[start:end] = new
        return "\n".join(lines)
    if not new:
        return text

    position = TOP_LEVEL_FIELDS.index(field) if field in TOP_LEVEL_FIELDS else len(TOP_LEVEL_FIELDS)
    insert_at = 0
    for previous in reversed(TOP_LEVEL_FIELDS[:position]):
        previous_span = _top_level_span(lines, previous)
        if previous_span is not None:
            insert_at = previous_span[1]
            break
    lines[insert_at:insert_at] = new
    return "\n".join(lines)


def rename_reference(text: str, old_ref: str, new_ref: str) -> str:
    """Rewrite every ``ref:`` value and every list entry equal to ``old_ref``."""
    out = []
    for line in text.split("\n"):
        m = _KEY_LINE.match(line)
        if m:
            rest = m["rest"].strip()
            if m["key"] == "ref" and _scalar(rest) == old_ref:
                line = f"{m['lead']}ref: {format_scalar(new_ref)}"
            elif rest.startswith("["):
                values = _inline_list(rest)
                if values is not None and old_ref in values:
                    renamed = [new_ref if v == old_ref else v for v in values]
                    line = f"{m['lead']}{m['key']}: {format_inline_list(renamed)}"
        elif _list_entry_value(line) == old_ref:
            lead = _LIST_ENTRY.match(line)["lead"]  # type: ignore[index]
            line = f"{lead}{format_scalar(new_ref)}"
        out.append(line)
    return "\n".join(out)


def append_item(text: str, collection: str, item: Mapping[str, Any]) -> str:
    """Append an item to the end of a section, creating the section if needed."""
    lines = text.split("\n")
    start = _find_section(lines, collection)

    if start is None:
        k = len(lines)
        while k > 0 and not lines[k - 1].strip():
            k -= 1
        block = ([""] if k else []) + [f"{collection}:", *format_item(item)]
        lines[k:k] = block
        return "\n".join(lines)

    m = _KEY_LINE.match(lines[start])
    if m and m["rest"].strip().startswith("[]"):
        lines[start] = f"{collection}:"
        lines[start + 1 : start + 1] = format_item(item)
        return "\n".join(lines)

    items = _items(lines, start, _section_end(lines, start))
    if not items:
        lines[start + 1 : start + 1] = format_item(item)
        return "\n".join(lines)

    last = items[-1]
    compact = len(items) > 1 and items[1].start == items[0].end
    block = ([] if compact else [""]) + format_item(item, last.dash_indent)
    lines[last.end : last.end] = block
    return "\n".join(lines)


def remove_item(text: str, collection: str, ref: str) -> str:
    """Remove an item and one blank separator; an emptied section becomes ``name: []``."""
    lines = text.split("\n")
    found = _locate(lines, collection, ref)
    if found is None:
        return text
    section_start, items, idx = found
    start, end = items[idx].start, items[idx].end
    if idx > 0:
        while start > items[idx - 1].end and not lines[start - 1].strip():
            start -= 1
    elif idx + 1 < len(items):
        while end < items[idx + 1].start and not lines[end].strip():
            end += 1
    del lines[start:end]
    if len(items) == 1:
        lines[section_start] = f"{collection}: []"
    return "\n".join(lines)


def remove_reference_from_fields(text: str, ref: str, fields: Iterable[str]) -> str:
    """Drop ``ref`` from the named list fields; fields left empty are removed."""
    names = set(fields)
    lines = text.split("\n")
    out: list[str] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        m = _KEY_LINE.match(line)
        if not m or m["key"] not in names or (m["lead"] == "" and m["key"] in COLLECTIONS):
            out.append(line)
            i += 1
            continue

        rest = m["rest"].strip()
        if rest.startswith("["):
            values = _inline_list(rest)
            if values is not None and ref in values:
                kept = [v for v in values if v != ref]
                if kept:
                    out.append(f"{m['lead']}{m['key']}: {format_inline_list(kept)}")
                elif m["lead"].strip():
                    out.append(f"{m['lead']}{m['key']}: []")
                i += 1
                continue
        elif not rest or rest.startswith("#"):
            end = _block_end(lines, i, len(m["lead"]), len(lines))
            block = lines[i + 1 : end]
            if any(_list_entry_value(b) == ref for b in block):
                kept_block = [b for b in block if _list_entry_value(b) != ref]
                if any(_list_entry_value(b) is not None for b in kept_block):
                    out.append(line)
                    out.extend(kept_block)
                i = end
                continue
        out.append(line)
        i += 1
    return "\n".join(out)


def reorder_section(text: str, collection: str, refs: Sequence[str]) -> str:
    """Rearrange whole item blocks into ``refs`` order, keeping the separators in place."""
    lines = text.split("\n")
    start = _find_section(lines, collection)
    if start is None:
        return text
    items = _items(lines, start, _section_end(lines, start))
    if len(items) < 2:
        return text

    blocks = [(_item_ref(lines, it), lines[it.start : it.end]) for it in items]
    rank = {ref: n for n, ref in enumerate(refs)}
    ordered = sorted(blocks, key=lambda b: rank.get(b[0] or "", len(rank)))
    gaps = [lines[items[k].end : items[k + 1].start] for k in range(len(items) - 1)]

    region: list[str] = []
    for k, (_, block) in enumerate(ordered):
        region.extend(block)
        if k < len(gaps):
            region.extend(gaps[k])
    lines[items[0].start : items[-1].end] = region
    return "\n".join(lines)
