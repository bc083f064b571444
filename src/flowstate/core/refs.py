"""Reference and name generation for new and renamed entities."""

from collections.abc import Collection, Iterable


def data_flow_base_ref(source: str, destination: str, direction: str | None) -> str:
    arrow = "<->" if direction == "bidirectional" else "->"
    return f"{source}{arrow}{destination}"


def generate_data_flow_ref(
    source: str,
    destination: str,
    direction: str | None,
    existing: Collection[str],
) -> str:
    """Derive a data-flow ref from its endpoints and direction.

    Collisions with ``existing`` get a numeric suffix starting at 2
    (``A->B``, ``A->B-2``, ``A->B-3``, ...).
    """
    base = data_flow_base_ref(source, destination, direction)
    taken = set(existing)
    if base not in taken:
        return base
    count = 2
    while f"{base}-{count}" in taken:
        count += 1
    return f"{base}-{count}"


def generate_unique_ref(
    prefix: str,
    existing: Collection[str],
    *,
    uppercase: bool = False,
    zero_pad: bool = False,
) -> str:
    """Return the first free ref of the form ``component-1`` or ``T01``.

    With ``uppercase`` the prefix is joined without a dash (``A1``); with
    ``zero_pad`` numbers below 10 get a leading zero (``A01``).
    """
    taken = set(existing)
    count = 1
    while True:
        number = f"{count:02d}" if zero_pad else str(count)
        candidate = f"{prefix.upper()}{number}" if uppercase else f"{prefix}-{number}"
        if candidate not in taken:
            return candidate
        count += 1


def generate_unique_name(base: str, existing_names: Iterable[str]) -> str:
    """Return ``"{base} N"`` with the lowest N not already in use."""
    taken = set(existing_names)
    count = 1
    while f"{base} {count}" in taken:
        count += 1
    return f"{base} {count}"


def next_data_flow_label(flow_count: int) -> str:
    """Auto-numbered label for a new flow: ``DF`` plus its 1-based ordinal."""
    return f"DF{flow_count + 1}"

