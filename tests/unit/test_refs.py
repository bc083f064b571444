"""Tests for ref and name generation."""

from flowstate.core.refs import (
    generate_data_flow_ref,
    generate_unique_name,
    generate_unique_ref,
    next_data_flow_label,
)


def test_data_flow_ref_uses_arrow_for_direction() -> None:
    assert generate_data_flow_ref("a", "b", "unidirectional", []) == "a->b"
    assert generate_data_flow_ref("a", "b", None, []) == "a->b"
    assert generate_data_flow_ref("a", "b", "bidirectional", []) == "a<->b"


def test_data_flow_ref_collisions_get_numeric_suffix() -> None:
    assert generate_data_flow_ref("a", "b", "unidirectional", ["a->b"]) == "a->b-2"
    assert generate_data_flow_ref("a", "b", "unidirectional", ["a->b", "a->b-2"]) == "a->b-3"


def test_data_flow_ref_ignores_other_directions() -> None:
    assert generate_data_flow_ref("a", "b", "bidirectional", ["a->b"]) == "a<->b"


def test_unique_ref_dashed_style() -> None:
    assert generate_unique_ref("component", []) == "component-1"
    assert generate_unique_ref("component", ["component-1", "component-3"]) == "component-2"


def test_unique_ref_table_style() -> None:
    assert generate_unique_ref("T", ["T01", "T02"], uppercase=True, zero_pad=True) == "T03"
    refs = [f"A{n:02d}" for n in range(1, 10)]
    assert generate_unique_ref("a", refs, uppercase=True, zero_pad=True) == "A10"


def test_unique_name_fills_lowest_gap() -> None:
    assert generate_unique_name("Component", []) == "Component 1"
    assert generate_unique_name("Component", ["Component 1", "Component 2"]) == "Component 3"
    assert generate_unique_name("Boundary", ["Boundary 2"]) == "Boundary 1"


def test_next_data_flow_label() -> None:
    assert next_data_flow_label(0) == "DF1"
    assert next_data_flow_label(2) == "DF3"
