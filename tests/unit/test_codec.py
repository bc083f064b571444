"""Tests for YAML parsing and emission."""

import pytest

from flowstate.models.threat_model import ThreatModel
from flowstate.text.codec import (
    DocumentParseError,
    format_field,
    format_inline_list,
    format_scalar,
    model_to_text,
    parse_model,
)


def test_format_scalar_plain_when_it_round_trips() -> None:
    assert format_scalar("hello world") == "hello world"
    assert format_scalar("web->api") == "web->api"


@pytest.mark.parametrize("value", ["yes", "123", "a: b", "", " padded", "null"])
def test_format_scalar_quotes_ambiguous_strings(value: str) -> None:
    rendered = format_scalar(value)
    assert rendered.startswith('"')
    assert parse_model(f"name: {rendered}").name == value


def test_format_inline_list_quotes_flow_indicators() -> None:
    assert format_inline_list(["a", "b"]) == "[a, b]"
    assert format_inline_list(["a,b", "c"]) == '["a,b", c]'


def test_format_field_multiline_uses_block_scalar() -> None:
    assert format_field("description", "line one\nline two", 4) == [
        "    description: |-",
        "      line one",
        "      line two",
    ]


def test_format_field_omits_empty_values() -> None:
    assert format_field("assets", [], 4) == []
    assert format_field("description", None, 4) == []


def test_parse_model_reads_all_collections(sample_text: str) -> None:
    model = parse_model(sample_text)
    assert model.name == "Payments"
    assert model.participants == ("alice", "bob")
    assert model.refs("components") == ["web", "api", "db"]
    assert model.data_flows[0].destination_point == "left-1"
    assert model.threats[0].affected_data_flows == ("web->api", "api->db")
    assert model.components[0].x == 100


def test_parse_model_minimal_data_flow() -> None:
    model = parse_model("data_flows:\n  - ref: a->b\n    source: a\n    destination: b\n")
    flow = model.data_flows[0]
    assert (flow.ref, flow.source, flow.destination) == ("a->b", "a", "b")
    assert flow.direction is None


def test_parse_model_empty_text_is_empty_model() -> None:
    assert parse_model("") == ThreatModel()


@pytest.mark.parametrize("text", ["- a\n- b\n", "name: [unclosed\n", "just a string"])
def test_parse_model_rejects_invalid_documents(text: str) -> None:
    with pytest.raises(DocumentParseError):
        parse_model(text)


def test_model_to_text_round_trips(sample_text: str) -> None:
    model = parse_model(sample_text)
    assert parse_model(model_to_text(model)) == model


def test_model_to_text_matches_canonical_layout(sample_text: str) -> None:
    assert model_to_text(parse_model(sample_text)) == sample_text


def test_model_to_text_emits_empty_collections() -> None:
    text = model_to_text(ThreatModel(name="Empty"))
    assert "assets: []" in text
    assert "controls: []" in text
    assert parse_model(text) == ThreatModel(name="Empty")
