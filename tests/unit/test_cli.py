"""Tests for the flowstate CLI."""

import json
from pathlib import Path

from typer.testing import CliRunner

from flowstate.cli import app
from flowstate.storage.model_store import ModelStore
from flowstate.text.codec import parse_model

runner = CliRunner()


def test_show_summarizes_model(model_file: Path) -> None:
    result = runner.invoke(app, ["show", str(model_file)])
    assert result.exit_code == 0, result.output
    assert "Payments  [schema 1.0]" in result.output
    assert "participants: alice, bob" in result.output
    assert "  components: 3" in result.output
    assert "    web->api" in result.output


def test_show_json_outputs_valid_json(model_file: Path) -> None:
    result = runner.invoke(app, ["show", str(model_file), "--json"])
    assert result.exit_code == 0, result.output
    parsed = json.loads(result.output)
    assert parsed["name"] == "Payments"
    assert [c["ref"] for c in parsed["components"]] == ["web", "api", "db"]


def test_show_missing_file_fails(tmp_path: Path) -> None:
    result = runner.invoke(app, ["show", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1


def test_show_unparseable_file_fails(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("components: [unclosed\n")
    result = runner.invoke(app, ["show", str(path)])
    assert result.exit_code == 1


def test_set_field_writes_file(model_file: Path, sample_text: str) -> None:
    result = runner.invoke(app, ["set-field", str(model_file), "components", "api", "name", "Gateway"])
    assert result.exit_code == 0, result.output
    assert "Updated components.api.name" in result.output
    assert model_file.read_text() == sample_text.replace("    name: API\n", "    name: Gateway\n")


def test_set_field_list_value(model_file: Path) -> None:
    result = runner.invoke(
        app, ["set-field", str(model_file), "threats", "T01", "affected_components", "web, api"]
    )
    assert result.exit_code == 0, result.output
    threat = parse_model(model_file.read_text()).threats[0]
    assert threat.affected_components == ("web", "api")


def test_set_field_same_value_is_no_change(model_file: Path, sample_text: str) -> None:
    result = runner.invoke(app, ["set-field", str(model_file), "threats", "T01", "status", "Mitigate"])
    assert result.exit_code == 0, result.output
    assert "No change." in result.output
    assert model_file.read_text() == sample_text


def test_set_field_rejects_bad_input(model_file: Path, sample_text: str) -> None:
    assert runner.invoke(app, ["set-field", str(model_file), "widgets", "x", "name", "y"]).exit_code == 1
    assert runner.invoke(app, ["set-field", str(model_file), "threats", "T99", "name", "y"]).exit_code == 1
    assert runner.invoke(app, ["set-field", str(model_file), "assets", "A01", "color", "y"]).exit_code == 1
    assert model_file.read_text() == sample_text


def test_connect_creates_flow(model_file: Path) -> None:
    result = runner.invoke(app, ["connect", str(model_file), "web", "db"])
    assert result.exit_code == 0, result.output
    assert "Created data flow web->db" in result.output
    assert parse_model(model_file.read_text()).refs("data_flows") == ["web->api", "api->db", "web->db"]

    assert runner.invoke(app, ["connect", str(model_file), "web", "web"]).exit_code == 1


def test_save_and_list(model_file: Path, tmp_path: Path) -> None:
    data = tmp_path / "data"
    result = runner.invoke(app, ["save", str(model_file), "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    model_id = result.output.strip().splitlines()[-1].removeprefix("Saved as ")

    listed = runner.invoke(app, ["list", "--data-dir", str(data)])
    assert listed.exit_code == 0, listed.output
    assert "1 saved models:" in listed.output
    assert "Payments" in listed.output

    listed_json = runner.invoke(app, ["list", "--json", "--data-dir", str(data)])
    parsed = json.loads(listed_json.output)
    assert parsed["count"] == 1
    assert parsed["models"][0]["id"] == model_id


def test_save_with_name_and_id(model_file: Path, tmp_path: Path) -> None:
    data = tmp_path / "data"
    result = runner.invoke(app, ["save", str(model_file), "-n", "Checkout", "--id", "m1", "-d", str(data)])
    assert result.exit_code == 0, result.output
    assert "Saved as m1" in result.output
    stored = ModelStore(data / "flowstate.db").get_model("m1")
    assert stored is not None
    assert stored.name == "Checkout"


def test_recover_draft(tmp_path: Path) -> None:
    data = tmp_path / "data"
    assert "No recovery draft." in runner.invoke(app, ["recover", "--data-dir", str(data)]).output

    ModelStore(data / "flowstate.db").write_recovery_draft("Payments", "name: Payments\n")
    printed = runner.invoke(app, ["recover", "--data-dir", str(data)])
    assert printed.output == "name: Payments\n"

    target = tmp_path / "restored.yaml"
    restored = runner.invoke(app, ["recover", "-o", str(target), "--clear", "--data-dir", str(data)])
    assert restored.exit_code == 0, restored.output
    assert target.read_text() == "name: Payments\n"
    assert ModelStore(data / "flowstate.db").read_recovery_draft() is None


def test_log_file_captures_debug_output(model_file: Path, tmp_path: Path) -> None:
    log_file = tmp_path / "flowstate.log"
    result = runner.invoke(
        app, ["--log-file", str(log_file), "set-field", str(model_file), "components", "api", "name", "Gateway"]
    )
    assert result.exit_code == 0, result.output
    assert "Committed 'components.name'" in log_file.read_text()
