"""CLI for flowstate threat models (inspect, edit, store, MCP server)."""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from loguru import logger

from flowstate.config import STORE_FILENAME, resolve_data_directory
from flowstate.core.fields import find_entity
from flowstate.core.state import DocumentState
from flowstate.logging_config import configure_logging
from flowstate.models.threat_model import COLLECTIONS, is_array_field, model_to_dict
from flowstate.storage import files
from flowstate.storage.model_store import ModelStore
from flowstate.text.codec import DocumentParseError

app = typer.Typer(help="flowstate: edit threat models as YAML, diagram, and tables at once.")

_DataDir = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Directory holding the model store"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help="Also write a debug log to this file"),
    ] = None,
) -> None:
    configure_logging(verbose=verbose, log_file=log_file)


def _load_state(path: Path) -> DocumentState:
    if not path.exists():
        logger.error("File not found: {}", path)
        raise typer.Exit(1)
    try:
        return DocumentState(path.read_text(encoding="utf-8"))
    except DocumentParseError as e:
        logger.error("Cannot parse {}: {}", path, e)
        raise typer.Exit(1) from e


def _open_store(data_dir: Path | None) -> ModelStore:
    return ModelStore((data_dir or resolve_data_directory()) / STORE_FILENAME)


def _parse_value(collection: str, field: str, raw: str) -> Any:
    """Array fields take a comma-separated list; an empty string clears the field."""
    if raw == "":
        return None
    if is_array_field(COLLECTIONS[collection], field):
        return [part.strip() for part in raw.split(",") if part.strip()]
    return raw


@app.command()
def show(
    path: Path = typer.Argument(..., help="Threat model YAML file"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Summarize a threat model."""
    state = _load_state(path)
    model = state.model
    if output_json:
        typer.echo(json.dumps(model_to_dict(model), indent=2))
        return
    typer.echo(f"{model.name or '(unnamed)'}  [schema {model.schema_version}]")
    if model.participants:
        typer.echo(f"  participants: {', '.join(model.participants)}")
    for collection in COLLECTIONS:
        refs = model.refs(collection)
        typer.echo(f"  {collection}: {len(refs)}")
        for ref in refs:
            typer.echo(f"    {ref}")


@app.command(name="set-field")
def set_field(
    path: Path = typer.Argument(..., help="Threat model YAML file"),
    collection: str = typer.Argument(..., help="Collection, e.g. components or threats"),
    ref: str = typer.Argument(..., help="Entity ref"),
    field: str = typer.Argument(..., help="Field name"),
    value: str = typer.Argument(..., help="New value; comma-separated for list fields"),
) -> None:
    """Edit one field of one entity and write the file back."""
    if collection not in COLLECTIONS:
        logger.error("Unknown collection {!r}, expected one of {}", collection, ", ".join(COLLECTIONS))
        raise typer.Exit(1)
    state = _load_state(path)
    if find_entity(state.model, collection, ref) is None:
        logger.error("No {} entry with ref {!r}", collection, ref)
        raise typer.Exit(1)
    before = state.text
    try:
        state.set_field(collection, ref, field, _parse_value(collection, field, value))
    except ValueError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from e
    if state.text == before:
        typer.echo("No change.")
        return
    files.write_to_file(path, state.text)
    typer.echo(f"Updated {collection}.{ref}.{field}")


@app.command()
def connect(
    path: Path = typer.Argument(..., help="Threat model YAML file"),
    source: str = typer.Argument(..., help="Source component ref"),
    target: str = typer.Argument(..., help="Destination component ref"),
) -> None:
    """Create a data flow between two components."""
    state = _load_state(path)
    ref = state.connect({"source": source, "target": target})
    if ref is None:
        logger.error("Cannot connect {!r} to {!r}", source, target)
        raise typer.Exit(1)
    files.write_to_file(path, state.text)
    typer.echo(f"Created data flow {ref}")


@app.command()
def save(
    path: Path = typer.Argument(..., help="Threat model YAML file"),
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Name in the store (default: the model name)"),
    ] = None,
    model_id: Annotated[
        str | None,
        typer.Option("--id", help="Overwrite the saved model with this id"),
    ] = None,
    data_dir: _DataDir = None,
) -> None:
    """Save a file into the named model store."""
    state = _load_state(path)
    store = _open_store(data_dir)
    saved_id = store.save_model(name or state.model.name or path.stem, state.text, model_id=model_id)
    typer.echo(f"Saved as {saved_id}")


@app.command(name="list")
def list_models(
    data_dir: _DataDir = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List models in the named store."""
    models = _open_store(data_dir).list_models()
    if output_json:
        data = {
            "count": len(models),
            "models": [{"id": m.id, "name": m.name, "updated_at": m.updated_at} for m in models],
        }
        typer.echo(json.dumps(data, indent=2))
        return
    typer.echo(f"{len(models)} saved models:\n")
    for m in models:
        dt = datetime.fromtimestamp(m.updated_at / 1000, tz=UTC)
        typer.echo(f"  {m.name}  {dt:%Y-%m-%d %H:%M}  [id={m.id}]")


@app.command()
def recover(
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the draft to this file instead of stdout"),
    ] = None,
    clear: bool = typer.Option(False, "--clear", help="Discard the draft afterwards"),
    data_dir: _DataDir = None,
) -> None:
    """Print (or restore) the auto-saved recovery draft."""
    store = _open_store(data_dir)
    draft = store.read_recovery_draft()
    if draft is None:
        typer.echo("No recovery draft.")
        return
    if output is not None:
        files.write_to_file(output, draft.content)
        typer.echo(f"Restored {draft.name!r} to {output}")
    else:
        typer.echo(draft.content, nl=False)
    if clear:
        store.clear_recovery_draft()


@app.command()
def mcp() -> None:
    """Start the MCP server (stdio transport)."""
    from flowstate.mcp.server import run_mcp_server

    run_mcp_server()
