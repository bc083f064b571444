"""MCP server exposing threat model editing tools."""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from flowstate.config import STORE_FILENAME, resolve_data_directory
from flowstate.core.fields import find_entity
from flowstate.core.state import DocumentState
from flowstate.models.threat_model import COLLECTIONS, model_to_dict
from flowstate.storage import files
from flowstate.storage.model_store import ModelStore
from flowstate.text.codec import DocumentParseError


@dataclass
class OpenDocument:
    """A document opened by a client, with where it came from."""

    state: DocumentState
    path: Path | None = None
    model_id: str | None = None


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    store: ModelStore
    documents: dict[str, OpenDocument] = field(default_factory=dict)


def _summary(doc_id: str, doc: OpenDocument) -> dict[str, Any]:
    model = doc.state.model
    return {
        "document_id": doc_id,
        "name": model.name,
        "path": str(doc.path) if doc.path else None,
        "model_id": doc.model_id,
        "counts": {name: len(model.collection(name)) for name in COLLECTIONS},
        "can_undo": doc.state.history.can_undo,
        "can_redo": doc.state.history.can_redo,
    }


def _lookup(ctx: ServerContext, document_id: str) -> OpenDocument | dict[str, Any]:
    doc = ctx.documents.get(document_id)
    if doc is None:
        return {"error": f"Document '{document_id}' is not open."}
    return doc


def _check_entity(doc: OpenDocument, collection: str, ref: str) -> dict[str, Any] | None:
    if collection not in COLLECTIONS:
        return {"error": f"Unknown collection '{collection}'. Expected one of: {', '.join(COLLECTIONS)}."}
    if find_entity(doc.state.model, collection, ref) is None:
        return {"error": f"No {collection} entry with ref '{ref}'."}
    return None


# --- Core functions (testable without MCP context) ---


def flowstate_open_model(
    ctx: ServerContext,
    *,
    path: str | None = None,
    model_id: str | None = None,
    text: str | None = None,
) -> dict[str, Any]:
    """Open a threat model from a file, the named store, or raw YAML text.

    Exactly one of the arguments must be given.

    Args:
        path: Path to a YAML file.
        model_id: Id of a model in the named store.
        text: YAML text of a new, unsaved model.
    """
    if sum(arg is not None for arg in (path, model_id, text)) != 1:
        return {"error": "Pass exactly one of path, model_id, or text."}

    file_path: Path | None = None
    if path is not None:
        file_path = Path(path).expanduser()
        if not file_path.exists():
            return {"error": f"File '{path}' not found."}
        content = file_path.read_text(encoding="utf-8")
    elif model_id is not None:
        stored = ctx.store.get_model(model_id)
        if stored is None:
            return {"error": f"Saved model '{model_id}' not found."}
        content = stored.content
    else:
        content = text or ""

    try:
        state = DocumentState(content)
    except DocumentParseError as e:
        return {"error": f"Cannot parse model: {e}"}

    doc_id = uuid.uuid4().hex[:12]
    ctx.documents[doc_id] = OpenDocument(state=state, path=file_path, model_id=model_id)
    logger.info("Opened document {} ({})", doc_id, state.model.name)
    return _summary(doc_id, ctx.documents[doc_id])


def flowstate_get_model(
    ctx: ServerContext,
    *,
    document_id: str,
    output_format: str = "yaml",
) -> dict[str, Any]:
    """Return the current model as YAML text or structured JSON.

    Args:
        document_id: Id returned by open_model.
        output_format: "yaml" or "json".
    """
    doc = _lookup(ctx, document_id)
    if isinstance(doc, dict):
        return doc
    result = _summary(document_id, doc)
    if output_format == "json":
        result["model"] = model_to_dict(doc.state.model)
    else:
        result["content"] = doc.state.text
    return result


def flowstate_set_field(
    ctx: ServerContext,
    *,
    document_id: str,
    collection: str,
    ref: str,
    field_name: str,
    value: Any,
) -> dict[str, Any]:
    """Set one field of one entity.

    Args:
        document_id: Id returned by open_model.
        collection: assets, components, data_flows, boundaries, threats, or controls.
        ref: Entity ref.
        field_name: Field to set.
        value: New value; a list for list fields, null to clear.
    """
    doc = _lookup(ctx, document_id)
    if isinstance(doc, dict):
        return doc
    if error := _check_entity(doc, collection, ref):
        return error
    before = doc.state.text
    try:
        doc.state.set_field(collection, ref, field_name, value)
    except ValueError as e:
        return {"error": str(e)}
    result = _summary(document_id, doc)
    result["changed"] = doc.state.text != before
    return result


def flowstate_connect_components(
    ctx: ServerContext,
    *,
    document_id: str,
    source: str,
    target: str,
    source_handle: str | None = None,
    target_handle: str | None = None,
) -> dict[str, Any]:
    """Create a data flow from one component to another.

    Args:
        document_id: Id returned by open_model.
        source: Source component ref.
        target: Destination component ref.
        source_handle: Optional connection point on the source, e.g. "right-1".
        target_handle: Optional connection point on the destination.
    """
    doc = _lookup(ctx, document_id)
    if isinstance(doc, dict):
        return doc
    ref = doc.state.connect(
        {"source": source, "target": target, "source_handle": source_handle, "target_handle": target_handle}
    )
    if ref is None:
        return {"error": f"Cannot connect '{source}' to '{target}'. Both must be distinct component refs."}
    result = _summary(document_id, doc)
    result["ref"] = ref
    return result


def flowstate_add_entity(ctx: ServerContext, *, document_id: str, collection: str) -> dict[str, Any]:
    """Add a new entity with a generated ref and name.

    Args:
        document_id: Id returned by open_model.
        collection: assets, components, boundaries, threats, or controls.
    """
    doc = _lookup(ctx, document_id)
    if isinstance(doc, dict):
        return doc
    state = doc.state
    adders = {
        "assets": state.add_asset,
        "threats": state.add_threat,
        "controls": state.add_control,
        "components": lambda: state.add_component(100, 100),
        "boundaries": lambda: state.add_boundary(50, 50),
    }
    adder = adders.get(collection)
    if adder is None:
        return {"error": f"Cannot add to '{collection}'. Expected one of: {', '.join(adders)}."}
    ref = adder()
    result = _summary(document_id, doc)
    result["ref"] = ref
    return result


def flowstate_delete_entity(
    ctx: ServerContext, *, document_id: str, collection: str, ref: str
) -> dict[str, Any]:
    """Delete an entity and every reference to it.

    Deleting a component also deletes its data flows.

    Args:
        document_id: Id returned by open_model.
        collection: Collection of the entity.
        ref: Entity ref.
    """
    doc = _lookup(ctx, document_id)
    if isinstance(doc, dict):
        return doc
    if error := _check_entity(doc, collection, ref):
        return error
    doc.state.remove_entity(collection, ref)
    return _summary(document_id, doc)


def flowstate_undo(ctx: ServerContext, *, document_id: str) -> dict[str, Any]:
    """Undo the last edit."""
    doc = _lookup(ctx, document_id)
    if isinstance(doc, dict):
        return doc
    done = doc.state.undo()
    result = _summary(document_id, doc)
    result["undone"] = done
    return result


def flowstate_redo(ctx: ServerContext, *, document_id: str) -> dict[str, Any]:
    """Redo the last undone edit."""
    doc = _lookup(ctx, document_id)
    if isinstance(doc, dict):
        return doc
    done = doc.state.redo()
    result = _summary(document_id, doc)
    result["redone"] = done
    return result


def flowstate_save_model(
    ctx: ServerContext,
    *,
    document_id: str,
    path: str | None = None,
    name: str | None = None,
) -> dict[str, Any]:
    """Save the document to its file, a new file, or the named store.

    Args:
        document_id: Id returned by open_model.
        path: Write to this file and bind it for later saves.
        name: Store under this name in the named store (when no file is bound).
    """
    doc = _lookup(ctx, document_id)
    if isinstance(doc, dict):
        return doc
    content = doc.state.text
    if path is not None:
        doc.path = Path(path).expanduser()

    if doc.path is not None:
        if not files.request_write_permission(doc.path, "readwrite"):
            return {"error": f"No write permission for '{doc.path}'."}
        files.write_to_file(doc.path, content)
        logger.info("Saved document {} to {}", document_id, doc.path)
        result = _summary(document_id, doc)
        result["saved_to"] = str(doc.path)
        return result

    doc.model_id = ctx.store.save_model(
        name or doc.state.model.name or "Untitled", content, model_id=doc.model_id
    )
    logger.info("Saved document {} as stored model {}", document_id, doc.model_id)
    result = _summary(document_id, doc)
    result["saved_to"] = f"store:{doc.model_id}"
    return result


def flowstate_list_saved(ctx: ServerContext) -> dict[str, Any]:
    """List models in the named store."""
    models = ctx.store.list_models()
    return {
        "models": [{"model_id": m.id, "name": m.name, "updated_at": m.updated_at} for m in models],
        "count": len(models),
    }


# --- MCP Server Setup ---


def _resolve_store_path() -> Path:
    return resolve_data_directory() / STORE_FILENAME


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the model store on startup, close open documents on shutdown."""
    ctx = ServerContext(store=ModelStore(_resolve_store_path()))
    try:
        yield ctx
    finally:
        for doc in ctx.documents.values():
            doc.state.close()
        ctx.documents.clear()


mcp_server = FastMCP(
    "flowstate",
    instructions="""\
flowstate edits threat models: assets, components, data flows, trust boundaries,
threats, and controls, kept as YAML.

## Workflow

1. Open a model with flowstate_open_model_tool (file path, saved model id, or
   YAML text). Keep the returned document_id.
2. Inspect it with flowstate_get_model_tool.
3. Edit with flowstate_set_field_tool, flowstate_add_entity_tool,
   flowstate_connect_components_tool, and flowstate_delete_entity_tool.
   Every edit is one undo step.
4. Save with flowstate_save_model_tool.

## Tips
- Data flow refs are derived from their endpoints ("a->b", "a<->b") and change
  when the direction changes; threats referencing them are updated too.
- Deleting a component removes its data flows and every reference to it.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def flowstate_open_model_tool(
    ctx: Context,
    path: str | None = None,
    model_id: str | None = None,
    text: str | None = None,
) -> dict[str, Any]:
    """Open a threat model and return its document_id.

    Args:
        path: Path to a YAML file.
        model_id: Id of a model in the named store.
        text: YAML text of a new, unsaved model.
    """
    return flowstate_open_model(_ctx(ctx), path=path, model_id=model_id, text=text)


@mcp_server.tool()
async def flowstate_get_model_tool(
    ctx: Context,
    document_id: str,
    output_format: str = "yaml",
) -> dict[str, Any]:
    """Return the current model as YAML ("yaml") or structured JSON ("json")."""
    return flowstate_get_model(_ctx(ctx), document_id=document_id, output_format=output_format)


@mcp_server.tool()
async def flowstate_set_field_tool(
    ctx: Context,
    document_id: str,
    collection: str,
    ref: str,
    field_name: str,
    value: Any = None,
) -> dict[str, Any]:
    """Set one field of one entity.

    Changing a data flow's direction renames its ref everywhere.

    Args:
        document_id: Id returned by flowstate_open_model_tool.
        collection: assets, components, data_flows, boundaries, threats, or controls.
        ref: Entity ref.
        field_name: Field to set, e.g. name, description, status, affected_components.
        value: New value; a list for list fields, null to clear.
    """
    return flowstate_set_field(
        _ctx(ctx),
        document_id=document_id,
        collection=collection,
        ref=ref,
        field_name=field_name,
        value=value,
    )


@mcp_server.tool()
async def flowstate_connect_components_tool(
    ctx: Context,
    document_id: str,
    source: str,
    target: str,
    source_handle: str | None = None,
    target_handle: str | None = None,
) -> dict[str, Any]:
    """Create a data flow between two components and return its ref."""
    return flowstate_connect_components(
        _ctx(ctx),
        document_id=document_id,
        source=source,
        target=target,
        source_handle=source_handle,
        target_handle=target_handle,
    )


@mcp_server.tool()
async def flowstate_add_entity_tool(ctx: Context, document_id: str, collection: str) -> dict[str, Any]:
    """Add a new asset, component, boundary, threat, or control and return its ref."""
    return flowstate_add_entity(_ctx(ctx), document_id=document_id, collection=collection)


@mcp_server.tool()
async def flowstate_delete_entity_tool(
    ctx: Context, document_id: str, collection: str, ref: str
) -> dict[str, Any]:
    """Delete an entity and every reference to it."""
    return flowstate_delete_entity(_ctx(ctx), document_id=document_id, collection=collection, ref=ref)


@mcp_server.tool()
async def flowstate_undo_tool(ctx: Context, document_id: str) -> dict[str, Any]:
    """Undo the last edit of a document."""
    return flowstate_undo(_ctx(ctx), document_id=document_id)


@mcp_server.tool()
async def flowstate_redo_tool(ctx: Context, document_id: str) -> dict[str, Any]:
    """Redo the last undone edit of a document."""
    return flowstate_redo(_ctx(ctx), document_id=document_id)


@mcp_server.tool()
async def flowstate_save_model_tool(
    ctx: Context,
    document_id: str,
    path: str | None = None,
    name: str | None = None,
) -> dict[str, Any]:
    """Save a document to its file, a new file (path), or the named store (name)."""
    return flowstate_save_model(_ctx(ctx), document_id=document_id, path=path, name=name)


@mcp_server.tool()
async def flowstate_list_saved_tool(ctx: Context) -> dict[str, Any]:
    """List models in the named store."""
    return flowstate_list_saved(_ctx(ctx))


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from flowstate.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
