"""Where the open document is bound for quick save, and whether it is dirty."""

import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, assert_never

from loguru import logger

from flowstate.protocols import PersistenceBackend, RemoteRepositoryClient


@dataclass(frozen=True)
class NamedStoreSource:
    model_id: str
    model_name: str


@dataclass(frozen=True)
class FileSource:
    handle: Path
    file_name: str


@dataclass(frozen=True)
class RemoteRepositorySource:
    """A file in a GitHub repository, with the blob sha it was loaded at."""

    domain: str
    owner: str
    repository: str
    branch: str
    path: str
    sha: str | None = None
    loaded_at: float | None = None


SaveSource = NamedStoreSource | FileSource | RemoteRepositorySource | None


def describe_save_source(source: SaveSource) -> str:
    """Short label for status displays."""
    if source is None:
        return "Not saved"
    if isinstance(source, NamedStoreSource):
        return f"Saved model: {source.model_name}"
    if isinstance(source, FileSource):
        return f"File: {source.file_name}"
    if isinstance(source, RemoteRepositorySource):
        return f"GitHub: {source.owner}/{source.repository}@{source.branch}:{source.path}"
    assert_never(source)


def source_metadata(source: SaveSource) -> dict[str, Any] | None:
    """JSON-safe description of a source, stored alongside the recovery draft."""
    if source is None:
        return None
    if isinstance(source, NamedStoreSource):
        return {"type": "named_store", "model_id": source.model_id, "model_name": source.model_name}
    if isinstance(source, FileSource):
        return {"type": "file", "handle": str(source.handle), "file_name": source.file_name}
    if isinstance(source, RemoteRepositorySource):
        return {
            "type": "remote_repository",
            "domain": source.domain,
            "owner": source.owner,
            "repository": source.repository,
            "branch": source.branch,
            "path": source.path,
            "sha": source.sha,
            "loaded_at": source.loaded_at,
        }
    assert_never(source)


def source_from_metadata(meta: dict[str, Any] | None) -> SaveSource:
    """Inverse of ``source_metadata``; unknown shapes yield no source."""
    if not meta:
        return None
    kind = meta.get("type")
    try:
        if kind == "named_store":
            return NamedStoreSource(meta["model_id"], meta["model_name"])
        if kind == "file":
            return FileSource(Path(meta["handle"]), meta["file_name"])
        if kind == "remote_repository":
            return RemoteRepositorySource(
                meta["domain"],
                meta["owner"],
                meta["repository"],
                meta["branch"],
                meta["path"],
                sha=meta.get("sha"),
                loaded_at=meta.get("loaded_at"),
            )
    except KeyError:
        logger.warning("Ignoring incomplete save source metadata: {!r}", meta)
    return None


@dataclass
class SaveState:
    """Binding and dirty tracking for the open document."""

    source: SaveSource = None
    last_saved_content: str | None = None
    last_saved_at: float | None = None
    is_dirty: bool = False

    def mark_dirty(self) -> None:
        self.is_dirty = True

    def update_content(self, content: str) -> None:
        self.is_dirty = content != self.last_saved_content

    def mark_saved(self, content: str, source: SaveSource) -> None:
        self.source = source
        self.last_saved_content = content
        self.last_saved_at = time.time() * 1000
        self.is_dirty = False


def quick_save(
    source: SaveSource,
    name: str,
    content: str,
    *,
    backend: PersistenceBackend,
    remote: RemoteRepositoryClient | None = None,
    commit_message: str | None = None,
) -> SaveSource:
    """Save to the bound destination.

    Returns:
        The source after saving (a remote source carries the new blob sha),
        or None when nothing is bound and the caller must ask for a destination.

    Raises:
        PermissionError: The bound file cannot be written.
        ValueError: A remote source without a client.
    """
    if source is None:
        return None
    if isinstance(source, NamedStoreSource):
        backend.write_named_store_entry(source.model_id, content, name)
        logger.info("Saved {!r} to saved model {}", name, source.model_id)
        return source
    if isinstance(source, FileSource):
        if not backend.request_write_permission(source.handle, "readwrite"):
            msg = f"Write permission denied for {source.handle}"
            raise PermissionError(msg)
        backend.write_to_file(source.handle, content)
        logger.info("Saved {!r} to {}", name, source.handle)
        return source
    if isinstance(source, RemoteRepositorySource):
        if remote is None:
            msg = "Saving to a remote repository needs a repository client"
            raise ValueError(msg)
        result = remote.put_file(
            source.owner,
            source.repository,
            source.path,
            content,
            message=commit_message or f"Update {source.path}",
            branch=source.branch,
            sha=source.sha,
        )
        logger.info("Committed {!r} to {}/{}", name, source.owner, source.repository)
        return replace(source, sha=result["sha"], loaded_at=time.time() * 1000)
    assert_never(source)
