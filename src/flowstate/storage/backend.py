"""Persistence backend over the SQLite store and local files."""

from pathlib import Path
from typing import Any

from flowstate.storage import files
from flowstate.storage.model_store import ModelStore


class LocalBackend:
    """Implements ``PersistenceBackend`` for a desktop session."""

    def __init__(self, store: ModelStore) -> None:
        self.store = store

    def write_recovery_slot(
        self,
        name: str,
        content: str,
        *,
        metadata: dict[str, Any] | None = None,
        source_meta: dict[str, Any] | None = None,
        last_source_save_at: float | None = None,
        is_dirty: bool | None = None,
    ) -> None:
        self.store.write_recovery_draft(
            name,
            content,
            metadata=metadata,
            source_meta=source_meta,
            last_source_save_at=last_source_save_at,
            is_dirty=is_dirty,
        )

    def write_named_store_entry(
        self,
        model_id: str,
        content: str,
        name: str,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.store.update_model(model_id, content, name, metadata=metadata)

    def request_write_permission(self, handle: Path, mode: str = "readwrite") -> bool:
        return files.request_write_permission(handle, mode)

    def write_to_file(self, handle: Path, content: str) -> float:
        return files.write_to_file(handle, content)
