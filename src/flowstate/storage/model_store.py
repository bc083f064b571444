"""Named model store and crash-recovery draft, backed by SQLite."""

import json
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from flowstate.storage.schema import migrate_schema


@dataclass(frozen=True)
class StoredModel:
    """A saved model in the named store."""

    id: str
    name: str
    content: str
    metadata: dict[str, Any] | None
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class RecoveryDraft:
    """The single auto-saved draft used to recover after a crash."""

    name: str
    content: str
    metadata: dict[str, Any] | None
    source_meta: dict[str, Any] | None
    last_source_save_at: float | None
    is_dirty: bool | None
    saved_at: int


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dump(value: dict[str, Any] | None) -> str | None:
    return json.dumps(value, sort_keys=True) if value is not None else None


def _load(raw: str | None) -> dict[str, Any] | None:
    return json.loads(raw) if raw else None


class ModelStore:
    """SQLite-backed store. Each call opens its own connection, so it is safe from worker threads."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect():
            pass
        logger.debug("Model store ready at {}", self.db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path))
        try:
            migrate_schema(conn)
            yield conn
            conn.commit()
        finally:
            conn.close()

    # --- named store ---

    def save_model(
        self,
        name: str,
        content: str,
        *,
        model_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Insert or replace a model and return its id."""
        model_id = model_id or uuid.uuid4().hex
        now = _now_ms()
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO models (id, name, content, metadata, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       name = excluded.name,
                       content = excluded.content,
                       metadata = excluded.metadata,
                       updated_at = excluded.updated_at""",
                (model_id, name, content, _dump(metadata), now, now),
            )
        return model_id

    def update_model(
        self,
        model_id: str,
        content: str,
        name: str,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Overwrite an existing model.

        Raises:
            KeyError: No model with that id.
        """
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE models SET name = ?, content = ?, metadata = COALESCE(?, metadata), "
                "updated_at = ? WHERE id = ?",
                (name, content, _dump(metadata), _now_ms(), model_id),
            )
            if cur.rowcount == 0:
                msg = f"No saved model with id {model_id!r}"
                raise KeyError(msg)

    def get_model(self, model_id: str) -> StoredModel | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, name, content, metadata, created_at, updated_at FROM models WHERE id = ?",
                (model_id,),
            ).fetchone()
        if row is None:
            return None
        return StoredModel(row[0], row[1], row[2], _load(row[3]), row[4], row[5])

    def list_models(self) -> list[StoredModel]:
        """All saved models, most recently updated first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, name, content, metadata, created_at, updated_at "
                "FROM models ORDER BY updated_at DESC, name"
            ).fetchall()
        return [StoredModel(r[0], r[1], r[2], _load(r[3]), r[4], r[5]) for r in rows]

    def delete_model(self, model_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM models WHERE id = ?", (model_id,))
            return cur.rowcount > 0

    # --- recovery draft ---

    def write_recovery_draft(
        self,
        name: str,
        content: str,
        *,
        metadata: dict[str, Any] | None = None,
        source_meta: dict[str, Any] | None = None,
        last_source_save_at: float | None = None,
        is_dirty: bool | None = None,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """INSERT OR REPLACE INTO recovery_draft
                   (slot, name, content, metadata, source_meta, last_source_save_at, is_dirty, saved_at)
                   VALUES (1, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    name,
                    content,
                    _dump(metadata),
                    _dump(source_meta),
                    last_source_save_at,
                    None if is_dirty is None else int(is_dirty),
                    _now_ms(),
                ),
            )

    def read_recovery_draft(self) -> RecoveryDraft | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT name, content, metadata, source_meta, last_source_save_at, is_dirty, saved_at "
                "FROM recovery_draft WHERE slot = 1"
            ).fetchone()
        if row is None:
            return None
        return RecoveryDraft(
            name=row[0],
            content=row[1],
            metadata=_load(row[2]),
            source_meta=_load(row[3]),
            last_source_save_at=row[4],
            is_dirty=None if row[5] is None else bool(row[5]),
            saved_at=row[6],
        )

    def clear_recovery_draft(self) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM recovery_draft")
