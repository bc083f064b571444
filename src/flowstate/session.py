"""One open document: the state core wired to save tracking and auto-save."""

from collections.abc import Callable
from pathlib import Path

from loguru import logger

from flowstate.config import AUTOSAVE_DELAY_MS
from flowstate.core.state import DocumentState
from flowstate.persistence.autosave import AutoSaver
from flowstate.persistence.save_state import (
    FileSource,
    NamedStoreSource,
    SaveSource,
    SaveState,
    describe_save_source,
    quick_save,
    source_metadata,
)
from flowstate.persistence.settings import AutoSaveSettings
from flowstate.protocols import PersistenceBackend, RemoteRepositoryClient, Scheduler
from flowstate.storage import files


class EditorSession:
    """Every text change marks the document dirty and re-arms the auto-saver."""

    def __init__(
        self,
        text: str,
        *,
        backend: PersistenceBackend,
        settings: AutoSaveSettings | None = None,
        scheduler: Scheduler | None = None,
        source: SaveSource = None,
        remote: RemoteRepositoryClient | None = None,
        autosave_delay_ms: float = AUTOSAVE_DELAY_MS,
        on_autosave_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.backend = backend
        self.remote = remote
        self.state = DocumentState(text, scheduler=scheduler)
        self.save_state = SaveState(source=source, last_saved_content=text)
        self.autosaver = AutoSaver(
            backend,
            settings or AutoSaveSettings(),
            scheduler,
            initial_content=text,
            delay_ms=autosave_delay_ms,
            on_error=on_autosave_error,
            on_file_written=self._file_written,
        )
        self.file_last_modified: float | None = None
        if isinstance(source, FileSource) and source.handle.exists():
            self.file_last_modified = files.last_modified_ms(source.handle)
        self._bind(source)
        self.state.subscribe(self._text_changed)

    @classmethod
    def open_file(
        cls,
        path: Path,
        *,
        backend: PersistenceBackend,
        settings: AutoSaveSettings | None = None,
        scheduler: Scheduler | None = None,
    ) -> "EditorSession":
        """Open a local file; parse errors propagate as ``DocumentParseError``."""
        snapshot = files.read_file(path)
        session = cls(
            snapshot.content,
            backend=backend,
            settings=settings,
            scheduler=scheduler,
            source=FileSource(path, path.name),
        )
        session.file_last_modified = snapshot.last_modified
        return session

    @property
    def source(self) -> SaveSource:
        return self.save_state.source

    @property
    def is_dirty(self) -> bool:
        return self.save_state.is_dirty

    @property
    def status(self) -> str:
        label = describe_save_source(self.source)
        return f"{label} (modified)" if self.is_dirty else label

    def _bind(self, source: SaveSource) -> None:
        self.autosaver.model_id = source.model_id if isinstance(source, NamedStoreSource) else None
        self.autosaver.file_handle = source.handle if isinstance(source, FileSource) else None
        self.autosaver.source_meta = source_metadata(source)
        self.autosaver.last_source_save_at = self.save_state.last_saved_at
        self.autosaver.is_dirty = self.save_state.is_dirty

    def _text_changed(self, name: str, text: str) -> None:
        self.save_state.update_content(text)
        self.autosaver.is_dirty = self.save_state.is_dirty
        self.autosaver.notify(name, text)

    def _file_written(self, last_modified: float) -> None:
        self.file_last_modified = last_modified

    def quick_save(self, *, commit_message: str | None = None) -> bool:
        """Save to the bound source; False when there is none and "save as" is needed."""
        content = self.state.text
        saved = quick_save(
            self.source,
            self.state.model.name,
            content,
            backend=self.backend,
            remote=self.remote,
            commit_message=commit_message,
        )
        if saved is None:
            return False
        self.save_state.mark_saved(content, saved)
        if isinstance(saved, FileSource):
            self.file_last_modified = files.last_modified_ms(saved.handle)
        self._bind(saved)
        return True

    def save_as(self, source: NamedStoreSource | FileSource, *, commit_message: str | None = None) -> bool:
        """Bind a new destination and save to it."""
        previous = self.save_state.source
        self.save_state.source = source
        try:
            return self.quick_save(commit_message=commit_message)
        except Exception:
            self.save_state.source = previous
            raise

    def has_external_change(self) -> bool:
        """Whether the bound file was modified on disk by someone else."""
        source = self.source
        if not isinstance(source, FileSource):
            return False
        return files.has_external_change(source.handle, self.file_last_modified)

    def reload_from_file(self) -> None:
        """Adopt the bound file's current content as a new undoable step."""
        source = self.source
        if not isinstance(source, FileSource):
            msg = "Only a file source can be reloaded"
            raise ValueError(msg)
        snapshot = files.read_file(source.handle)
        self.state.replace_text(snapshot.content)
        self.save_state.mark_saved(snapshot.content, source)
        self.file_last_modified = snapshot.last_modified
        self._bind(source)
        logger.info("Reloaded {} from disk", source.handle)

    def close(self) -> None:
        self.state.close()
        self.autosaver.close()
