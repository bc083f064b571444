"""Debounced auto-save of the document text.

After ``delay_ms`` without a change, one save cycle writes the recovery
draft, then the bound saved model and file when the settings allow it.
Backend calls run in a worker thread so editing never waits on disk or
network.
"""

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

from loguru import logger

from flowstate.config import AUTOSAVE_DELAY_MS
from flowstate.core.scheduling import LoopScheduler
from flowstate.persistence.settings import AutoSaveSettings
from flowstate.protocols import PersistenceBackend, Scheduler, TimerHandle


class AutoSaver:
    """Watches ``(name, content)`` and writes it out after a quiet period.

    Destinations are bound by assigning ``model_id`` and ``file_handle``.
    Only one save cycle runs at a time; a timer that fires mid-cycle is
    re-armed instead.
    """

    def __init__(
        self,
        backend: PersistenceBackend,
        settings: AutoSaveSettings,
        scheduler: Scheduler | None = None,
        *,
        initial_content: str = "",
        delay_ms: float = AUTOSAVE_DELAY_MS,
        on_error: Callable[[Exception], None] | None = None,
        on_file_written: Callable[[float], None] | None = None,
    ) -> None:
        self.backend = backend
        self.settings = settings
        self.delay_ms = delay_ms
        self.on_error = on_error
        self.on_file_written = on_file_written

        self.model_id: str | None = None
        self.file_handle: Path | None = None
        self.metadata: dict[str, Any] | None = None
        self.source_meta: dict[str, Any] | None = None
        self.last_source_save_at: float | None = None
        self.is_dirty: bool | None = None

        self._scheduler = scheduler or LoopScheduler()
        self._last_saved = initial_content
        self._timer: TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self._saving = False
        self._closed = False

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def is_pending(self) -> bool:
        return self._timer is not None

    def notify(self, name: str, content: str) -> None:
        """Report the current text; any change restarts the quiet period."""
        if self._closed:
            return
        self._cancel_timer()
        if content == self._last_saved:
            return
        self._arm(name, content)

    def close(self) -> None:
        """Cancel the pending timer; a running cycle finishes without callbacks."""
        self._closed = True
        self._cancel_timer()

    async def drain(self) -> None:
        """Wait for the in-flight save cycle, if any."""
        if self._task is not None:
            await self._task

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm(self, name: str, content: str) -> None:
        self._timer = self._scheduler.call_later(self.delay_ms, lambda: self._fire(name, content))

    def _fire(self, name: str, content: str) -> None:
        self._timer = None
        if self._closed:
            return
        if self._saving:
            logger.debug("Save in progress, delaying auto-save")
            self._arm(name, content)
            return
        self._saving = True
        self._task = asyncio.get_running_loop().create_task(self._save_cycle(name, content))

    async def _save_cycle(self, name: str, content: str) -> None:
        try:
            try:
                await asyncio.to_thread(
                    self.backend.write_recovery_slot,
                    name,
                    content,
                    metadata=self.metadata,
                    source_meta=self.source_meta,
                    last_source_save_at=self.last_source_save_at,
                    is_dirty=self.is_dirty,
                )
            except Exception as e:
                logger.error("Auto-save of recovery draft failed: {}", e)
                if self.on_error is not None and not self._closed:
                    self.on_error(e)
                return
            self._last_saved = content
            logger.debug("Auto-saved recovery draft for {!r}", name)

            if self.settings.auto_save_named_store and self.model_id:
                await self._save_named(name, content, self.model_id)
            if self.settings.auto_save_local_files and self.file_handle is not None:
                await self._save_file(content, self.file_handle)
        finally:
            self._saving = False

    async def _save_named(self, name: str, content: str, model_id: str) -> None:
        try:
            await asyncio.to_thread(
                self.backend.write_named_store_entry, model_id, content, name, metadata=self.metadata
            )
        except Exception:
            logger.warning("Auto-save to saved model {} failed", model_id, exc_info=True)
            return
        logger.info("Auto-saved {!r} to saved model {}", name, model_id)

    async def _save_file(self, content: str, handle: Path) -> None:
        try:
            granted = await asyncio.to_thread(self.backend.request_write_permission, handle, "readwrite")
            if not granted:
                logger.debug("No write permission for {}, skipping this auto-save", handle)
                return
            last_modified = await asyncio.to_thread(self.backend.write_to_file, handle, content)
        except Exception:
            logger.warning("Auto-save to {} failed", handle, exc_info=True)
            return
        logger.info("Auto-saved to {}", handle)
        if self.on_file_written is not None and not self._closed:
            self.on_file_written(last_modified)
