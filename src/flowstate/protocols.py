"""Protocols for dependency injection in the editing core."""

from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class TimerHandle(Protocol):
    """A pending timer that can be cancelled."""

    def cancel(self) -> None:
        """Stop the timer; a no-op once it has fired."""
        ...


@runtime_checkable
class Scheduler(Protocol):
    """Schedules callbacks after a delay in milliseconds."""

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay_ms``."""
        ...


@runtime_checkable
class PersistenceBackend(Protocol):
    """Destinations for saved document text.

    Methods are synchronous; the auto-saver runs them off the event loop.
    """

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
        """Overwrite the single crash-recovery draft."""
        ...

    def write_named_store_entry(
        self,
        model_id: str,
        content: str,
        name: str,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Update a saved model in the named store."""
        ...

    def request_write_permission(self, handle: Path, mode: str = "readwrite") -> bool:
        """Return whether ``handle`` may be written."""
        ...

    def write_to_file(self, handle: Path, content: str) -> float:
        """Write ``content`` and return the file's last-modified time in milliseconds."""
        ...


@runtime_checkable
class RemoteRepositoryClient(Protocol):
    """Protocol for remote repository (GitHub contents API) clients."""

    def get_file(self, owner: str, repo: str, path: str, *, ref: str | None = None) -> dict[str, Any]:
        """Return ``{"content": str, "sha": str}`` for a file."""
        ...

    def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        *,
        message: str,
        branch: str,
        sha: str | None = None,
    ) -> dict[str, Any]:
        """Create or update a file and return ``{"sha": str, "commit_sha": str}``."""
        ...
