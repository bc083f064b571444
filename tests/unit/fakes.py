"""Fake implementations for testing the editing core and persistence."""

from collections.abc import Callable
from pathlib import Path
from typing import Any


class FakeTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Virtual clock in milliseconds.

    Timers fire only from ``advance``, in due order, with ``now`` set to
    their due time while the callback runs.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay_ms, callback)
        self.timers.append(timer)
        return timer

    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, ms: float) -> None:
        target = self.now + ms
        while True:
            due = [t for t in self.pending() if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self.now = timer.due
            timer.fired = True
            timer.callback()
        self.now = target


class FakeBackend:
    """In-memory persistence backend.

    Records every call as ``(kind, value, virtual time)`` for assertions.
    """

    def __init__(self, clock: FakeScheduler | None = None) -> None:
        self.clock = clock
        self.calls: list[tuple[str, Any, float]] = []
        self.recovery: dict[str, Any] | None = None
        self.named: dict[str, str] = {}
        self.files: dict[Path, str] = {}
        self.fail_recovery = False
        self.fail_file = False
        self.deny_permission = False

    def _now(self) -> float:
        return self.clock.now if self.clock else 0.0

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
        self.calls.append(("recovery", content, self._now()))
        if self.fail_recovery:
            msg = "recovery slot unavailable"
            raise OSError(msg)
        self.recovery = {
            "name": name,
            "content": content,
            "metadata": metadata,
            "source_meta": source_meta,
            "last_source_save_at": last_source_save_at,
            "is_dirty": is_dirty,
        }

    def write_named_store_entry(
        self,
        model_id: str,
        content: str,
        name: str,
        *,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.calls.append(("named", content, self._now()))
        self.named[model_id] = content

    def request_write_permission(self, handle: Path, mode: str = "readwrite") -> bool:
        self.calls.append(("permission", str(handle), self._now()))
        return not self.deny_permission

    def write_to_file(self, handle: Path, content: str) -> float:
        self.calls.append(("file", content, self._now()))
        if self.fail_file:
            msg = f"cannot write {handle}"
            raise OSError(msg)
        self.files[handle] = content
        return 1234.0

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.calls]


class FakeGitHub:
    """In-memory fake for GitHubClient with sha conflict checks."""

    def __init__(self) -> None:
        self.files: dict[tuple[str, str, str], tuple[str, str]] = {}
        self.commits: list[dict[str, Any]] = []

    def add_file(self, owner: str, repo: str, path: str, content: str, sha: str) -> None:
        self.files[owner, repo, path] = (content, sha)

    def get_file(self, owner: str, repo: str, path: str, *, ref: str | None = None) -> dict[str, Any]:
        try:
            content, sha = self.files[owner, repo, path]
        except KeyError:
            msg = f"FakeGitHub: no file {owner}/{repo}/{path}"
            raise RuntimeError(msg) from None
        return {"content": content, "sha": sha}

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
        existing = self.files.get((owner, repo, path))
        if existing is not None and existing[1] != sha:
            msg = "FakeGitHub: sha does not match"
            raise RuntimeError(msg)
        new_sha = f"sha-{len(self.commits) + 1}"
        self.files[owner, repo, path] = (content, new_sha)
        self.commits.append({"path": path, "message": message, "branch": branch, "sha": sha})
        return {"sha": new_sha, "commit_sha": f"commit-{len(self.commits)}"}
