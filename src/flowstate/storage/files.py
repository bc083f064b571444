"""Local file handles: permission checks, writes, and external-change detection."""

import os
from dataclasses import dataclass
from pathlib import Path

from loguru import logger


@dataclass(frozen=True)
class FileSnapshot:
    """File content with its modification time in milliseconds."""

    content: str
    last_modified: float


def request_write_permission(handle: Path, mode: str = "readwrite") -> bool:
    """Return whether ``handle`` can be written (and read, for ``readwrite``).

    A file that does not exist yet is writable when its directory is.
    """
    if mode not in ("read", "readwrite"):
        msg = f"Unknown permission mode {mode!r}"
        raise ValueError(msg)
    flags = os.R_OK
    if mode == "readwrite":
        flags |= os.W_OK
    target = handle if handle.exists() else handle.parent
    granted = os.access(target, flags)
    if not granted:
        logger.debug("Permission {} denied for {}", mode, handle)
    return granted


def last_modified_ms(handle: Path) -> float:
    return handle.stat().st_mtime * 1000


def write_to_file(handle: Path, content: str) -> float:
    """Write ``content`` unless the file already holds it; return last-modified ms."""
    try:
        if handle.read_text(encoding="utf-8") == content:
            return last_modified_ms(handle)
    except FileNotFoundError:
        pass
    handle.write_text(content, encoding="utf-8")
    return last_modified_ms(handle)


def read_file(handle: Path) -> FileSnapshot:
    return FileSnapshot(handle.read_text(encoding="utf-8"), last_modified_ms(handle))


def has_external_change(handle: Path, known_last_modified: float | None) -> bool:
    """Whether the file changed on disk since we last wrote or read it."""
    if known_last_modified is None:
        return False
    try:
        return last_modified_ms(handle) > known_last_modified
    except FileNotFoundError:
        return True
