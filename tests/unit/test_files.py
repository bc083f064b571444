"""Tests for local file handles."""

import os
from pathlib import Path

import pytest

from flowstate.storage import files


def _set_mtime(path: Path, seconds: float) -> None:
    os.utime(path, (seconds, seconds))


def test_permission_modes(tmp_path: Path) -> None:
    path = tmp_path / "model.yaml"
    assert files.request_write_permission(path)
    path.write_text("x")
    assert files.request_write_permission(path, "read")
    with pytest.raises(ValueError, match="Unknown permission mode"):
        files.request_write_permission(path, "write")


def test_write_returns_last_modified(tmp_path: Path) -> None:
    path = tmp_path / "model.yaml"
    last_modified = files.write_to_file(path, "name: A\n")
    assert path.read_text() == "name: A\n"
    assert last_modified == path.stat().st_mtime * 1000


def test_write_skips_unchanged_content(tmp_path: Path) -> None:
    path = tmp_path / "model.yaml"
    path.write_text("name: A\n")
    _set_mtime(path, 1_000_000)
    assert files.write_to_file(path, "name: A\n") == 1_000_000_000
    assert path.stat().st_mtime == 1_000_000


def test_read_file(tmp_path: Path) -> None:
    path = tmp_path / "model.yaml"
    path.write_text("name: A\n")
    _set_mtime(path, 2_000_000)
    snapshot = files.read_file(path)
    assert snapshot == files.FileSnapshot("name: A\n", 2_000_000_000)


def test_external_change_detection(tmp_path: Path) -> None:
    path = tmp_path / "model.yaml"
    path.write_text("name: A\n")
    _set_mtime(path, 1_000_000)

    assert not files.has_external_change(path, None)
    assert not files.has_external_change(path, 1_000_000_000)
    _set_mtime(path, 1_000_010)
    assert files.has_external_change(path, 1_000_000_000)
    path.unlink()
    assert files.has_external_change(path, 1_000_000_000)
