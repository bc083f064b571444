"""Tests for save sources, dirty tracking, and quick save."""

from pathlib import Path

import pytest

from flowstate.persistence.save_state import (
    FileSource,
    NamedStoreSource,
    RemoteRepositorySource,
    SaveState,
    describe_save_source,
    quick_save,
    source_from_metadata,
    source_metadata,
)
from tests.unit.fakes import FakeBackend, FakeGitHub

REMOTE = RemoteRepositorySource("github.com", "acme", "models", "main", "payments.yaml", sha="sha-0")


def test_describe_save_source() -> None:
    assert describe_save_source(None) == "Not saved"
    assert describe_save_source(NamedStoreSource("m1", "Payments")) == "Saved model: Payments"
    assert describe_save_source(FileSource(Path("/tmp/p.yaml"), "p.yaml")) == "File: p.yaml"
    assert describe_save_source(REMOTE) == "GitHub: acme/models@main:payments.yaml"


def test_source_metadata_round_trips_each_kind() -> None:
    for source in (NamedStoreSource("m1", "Payments"), FileSource(Path("/tmp/p.yaml"), "p.yaml"), REMOTE):
        assert source_from_metadata(source_metadata(source)) == source
    assert source_metadata(None) is None
    assert source_metadata(REMOTE)["type"] == "remote_repository"


def test_incomplete_or_unknown_metadata_gives_no_source() -> None:
    assert source_from_metadata(None) is None
    assert source_from_metadata({"type": "file"}) is None
    assert source_from_metadata({"type": "ftp", "path": "x"}) is None


def test_dirty_tracking() -> None:
    save_state = SaveState(last_saved_content="a")
    save_state.update_content("b")
    assert save_state.is_dirty
    save_state.update_content("a")
    assert not save_state.is_dirty

    save_state.mark_dirty()
    source = NamedStoreSource("m1", "Payments")
    save_state.mark_saved("c", source)
    assert not save_state.is_dirty
    assert save_state.source == source
    assert save_state.last_saved_content == "c"
    assert save_state.last_saved_at is not None


def test_quick_save_without_source_needs_save_as() -> None:
    backend = FakeBackend()
    assert quick_save(None, "Payments", "x", backend=backend) is None
    assert backend.calls == []


def test_quick_save_to_named_store() -> None:
    backend = FakeBackend()
    source = NamedStoreSource("m1", "Payments")
    assert quick_save(source, "Payments", "x", backend=backend) == source
    assert backend.named == {"m1": "x"}


def test_quick_save_to_file_checks_permission() -> None:
    backend = FakeBackend()
    source = FileSource(Path("/tmp/p.yaml"), "p.yaml")
    quick_save(source, "Payments", "x", backend=backend)
    assert backend.kinds() == ["permission", "file"]

    backend.deny_permission = True
    with pytest.raises(PermissionError):
        quick_save(source, "Payments", "y", backend=backend)
    assert backend.files[Path("/tmp/p.yaml")] == "x"


def test_quick_save_to_remote_tracks_new_sha() -> None:
    github = FakeGitHub()
    github.add_file("acme", "models", "payments.yaml", "old", "sha-0")

    saved = quick_save(REMOTE, "Payments", "new", backend=FakeBackend(), remote=github)

    assert isinstance(saved, RemoteRepositorySource)
    assert saved.sha == "sha-1"
    assert saved.loaded_at is not None
    assert github.files["acme", "models", "payments.yaml"] == ("new", "sha-1")
    assert github.commits[0]["message"] == "Update payments.yaml"

    again = quick_save(saved, "Payments", "newer", backend=FakeBackend(), remote=github, commit_message="Tweak")
    assert again.sha == "sha-2"
    assert github.commits[1]["message"] == "Tweak"


def test_quick_save_to_remote_with_stale_sha_fails() -> None:
    github = FakeGitHub()
    github.add_file("acme", "models", "payments.yaml", "old", "sha-9")
    with pytest.raises(RuntimeError, match="sha does not match"):
        quick_save(REMOTE, "Payments", "new", backend=FakeBackend(), remote=github)


def test_quick_save_to_remote_needs_client() -> None:
    with pytest.raises(ValueError, match="repository client"):
        quick_save(REMOTE, "Payments", "new", backend=FakeBackend())
