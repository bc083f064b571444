"""Tests for the undo/redo history."""

from flowstate.core.history import History
from flowstate.models.diagram import Snapshot
from flowstate.models.threat_model import ThreatModel


def _snap(n: int) -> Snapshot:
    return Snapshot(ThreatModel(name=str(n)), (), (), f"name: '{n}'\n")


def test_undo_and_redo_walk_the_timeline() -> None:
    restored: list[Snapshot] = []
    history = History(restored.append)
    for n in range(3):
        history.record_state(_snap(n))

    assert history.undo()
    assert history.undo()
    assert not history.undo()
    assert [s.model.name for s in restored] == ["1", "0"]

    assert history.redo()
    assert history.present == _snap(1)
    assert history.can_redo


def test_recording_clears_redo() -> None:
    history = History(lambda _: None)
    history.record_state(_snap(0))
    history.record_state(_snap(1))
    history.undo()
    history.record_state(_snap(2))
    assert not history.can_redo
    assert [s.model.name for s in history.past] == ["0"]


def test_past_is_capped() -> None:
    history = History(lambda _: None, max_size=50)
    for n in range(52):
        history.record_state(_snap(n))

    undos = 0
    while history.undo():
        undos += 1
    assert undos == 49
    assert history.present == _snap(2)


def test_record_is_ignored_while_restoring() -> None:
    history: History

    def restore(snapshot: Snapshot) -> None:
        assert history.is_restoring
        history.record_state(_snap(99))

    history = History(restore)
    history.record_state(_snap(0))
    history.record_state(_snap(1))
    history.undo()
    assert not history.is_restoring
    assert history.present == _snap(0)
    assert history.future == [_snap(1)]


def test_clear_resets_everything() -> None:
    history = History(lambda _: None)
    history.record_state(_snap(0))
    history.record_state(_snap(1))
    history.clear()
    assert history.present is None
    assert not history.can_undo
