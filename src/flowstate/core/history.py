"""Linear undo/redo over full snapshots."""

from collections.abc import Callable

from loguru import logger

from flowstate.config import MAX_HISTORY
from flowstate.models.diagram import Snapshot


class History:
    """Bounded past/present/future timeline.

    ``restore`` is called synchronously by ``undo`` and ``redo`` with the
    snapshot to apply. While it runs, ``record_state`` is ignored so the
    restore's own writes never become new history.
    """

    def __init__(self, restore: Callable[[Snapshot], None], *, max_size: int = MAX_HISTORY) -> None:
        self._restore = restore
        self.max_size = max_size
        self.past: list[Snapshot] = []
        self.present: Snapshot | None = None
        self.future: list[Snapshot] = []
        self._restoring = False

    @property
    def can_undo(self) -> bool:
        return bool(self.past) and self.present is not None

    @property
    def can_redo(self) -> bool:
        return bool(self.future) and self.present is not None

    @property
    def is_restoring(self) -> bool:
        return self._restoring

    def record_state(self, snapshot: Snapshot) -> None:
        """Make ``snapshot`` the present; the old present moves to the past."""
        if self._restoring:
            return
        if self.present is not None:
            self.past.append(self.present)
            if len(self.past) >= self.max_size:
                self.past = self.past[-(self.max_size - 1) :]
        self.present = snapshot
        self.future.clear()

    def undo(self) -> bool:
        if not self.can_undo:
            return False
        previous = self.past.pop()
        self.future.insert(0, self.present)  # type: ignore[arg-type]
        self.present = previous
        self._apply(previous)
        logger.debug("Undo: {} past, {} future", len(self.past), len(self.future))
        return True

    def redo(self) -> bool:
        if not self.can_redo:
            return False
        following = self.future.pop(0)
        self.past.append(self.present)  # type: ignore[arg-type]
        self.present = following
        self._apply(following)
        logger.debug("Redo: {} past, {} future", len(self.past), len(self.future))
        return True

    def clear(self) -> None:
        self.past.clear()
        self.present = None
        self.future.clear()

    def _apply(self, snapshot: Snapshot) -> None:
        self._restoring = True
        try:
            self._restore(snapshot)
        finally:
            self._restoring = False
