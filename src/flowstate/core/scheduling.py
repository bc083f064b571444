"""Timer scheduling on the running asyncio loop."""

import asyncio
from collections.abc import Callable

from flowstate.protocols import TimerHandle


class LoopScheduler:
    """Scheduler backed by ``loop.call_later``.

    The loop is looked up lazily so the scheduler can be built before the
    loop starts; every timer must be armed from within the loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, callback)
