import asyncio
import logging
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


class Debouncer:
    """Trailing-edge debounce for an async action.

    Each trigger restarts the quiet period; the action runs once after
    ``delay`` seconds without a new trigger. A trigger that lands while the
    action is already running schedules one more run instead of cancelling it.
    """

    def __init__(self, delay: float, action: Callable[[], Awaitable[None]], name: str = "debounce") -> None:
        self.delay = delay
        self._action = action
        self._name = name
        self._waiting: Optional[asyncio.Task] = None
        self._running: Optional[asyncio.Task] = None

    @property
    def idle(self) -> bool:
        return all(t is None or t.done() for t in (self._waiting, self._running))

    def trigger(self) -> None:
        if self._waiting is not None and not self._waiting.done():
            self._waiting.cancel()
        self._waiting = asyncio.create_task(self._run(), name=self._name)

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        previous = self._running
        self._running = asyncio.current_task()
        self._waiting = None
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        try:
            await self._action()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s action failed", self._name)

    def cancel(self) -> None:
        for task in (self._waiting, self._running):
            if task is not None and not task.done():
                task.cancel()
        self._waiting = None
        self._running = None

    async def drain(self) -> bool:
        """Wait for pending runs to finish; return True if anything was pending.

        For test and shutdown synchronisation.
        """
        waited = False
        while not self.idle:
            waited = True
            pending = {t for t in (self._waiting, self._running) if t is not None and not t.done()}
            await asyncio.wait(pending)
        return waited
