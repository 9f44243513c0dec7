"""Fixed-interval tick loop used to drive the audio channels and the speech drain."""

import asyncio
import contextlib
from collections.abc import Callable

from .logger import get_logger
from .task_tracker import TaskTracker

logger = get_logger(__name__)


class Ticker:
    """Calls a synchronous callback every ``interval`` seconds on the running loop.

    The callback runs on the loop thread and never overlaps with itself, which
    is what lets the sequencer and the speech pipeline mutate their state
    without locks.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], None], tracker: TaskTracker):
        if interval <= 0:
            raise ValueError(f"Ticker interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._tracker = tracker
        self._task: asyncio.Task | None = None
        self.tick_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = self._tracker.create_task(self._loop(), name=f"ticker:{self.name}")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick_count += 1
            try:
                self._callback()
            except Exception as e:
                # Keep ticking after a failed callback
                logger.error("Tick failed", ticker=self.name, error=str(e), exc_info=e)
