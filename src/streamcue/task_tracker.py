"""Tracking for fire-and-forget asyncio tasks (synthesis calls, sub-actions, tickers).

Task names follow ``<kind>:<detail>`` (``speech:12``, ``reward:hydrate``,
``playback:channel:0``); the health output counts running tasks per kind.
"""

import asyncio
from collections import Counter
from collections.abc import Coroutine
from typing import Any, TypeVar

from .logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def task_kind(name: str) -> str:
    return name.split(":", 1)[0]


class TaskTracker:
    """Keeps a strong reference to every background task until it finishes.

    The event loop only holds weak references to tasks, so a task nobody
    awaits can be collected mid-flight. Everything streamcue starts without
    awaiting goes through ``create_task`` here.
    """

    def __init__(self, name: str = "streamcue"):
        self.name = name
        self._running: set[asyncio.Task] = set()
        self._created = 0
        self._outcomes: Counter[str] = Counter()

    def create_task(
        self, coro: Coroutine[Any, Any, T], *, name: str | None = None, log_errors: bool = True
    ) -> asyncio.Task[T]:
        """
        Start ``coro`` as a tracked task.

        Args:
            coro: Coroutine to run
            name: Task name, ``<kind>:<detail>`` by convention
            log_errors: Log the exception if the task fails

        Returns:
            The created asyncio.Task
        """
        self._created += 1
        task = asyncio.create_task(coro, name=name or f"{getattr(coro, '__name__', 'task')}:{self._created}")
        self._running.add(task)
        task.add_done_callback(lambda t: self._finished(t, log_errors))
        return task

    def _finished(self, task: asyncio.Task, log_errors: bool) -> None:
        self._running.discard(task)
        if task.cancelled():
            self._outcomes["cancelled"] += 1
            logger.debug("Task cancelled", tracker=self.name, task_name=task.get_name())
            return

        exc = task.exception()
        if exc is None:
            self._outcomes["completed"] += 1
            return
        self._outcomes["failed"] += 1
        if log_errors:
            logger.error("Task failed", tracker=self.name, task_name=task.get_name(), error=str(exc), exc_info=exc)

    @property
    def active_count(self) -> int:
        return len(self._running)

    def get_status(self) -> dict[str, Any]:
        return {
            "tracker_name": self.name,
            "active_count": self.active_count,
            "active_by_kind": dict(Counter(task_kind(t.get_name()) for t in self._running)),
            "completed_count": self._outcomes["completed"],
            "failed_count": self._outcomes["failed"],
            "cancelled_count": self._outcomes["cancelled"],
            "total_created": self._created,
        }

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel every running task and wait up to ``timeout`` seconds for them to finish."""
        tasks = [task for task in self._running if not task.done()]
        if not tasks:
            return

        logger.info("Cancelling tracked tasks", tracker=self.name, task_count=len(tasks))
        for task in tasks:
            task.cancel()

        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        if still_running:
            logger.warning(
                "Tracked tasks still running after shutdown timeout",
                tracker=self.name,
                remaining=len(still_running),
                timeout=timeout,
            )
