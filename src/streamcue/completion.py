"""One-shot completion callbacks keyed by correlation token.

A correlation token (nonce) travels with an audio or speech request. Whoever
wants to act when that request finishes registers a callback under the token;
the component that finishes the request fires it. Firing is exactly-once: the
entry is popped before the callback runs, so a callback can never fire twice,
and registering under a token already in use replaces the previous callback.
"""

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Union

from .logger import get_logger
from .task_tracker import TaskTracker

logger = get_logger(__name__)


class CompletionStatus(Enum):
    """Terminal status reported when a token fires."""

    OK = "ok"
    ERROR = "error"


CompletionCallback = Callable[[CompletionStatus], Union[None, Awaitable[None]]]


def new_token(prefix: str = "nonce") -> str:
    """Mint an opaque correlation token."""
    return f"{prefix}-{uuid.uuid4().hex}"


class CompletionRegistry:
    """Token → one-shot callback map."""

    def __init__(self, tracker: TaskTracker | None = None):
        self._callbacks: dict[str, CompletionCallback] = {}
        self._tracker = tracker or TaskTracker("completion")

    def __len__(self) -> int:
        return len(self._callbacks)

    def __contains__(self, token: str) -> bool:
        return token in self._callbacks

    def register(self, token: str, callback: CompletionCallback) -> None:
        """Store ``callback`` under ``token``, replacing any callback already there."""
        if not token:
            raise ValueError("Completion token must be a non-empty string")
        if token in self._callbacks:
            logger.debug("Completion callback replaced", token=token)
        self._callbacks[token] = callback

    def fire(self, token: str | None, status: CompletionStatus = CompletionStatus.OK) -> bool:
        """Pop and invoke the callback for ``token``.

        Returns True if a callback was registered. Unknown or empty tokens are
        a silent no-op: most tokens are optional correlation points nobody
        subscribed to.
        """
        if not token:
            return False
        callback = self._callbacks.pop(token, None)
        if callback is None:
            return False

        logger.debug("Completion fired", token=token, status=status.value)
        try:
            result = callback(status)
        except Exception as e:
            logger.warning("Completion callback failed", token=token, error=str(e), exc_info=e)
            return True

        if inspect.isawaitable(result):
            self._tracker.create_task(self._await_callback(token, result), name=f"completion:{token}")
        return True

    def discard(self, token: str) -> None:
        """Forget the callback for ``token`` without firing it."""
        self._callbacks.pop(token, None)

    def wait(self, token: str) -> "asyncio.Future[CompletionStatus]":
        """Return a future resolved with the status when ``token`` fires.

        This is the single-consumer future form of ``register``: it occupies
        the token's one slot like any other callback.
        """
        future: asyncio.Future[CompletionStatus] = asyncio.get_running_loop().create_future()

        def _resolve(status: CompletionStatus) -> None:
            if not future.done():
                future.set_result(status)

        self.register(token, _resolve)
        return future

    async def _await_callback(self, token: str, awaitable: Awaitable[None]) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.warning("Completion callback failed", token=token, error=str(e), exc_info=e)
