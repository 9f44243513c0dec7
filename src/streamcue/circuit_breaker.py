"""Circuit breaker for the speech synthesis backend."""

import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from .errors import StreamCueError
from .logger import get_logger

T = TypeVar("T")
logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"  # calls pass through
    OPEN = "open"  # calls rejected
    HALF_OPEN = "half_open"  # probing


class CircuitOpenError(StreamCueError):
    """Raised instead of calling the backend while the circuit is open."""

    pass


class CircuitBreaker:
    """
    Stops hammering a failing backend.

    After ``failure_threshold`` consecutive failures the circuit opens and
    every call is rejected for ``recovery_timeout`` seconds. The first call
    after that runs as a probe; ``success_threshold`` probe successes close the
    circuit again, one probe failure reopens it with the timeout multiplied by
    ``backoff_multiplier`` (capped at ``max_recovery_timeout``).
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        expected_exception: type[Exception] | tuple[type[Exception], ...] = Exception,
        success_threshold: int = 1,
        max_recovery_timeout: float = 300.0,
        backoff_multiplier: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.initial_recovery_timeout = recovery_timeout
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.success_threshold = success_threshold
        self.max_recovery_timeout = max_recovery_timeout
        self.backoff_multiplier = backoff_multiplier
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.consecutive_open_count = 0
        self.opened_at = 0.0

        self.total_calls = 0
        self.total_failures = 0
        self.total_rejections = 0

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """Await ``func(*args, **kwargs)`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open
            Exception: Whatever ``func`` raised
        """
        self.total_calls += 1

        if self.state is CircuitState.OPEN:
            remaining = self.recovery_timeout - (self._clock() - self.opened_at)
            if remaining > 0:
                self.total_rejections += 1
                raise CircuitOpenError(f"Circuit '{self.name}' is open, retry in {remaining:.1f}s")
            self._set_state(CircuitState.HALF_OPEN)

        try:
            result = await func(*args, **kwargs)
        except self.expected_exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def _record_success(self) -> None:
        self.failure_count = 0
        if self.state is CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self.consecutive_open_count = 0
                self.recovery_timeout = self.initial_recovery_timeout
                self._set_state(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        self.total_failures += 1
        self.failure_count += 1
        if self.state is CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            self._open()

    def _open(self) -> None:
        self.consecutive_open_count += 1
        if self.consecutive_open_count > 1:
            self.recovery_timeout = min(
                self.initial_recovery_timeout * self.backoff_multiplier ** (self.consecutive_open_count - 1),
                self.max_recovery_timeout,
            )
        self.opened_at = self._clock()
        self._set_state(CircuitState.OPEN)
        logger.error(
            "Circuit breaker opened",
            breaker=self.name,
            failures=self.failure_count,
            retry_in=self.recovery_timeout,
            attempt=self.consecutive_open_count,
        )

    def _set_state(self, state: CircuitState) -> None:
        if state is not CircuitState.OPEN and state is not self.state:
            logger.info("Circuit breaker state changed", breaker=self.name, state=state.value)
        self.state = state
        self.success_count = 0
        if state is CircuitState.HALF_OPEN:
            self.failure_count = 0

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "consecutive_open_count": self.consecutive_open_count,
            "current_recovery_timeout": self.recovery_timeout,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_rejections": self.total_rejections,
        }

    def reset(self) -> None:
        self.consecutive_open_count = 0
        self.recovery_timeout = self.initial_recovery_timeout
        self.failure_count = 0
        self._set_state(CircuitState.CLOSED)
