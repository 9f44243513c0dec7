"""Error boundary decorator that keeps one failing side effect from taking down its siblings.

Every sub-action of a composite trigger, every completion callback and every
feed message handler runs behind one of these boundaries. Failures are logged
with the boundary name and swallowed; nothing is retried.
"""

import asyncio
import functools
import inspect
from collections.abc import Callable
from typing import Any, TypeVar

from .logger import get_logger

T = TypeVar("T")
logger = get_logger(__name__)


def error_boundary(
    *,
    name: str | None = None,
    log_level: str = "error",
    default_return: Any = None,
    catch_exceptions: tuple[type[Exception], ...] = (Exception,),
    ignore_exceptions: tuple[type[BaseException], ...] = (asyncio.CancelledError,),
) -> Callable:
    """Decorator that logs and swallows exceptions from sync or async callables.

    Args:
        name: Boundary name used in log entries (defaults to the function name)
        log_level: structlog method used for the failure entry
        default_return: Value returned when the wrapped call fails
        catch_exceptions: Exceptions that are logged and swallowed
        ignore_exceptions: Exceptions that always propagate (e.g. CancelledError)

    Example:
        @error_boundary(name="webhook")
        async def post_webhook(user):
            await sink.post_message(...)
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        boundary = name or getattr(func, "__name__", "callback")

        def _log_failure(exc: Exception) -> None:
            getattr(logger, log_level)(
                "Error boundary caught exception",
                boundary=boundary,
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=exc,
            )

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except ignore_exceptions:
                    raise
                except catch_exceptions as e:
                    _log_failure(e)
                    return default_return

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                result = func(*args, **kwargs)
            except ignore_exceptions:
                raise
            except catch_exceptions as e:
                _log_failure(e)
                return default_return

            # Plain callables that hand back a coroutine (lambdas, partials) get the same boundary
            if inspect.isawaitable(result):
                return _guard_awaitable(result)
            return result

        async def _guard_awaitable(awaitable):
            try:
                return await awaitable
            except ignore_exceptions:
                raise
            except catch_exceptions as e:
                _log_failure(e)
                return default_return

        return sync_wrapper

    return decorator


def safe_handler(func: Callable) -> Callable:
    """Decorator for handlers that should never crash the service.

    Logs at WARNING and returns None. Used for feed message handlers and
    fire-and-forget completion callbacks.
    """
    return error_boundary(log_level="warning", default_return=None)(func)
