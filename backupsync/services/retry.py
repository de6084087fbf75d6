"""Exponential backoff for async operations.

``retry_with_backoff`` wraps a coroutine function so transient failures
are re-attempted with a doubling delay. Errors the predicate rejects
propagate on the first attempt; when every attempt fails the last error
is wrapped in ``RetryExhaustedError``.

Example:
    @retry_with_backoff(max_attempts=3, base_delay=2.0)
    async def upload_once() -> BackupRecord:
        ...
"""

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from backupsync.errors import DomainError, RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 2.0


def is_retryable_error(error: BaseException) -> bool:
    """Default predicate: retry only domain errors flagged retryable."""
    return isinstance(error, DomainError) and error.retryable


def retry_with_backoff(
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Build a retry decorator.

    Args:
        max_attempts: Total attempts including the first.
        base_delay: Delay before the second attempt; doubles afterwards.
        is_retryable: Predicate deciding whether an error is re-attempted.
        on_retry: Optional callback ``(attempt, error, delay)`` invoked
            before each sleep.

    Returns:
        Decorator for async callables.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: BaseException | None = None
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable(e):
                        raise
                    last_error = e
                    if attempt == max_attempts:
                        break
                    delay = base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        "%s failed with retryable error (attempt %d/%d), "
                        "retrying in %.1fs: %s",
                        func.__name__, attempt, max_attempts, delay, e,
                    )
                    if on_retry is not None:
                        on_retry(attempt, e, delay)
                    await asyncio.sleep(delay)
            logger.error(
                "%s failed after %d attempts: %s",
                func.__name__, max_attempts, last_error,
            )
            raise RetryExhaustedError(max_attempts, last_error) from last_error

        return wrapper

    return decorator
