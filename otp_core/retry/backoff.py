"""
Retry Backoff
=============
Bounded exponential backoff for idempotent store reads.
"""

import asyncio
import random
from typing import TypeVar, Callable, Awaitable, Optional, Tuple, Type
import structlog

from .exceptions import RetryExhausted

logger = structlog.get_logger(__name__)

T = TypeVar('T')


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    operation: Optional[str] = None,
    **kwargs,
) -> T:
    """
    Execute an async callable, retrying a fixed number of times.

    Only use for idempotent operations: a retried call may repeat a side
    effect that already reached the server.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        max_attempts: Total number of attempts, including the first
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        jitter: Add random jitter to delays
        retryable_exceptions: Exception types that trigger a retry
        operation: Name used in log events
        **kwargs: Keyword arguments for func

    Returns:
        Result of func

    Raises:
        RetryExhausted: If every attempt failed with a retryable exception
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    name = operation or getattr(func, "__name__", "call")
    last_exception: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            last_exception = e

            if attempt == max_attempts:
                logger.error(
                    "Retry exhausted",
                    operation=name,
                    attempts=attempt,
                    error=str(e),
                )
                break

            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            if jitter:
                delay = delay * (0.5 + random.random())

            logger.warning(
                "Retrying after failure",
                operation=name,
                attempt=attempt,
                delay=round(delay, 3),
                error=str(e),
            )

            await asyncio.sleep(delay)

    raise RetryExhausted(
        f"{name} failed after {max_attempts} attempts: {last_exception}",
        last_exception=last_exception,
    )
