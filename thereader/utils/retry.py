"""Retry utilities with exponential backoff for external calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from thereader.utils.exceptions import TransientError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def retry_with_exponential_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    retry_on_exceptions: tuple[type[Exception], ...] = (TransientError,),
    **kwargs: Any,
) -> T:
    """
    Retry an async function with exponential backoff.

    When the raised exception carries a ``retry_after`` hint (provider rate
    limits), the wait is at least that long.

    Args:
        func: Async function to retry
        *args: Positional arguments for the function
        max_retries: Maximum number of retries after the first attempt
        initial_delay: Initial delay in seconds before first retry
        backoff_factor: Multiplier for delay after each retry (default: 2.0)
        retry_on_exceptions: Tuple of exception types to retry on
        **kwargs: Keyword arguments for the function

    Returns:
        Result from successful function execution

    Raises:
        The last exception if all retries fail
    """
    delay = initial_delay
    name = getattr(func, "__qualname__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except retry_on_exceptions as e:
            if attempt == max_retries:
                logger.error(
                    "retry_exhausted",
                    function=name,
                    attempts=attempt + 1,
                    error=str(e),
                )
                raise

            wait = delay
            retry_after = getattr(e, "retry_after", None)
            if retry_after:
                wait = max(wait, float(retry_after))

            logger.warning(
                "retry_attempt",
                function=name,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=wait,
                error=str(e),
            )
            await asyncio.sleep(wait)
            delay *= backoff_factor

    raise RuntimeError("Unexpected retry loop exit")
