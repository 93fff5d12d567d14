"""Bounded retry with linear backoff for async operations."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import aiohttp

from ..beacon import BeaconAPIError
from ..exceptions import MalformedResponseError, ResourceNotFoundError
from ..execution import RPCError
from .exceptions import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_BASE = 1.0

RETRYABLE_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    BeaconAPIError,
    RPCError,
    MalformedResponseError,
)


def is_retryable(error: BaseException) -> bool:
    """Whether ``error`` is a transient failure worth another attempt."""
    if isinstance(error, ResourceNotFoundError):
        return False
    return isinstance(error, RETRYABLE_ERRORS)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_base: float = DEFAULT_BACKOFF_BASE,
    description: str = "operation",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """Run ``operation`` until it succeeds or ``max_attempts`` are used.

    Between attempts sleeps ``backoff_base * attempt`` seconds. Not-found
    errors and non-transient errors are raised straight away without
    consuming the budget; exhausting it raises ``RetryExhaustedError``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    sleep = sleep or asyncio.sleep

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt == max_attempts:
                raise RetryExhaustedError(attempt, e) from e
            delay = backoff_base * attempt
            logger.debug(
                f"{description} failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay:.1f}s: {e!r}"
            )
            await sleep(delay)

    raise AssertionError("unreachable")
