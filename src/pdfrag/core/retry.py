"""Exponential-backoff retries for provider calls."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Only transient provider failures are worth another attempt."""
    return isinstance(exc, ProviderError) and exc.retryable


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait_time = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        f"Retry attempt {retry_state.attempt_number} after error: {exc}. "
        f"Waiting {wait_time:.2f}s..."
    )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    retryable: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` with up to ``max_attempts`` attempts.

    The wait before retry ``n`` (0-based) is ``initial_delay * 2 ** n``
    seconds, without jitter or cap. Errors rejected by ``retryable`` and the
    error from the final attempt are raised unchanged.

    Args:
        operation: Zero-argument coroutine function to call
        max_attempts: Total number of attempts, at least 1
        initial_delay: Wait in seconds before the first retry
        retryable: Predicate deciding whether an error is retried
        sleep: Awaitable sleep used between attempts

    Returns:
        The first successful result of ``operation``
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=initial_delay, exp_base=2, min=0),
        retry=retry_if_exception(retryable),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            result = await operation()
    return result
