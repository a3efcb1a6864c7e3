"""Retry logic with exponential backoff for feed page fetches."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from concertfeed.core.exceptions import TransientFetchError
from concertfeed.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    ``max_retries`` counts retries after the first attempt, so the default
    allows four attempts in total, waiting 2s, 4s and 8s in between.
    """

    max_retries: int = 3
    initial_delay: float = 2.0
    exponential_base: float = 2.0
    max_delay: float = 60.0
    retryable_exceptions: tuple[type[Exception], ...] = field(
        default_factory=lambda: (TransientFetchError,)
    )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retryable_error",
        error=str(exc),
        error_type=type(exc).__name__,
        attempt=retry_state.attempt_number,
        delay=retry_state.next_action.sleep if retry_state.next_action else None,
        function=getattr(retry_state.fn, "__name__", None),
    )


def create_tenacity_retry(
    config: RetryConfig | None = None,
    sleep: SleepFn = asyncio.sleep,
) -> AsyncRetrying:
    """Create a tenacity retrying controller with custom config.

    Usage:
        retrying = create_tenacity_retry(RetryConfig(max_retries=5))
        page = await retrying(adapter.fetch_feed, "US", 0)
    """
    if config is None:
        config = RetryConfig()

    return AsyncRetrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.initial_delay,
            exp_base=config.exponential_base,
            max=config.max_delay,
        ),
        retry=retry_if_exception_type(config.retryable_exceptions),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    config: RetryConfig | None = None,
    sleep: SleepFn = asyncio.sleep,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)``, retrying transient failures.

    Raises:
        The last exception once all attempts are exhausted, or immediately
        for exceptions that are not retryable.
    """
    retrying = create_tenacity_retry(config, sleep=sleep)
    return await retrying(func, *args, **kwargs)
