# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Retry with exponential backoff.

Waits ``base_delay * 2 ** (attempt - 1)`` between attempts. Backoff uses
``asyncio.sleep`` so only the retrying coroutine is suspended.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog

from .errors import ClassifiedError, ErrorKind, JiraError
from .result import Err, Result

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Never retried, whatever the predicate says
TERMINAL_KINDS = frozenset({ErrorKind.AUTHENTICATION, ErrorKind.NOT_FOUND})

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters.

    Attributes:
        max_attempts: Total number of attempts, including the first one.
        base_delay: Wait before the second attempt, in seconds.
        max_delay: Upper bound for a single wait (None = unbounded).
        jitter: Add 10-30% random jitter to each wait.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float | None = None
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def delay_for(self, attempt: int) -> float:
        """Wait after the given failed attempt (1-based)."""
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        if self.jitter:
            delay += delay * random.uniform(0.1, 0.3)
        return delay


def is_transient(error: ClassifiedError) -> bool:
    """Default retry predicate: transport failures, 429 and 5xx."""
    return error.is_transient


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    *,
    max_delay: float | None = None,
    jitter: bool = False,
    sleep: Sleep | None = None,
) -> T:
    """Run ``operation`` until it succeeds or attempts are exhausted.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        max_attempts: Total attempts.
        base_delay: First wait in seconds.
        max_delay: Optional cap on a single wait.
        jitter: Add random jitter to each wait.
        sleep: Awaitable sleep function (defaults to asyncio.sleep).

    Returns:
        The first successful outcome.

    Raises:
        The exception raised by the final attempt. A JiraError carrying an
        authentication or not-found error is raised immediately.
    """
    policy = RetryPolicy(max_attempts, base_delay, max_delay, jitter)
    sleep = sleep or asyncio.sleep
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if isinstance(e, JiraError) and e.kind in TERMINAL_KINDS:
                raise
            if attempt >= policy.max_attempts:
                logger.warning("retry_exhausted", attempts=attempt, error=str(e))
                raise
            delay = policy.delay_for(attempt)
            logger.info(
                "retry_scheduled",
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_seconds=delay,
                error=str(e),
            )
            await sleep(delay)
            attempt += 1


async def with_result_retry(
    operation: Callable[[], Awaitable[Result[T]]],
    policy: RetryPolicy,
    should_retry: Callable[[ClassifiedError], bool] = is_transient,
    *,
    sleep: Sleep | None = None,
) -> Result[T]:
    """Retry an operation returning a Result.

    Err values accepted by ``should_retry`` are retried, except
    authentication and not-found errors. Any other outcome is returned
    as-is. The final Err is returned unchanged.
    """
    sleep = sleep or asyncio.sleep
    attempt = 1
    while True:
        result = await operation()
        if not isinstance(result, Err) or attempt >= policy.max_attempts:
            return result
        if result.error.kind in TERMINAL_KINDS or not should_retry(result.error):
            return result
        delay = policy.delay_for(attempt)
        logger.info(
            "retry_scheduled",
            attempt=attempt,
            max_attempts=policy.max_attempts,
            delay_seconds=delay,
            error_kind=result.error.kind.value,
            status_code=result.error.status_code,
        )
        await sleep(delay)
        attempt += 1
