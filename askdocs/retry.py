"""Retry with linear backoff for calls to the model services.

A failed attempt ``n`` is followed by a wait of ``backoff_seconds * n``
before the next attempt (1s, 2s with the defaults). A rejected credential
is never retried.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import structlog

from askdocs import config
from askdocs.errors import LLMTransientError, LLMUnauthorizedError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        backoff_seconds: Base delay, multiplied by the attempt number
        sleep: Coroutine function used to wait between attempts
    """
    max_attempts: int = field(default_factory=lambda: config.RETRY_MAX_ATTEMPTS)
    backoff_seconds: float = field(default_factory=lambda: config.RETRY_BACKOFF_SECONDS)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds after the given failed attempt (1-based)."""
        return self.backoff_seconds * attempt


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = None,
    operation_name: str = "operation",
) -> T:
    """
    Await ``operation()`` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt
        policy: Retry policy (defaults from config)
        operation_name: Name for logging

    Returns:
        The operation's result

    Raises:
        LLMUnauthorizedError: Immediately, without retrying
        LLMTransientError: The last failure once all attempts are used
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        attempt += 1
        try:
            result = await operation()
        except LLMUnauthorizedError:
            logger.error("retry_aborted_unauthorized", operation=operation_name, attempt=attempt)
            raise
        except LLMTransientError as e:
            if attempt >= policy.max_attempts:
                logger.error(
                    "retry_exhausted",
                    operation=operation_name,
                    attempts=attempt,
                    error=str(e),
                )
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                "retry_scheduled",
                operation=operation_name,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_seconds=delay,
                error=str(e),
            )
            await policy.sleep(delay)
            continue

        if attempt > 1:
            logger.info("retry_succeeded", operation=operation_name, attempts=attempt)
        return result
