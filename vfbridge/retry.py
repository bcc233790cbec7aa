"""Retry-with-backoff helper shared by the dialogue client and outbound sender."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from vfbridge.errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_CAP_SECONDS = 30


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay after the given 1-based attempt: base, 2*base, 4*base ... capped."""
    return min(base_delay * 2 ** (attempt - 1), BACKOFF_CAP_SECONDS)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
    retryable: Callable[[BaseException], bool],
    description: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or ``max_attempts`` are used.

    Exceptions rejected by ``retryable`` propagate immediately. Once every
    attempt has failed a :class:`RetryExhaustedError` wrapping the last
    error is raised. No delay follows the final attempt.
    """
    last_error: BaseException | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if not retryable(exc):
                raise
            last_error = exc
            if attempt < max_attempts:
                delay = backoff_delay(attempt, base_delay)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    description, attempt, max_attempts, exc, delay,
                )
                await asyncio.sleep(delay)
            else:
                logger.error(
                    "%s failed (attempt %d/%d): %s; giving up",
                    description, attempt, max_attempts, exc,
                )

    assert last_error is not None
    raise RetryExhaustedError(max_attempts, last_error)
