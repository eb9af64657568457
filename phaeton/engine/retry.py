"""
phaeton.engine.retry — Bounded exponential backoff
===================================================

One helper used by every platform check.  The caller decides which errors
are worth another attempt through ``is_retryable``; anything else propagates
on the first failure.  Definitive answers ("not a member") are ordinary
return values, so they are never retried.

Delays are ``base_delay * 2 ** attempt`` between attempts (1 s, 2 s with the
defaults) and there is no sleep after the final attempt.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0


def backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY) -> float:
    """Delay after the zero-based *attempt* failed."""
    return base_delay * (2 ** attempt)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    is_retryable: Callable[[BaseException], bool] = lambda exc: True,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Await ``fn()`` up to *max_attempts* times.

    Raises the last error once attempts are exhausted, or the first error
    that ``is_retryable`` rejects.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return await fn()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            if attempt == max_attempts - 1:
                logger.warning(
                    "%s failed after %d attempts: %s", label, max_attempts, exc
                )
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                label, attempt + 1, max_attempts, delay, exc,
            )
            await sleep(delay)

    raise AssertionError("unreachable")
