"""
phaeton.engine.rate_limit — Fixed-window request counter
=========================================================

Counts requests per caller-supplied key (``discord_verify:<user_id>`` and
friends) in discrete, non-overlapping windows:

* first request for a key, or first request after its window ended, opens a
  fresh window ``{count: 1, reset_at: now + window}`` and is allowed;
* every later request in the window increments ``count``; once the
  post-increment count exceeds ``max_requests`` the request is denied, and
  the window keeps its original ``reset_at`` so callers can compute
  ``retry_after = reset_at - now``.

Counts only grow inside a window; :meth:`FixedWindowRateLimiter.reset` is
the only way to shrink one.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from phaeton.engine.store import MemoryStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 10
DEFAULT_WINDOW_SECONDS = 60


@dataclass(frozen=True, slots=True)
class RateWindow:
    count: int
    reset_at: float


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


class FixedWindowRateLimiter:
    """Fixed-window limiter over a :class:`MemoryStore` of :class:`RateWindow`."""

    def __init__(
        self,
        store: MemoryStore[RateWindow] | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store: MemoryStore[RateWindow] = store or MemoryStore("rate_windows")
        self._clock = clock

    def check(
        self,
        key: str,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
    ) -> RateLimitResult:
        """Count one request against *key* and report whether it is allowed."""
        now = self._clock()

        def _advance(window: RateWindow | None) -> RateWindow:
            if window is None or window.reset_at < now:
                return RateWindow(count=1, reset_at=now + window_seconds)
            return RateWindow(count=window.count + 1, reset_at=window.reset_at)

        window = self.store.update(key, _advance)

        if window.count > max_requests:
            return RateLimitResult(allowed=False, remaining=0, reset_at=window.reset_at)
        return RateLimitResult(
            allowed=True,
            remaining=max_requests - window.count,
            reset_at=window.reset_at,
        )

    def status(
        self,
        key: str,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
    ) -> RateLimitResult:
        """Report the current standing of *key* without counting a request."""
        now = self._clock()
        window = self.store.get(key)

        if window is None or window.reset_at < now:
            return RateLimitResult(
                allowed=True,
                remaining=max_requests,
                reset_at=now + window_seconds,
            )
        return RateLimitResult(
            allowed=window.count < max_requests,
            remaining=max(0, max_requests - window.count),
            reset_at=window.reset_at,
        )

    def reset(self, key: str) -> None:
        """Forget the window for *key* immediately."""
        self.store.delete(key)

    def sweep(self) -> int:
        """Drop windows that have already ended."""
        now = self._clock()
        return self.store.sweep(lambda w: w.reset_at < now)

    def retry_after(self, result: RateLimitResult) -> int:
        """Whole seconds until *result*'s window reopens (at least 1)."""
        return max(1, math.ceil(result.reset_at - self._clock()))
