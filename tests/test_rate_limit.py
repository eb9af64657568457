"""
tests/test_rate_limit.py — Fixed-window rate limiter
=====================================================
"""

from __future__ import annotations

import pytest

from phaeton.engine.rate_limit import FixedWindowRateLimiter, RateWindow

T0 = 1_000.0


class FakeClock:
    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFixedWindowRateLimiter:
    @pytest.fixture(autouse=True)
    def _limiter(self):
        self.clock = FakeClock()
        self.limiter = FixedWindowRateLimiter(clock=self.clock)

    def test_fourth_call_in_window_is_denied(self):
        results = [self.limiter.check("k", max_requests=3, window_seconds=1) for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]
        # Denial keeps the window's original reset time
        assert results[3].reset_at == results[0].reset_at == T0 + 1

    def test_new_window_after_reset_at(self):
        for _ in range(4):
            self.limiter.check("k", max_requests=3, window_seconds=1)

        self.clock.now = T0 + 1.5
        result = self.limiter.check("k", max_requests=3, window_seconds=1)
        assert result.allowed
        assert result.remaining == 2
        assert result.reset_at == T0 + 2.5

    def test_reset_at_instant_still_belongs_to_old_window(self):
        for _ in range(3):
            self.limiter.check("k", max_requests=3, window_seconds=1)

        self.clock.now = T0 + 1
        assert not self.limiter.status("k", max_requests=3, window_seconds=1).allowed
        result = self.limiter.check("k", max_requests=3, window_seconds=1)
        assert not result.allowed
        assert result.reset_at == T0 + 1
        assert self.limiter.sweep() == 0

    def test_denied_calls_keep_counting(self):
        for _ in range(5):
            self.limiter.check("k", max_requests=3, window_seconds=60)
        assert self.limiter.store.get("k") == RateWindow(count=5, reset_at=T0 + 60)

    def test_keys_are_independent(self):
        for _ in range(3):
            self.limiter.check("discord_verify:a", max_requests=3, window_seconds=60)

        assert not self.limiter.check("discord_verify:a", max_requests=3, window_seconds=60).allowed
        assert self.limiter.check("discord_verify:b", max_requests=3, window_seconds=60).allowed
        assert self.limiter.check("twitter_verify:a", max_requests=3, window_seconds=60).allowed

    def test_status_does_not_count(self):
        self.limiter.check("k", max_requests=3, window_seconds=60)
        for _ in range(5):
            status = self.limiter.status("k", max_requests=3, window_seconds=60)
        assert status.allowed
        assert status.remaining == 2
        assert self.limiter.store.get("k").count == 1

    def test_status_reports_exhausted_window(self):
        for _ in range(3):
            self.limiter.check("k", max_requests=3, window_seconds=60)
        status = self.limiter.status("k", max_requests=3, window_seconds=60)
        assert not status.allowed
        assert status.remaining == 0

    def test_reset_clears_key(self):
        for _ in range(4):
            self.limiter.check("k", max_requests=3, window_seconds=60)
        self.limiter.reset("k")
        assert self.limiter.check("k", max_requests=3, window_seconds=60).allowed

    def test_retry_after_rounds_up_with_floor_of_one(self):
        for _ in range(4):
            result = self.limiter.check("k", max_requests=3, window_seconds=60)
        self.clock.now = T0 + 10.2
        assert self.limiter.retry_after(result) == 50

        self.clock.now = T0 + 59.99
        assert self.limiter.retry_after(result) == 1

    def test_sweep_drops_finished_windows(self):
        self.limiter.check("short", max_requests=3, window_seconds=1)
        self.limiter.check("long", max_requests=3, window_seconds=60)

        self.clock.now = T0 + 5
        assert self.limiter.sweep() == 1
        assert "short" not in self.limiter.store
        assert "long" in self.limiter.store
