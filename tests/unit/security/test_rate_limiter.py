"""Rate limiter tests — fixed one-minute admission windows."""

import pytest

from mirror_relay.core.clock import ManualClock
from mirror_relay.core.errors import RateLimitExceededError
from mirror_relay.security.rate_limiter import RateLimiter


class TestWithinLimit:
    def test_admits_up_to_rpm(self, clock: ManualClock) -> None:
        limiter = RateLimiter(rpm=3, clock=clock)
        for _ in range(3):
            limiter.acquire()
        assert limiter.remaining == 0

    def test_remaining_counts_down(self, clock: ManualClock) -> None:
        limiter = RateLimiter(rpm=5, clock=clock)
        limiter.acquire()
        limiter.acquire()
        assert limiter.remaining == 3


class TestOverLimit:
    def test_rejects_after_rpm(self, clock: ManualClock) -> None:
        limiter = RateLimiter(rpm=2, clock=clock)
        limiter.acquire()
        limiter.acquire()
        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.acquire()
        assert exc_info.value.limit == 2

    def test_retry_after_reflects_window(self, clock: ManualClock) -> None:
        limiter = RateLimiter(rpm=1, clock=clock)
        limiter.acquire()
        clock.advance(20.0)
        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.acquire()
        assert exc_info.value.retry_after == pytest.approx(40.0)

    def test_rejections_do_not_consume_the_window(self, clock: ManualClock) -> None:
        limiter = RateLimiter(rpm=1, clock=clock)
        limiter.acquire()
        for _ in range(3):
            with pytest.raises(RateLimitExceededError):
                limiter.acquire()
        clock.advance(60.0)
        limiter.acquire()


class TestWindows:
    def test_new_window_resets_count(self, clock: ManualClock) -> None:
        limiter = RateLimiter(rpm=2, clock=clock)
        limiter.acquire()
        limiter.acquire()
        clock.advance(60.0)
        limiter.acquire()
        assert limiter.remaining == 1

    def test_same_window_keeps_count(self, clock: ManualClock) -> None:
        limiter = RateLimiter(rpm=2, clock=clock)
        limiter.acquire()
        clock.advance(59.0)
        limiter.acquire()
        with pytest.raises(RateLimitExceededError):
            limiter.acquire()

    def test_reset(self, clock: ManualClock) -> None:
        limiter = RateLimiter(rpm=1, clock=clock)
        limiter.acquire()
        limiter.reset()
        limiter.acquire()


class TestDisabled:
    def test_zero_rpm_disables_limit(self, clock: ManualClock) -> None:
        limiter = RateLimiter(rpm=0, clock=clock)
        for _ in range(1000):
            limiter.acquire()
        assert limiter.remaining == -1
