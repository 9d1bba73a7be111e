"""In-process per-minute rate limiter.

Fixed one-minute windows: the count for the current window is bumped on
every admission and a call over the ceiling is rejected immediately with
``RateLimitExceededError``.  Rejected calls never take a concurrency
slot or touch the network.
"""

from __future__ import annotations

import logging

from mirror_relay.core.clock import Clock, MonotonicClock
from mirror_relay.core.errors import RateLimitExceededError

_logger = logging.getLogger("mirror_relay.security")

# Window duration in seconds (1 minute)
_WINDOW_SECONDS: int = 60


class RateLimiter:
    """Per-dispatcher call admission counter.

    Args:
        rpm:   Calls admitted per window; ``0`` disables limiting.
        clock: Time source (``MonotonicClock`` by default).
    """

    def __init__(self, rpm: int = 100, clock: Clock | None = None) -> None:
        self.rpm = rpm
        self._clock = clock or MonotonicClock()
        self._window_start: float | None = None
        self._count = 0

    def _roll_window(self, now: float) -> None:
        if self._window_start is None or now - self._window_start >= _WINDOW_SECONDS:
            self._window_start = now
            self._count = 0

    @property
    def remaining(self) -> int:
        if self.rpm <= 0:
            return -1
        self._roll_window(self._clock.now())
        return max(0, self.rpm - self._count)

    def acquire(self) -> None:
        """Admit one call or raise.

        Raises:
            RateLimitExceededError: The current window is full.
        """
        if self.rpm <= 0:
            return
        now = self._clock.now()
        self._roll_window(now)
        if self._count >= self.rpm:
            retry_after = _WINDOW_SECONDS - (now - (self._window_start or now))
            _logger.warning("Rate limit %d/min exceeded — rejecting call", self.rpm)
            raise RateLimitExceededError(self.rpm, retry_after)
        self._count += 1

    def reset(self) -> None:
        self._window_start = None
        self._count = 0
