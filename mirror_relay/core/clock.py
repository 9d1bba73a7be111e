"""Injectable time sources.

Every time-dependent component (health ledger, cache, rate limiter,
prober) reads time through a ``Clock`` so tests can drive breaker
cooldowns and TTL expiry without waiting on the wall clock.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic time source, in seconds."""

    def now(self) -> float: ...


class MonotonicClock:
    """Production clock backed by ``time.monotonic``."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to.

    Usage::

        clock = ManualClock()
        ledger = HealthLedger(clock=clock, cooldown=30.0)
        clock.advance(31.0)
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += seconds
