"""ConcurrencyGate — process-wide cap on in-flight attempts.

A waiter polls until a slot frees.  There is no queue, so there is no
FIFO guarantee: a caller arriving just as a slot frees can take it ahead
of one that has been polling for a while.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ConcurrencyGate:
    """Admission gate for concurrent attempts.

    Args:
        max_concurrent: Slots available at once.
        poll_interval:  Seconds between slot checks while waiting.
        sleep:          Awaitable sleep used while polling.
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        poll_interval: float = 0.05,
        sleep: Sleep | None = None,
    ) -> None:
        self.max_concurrent = max_concurrent
        self.poll_interval = poll_interval
        self._sleep = sleep or asyncio.sleep
        self._active = 0

        # Metrics
        self.total_waits = 0

    @property
    def active(self) -> int:
        return self._active

    async def acquire(self) -> None:
        if self._active >= self.max_concurrent:
            self.total_waits += 1
            logger.debug("Concurrency limit %d reached; waiting for a slot", self.max_concurrent)
        while self._active >= self.max_concurrent:
            await self._sleep(self.poll_interval)
        self._active += 1

    def release(self) -> None:
        self._active = max(0, self._active - 1)

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one slot for the duration of the ``async with`` block."""
        await self.acquire()
        try:
            yield
        finally:
            self.release()
