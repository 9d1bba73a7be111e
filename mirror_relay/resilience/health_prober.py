"""HealthProber — background probe loop feeding the health ledger.

Runs as one cancellable ``asyncio.Task``: probe every host, then sleep
for the interval, repeat.  Probes within a cycle run concurrently and
the cycle ends when all of them settle.  Nothing here raises to a
caller; every probe outcome, good or bad, lands in the ledger.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Sequence

from mirror_relay.core.clock import Clock, MonotonicClock
from mirror_relay.core.config import HealthCheckConfig, HostDescriptor
from mirror_relay.core.errors import AttemptError
from mirror_relay.models.request import RequestOptions
from mirror_relay.request_executor import RequestExecutor
from mirror_relay.resilience.health_ledger import HealthLedger

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class HealthProber:
    """Periodically probes every configured host.

    Args:
        hosts:    Hosts to probe.
        config:   Health-check settings (interval, timeout, endpoints).
        executor: Executor used for probe requests (no retries, no gate).
        ledger:   Ledger that receives every outcome.
        clock:    Time source for ``last_probe_at``.
        sleep:    Awaitable sleep between cycles; inject to drive the
                  loop from tests.
    """

    def __init__(
        self,
        hosts: Sequence[HostDescriptor],
        config: HealthCheckConfig,
        executor: RequestExecutor,
        ledger: HealthLedger,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._hosts = list(hosts)
        self._config = config
        self._executor = executor
        self._ledger = ledger
        self._clock = clock or MonotonicClock()
        self._sleep = sleep or asyncio.sleep
        self._task: asyncio.Task | None = None
        self._probe_options = RequestOptions(method="GET", headers={"Cache-Control": "no-cache"})

        self.last_probe_at: float | None = None
        self.cycles_completed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def endpoint(self) -> str:
        return self._config.endpoints[0]

    def start(self) -> None:
        """Arm the probe loop; a second call while running is a no-op."""
        if self.running:
            logger.debug("HealthProber already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="mirror-relay-health-prober")
        logger.info(
            "HealthProber started: %d host(s) every %.1fs on %s",
            len(self._hosts),
            self._config.interval,
            self.endpoint,
        )

    async def stop(self) -> None:
        """Cancel the loop and wait for it to unwind; safe when not running."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("HealthProber stopped after %d cycle(s)", self.cycles_completed)

    async def _run(self) -> None:
        while True:
            await self.run_cycle()
            await self._sleep(self._config.interval)

    async def run_cycle(self) -> None:
        """Probe all hosts concurrently and record every outcome."""
        await asyncio.gather(*(self._probe(h) for h in self._hosts))
        self.last_probe_at = self._clock.now()
        self.cycles_completed += 1

    async def _probe(self, descriptor: HostDescriptor) -> None:
        url = f"{descriptor.base_url}{self.endpoint}"
        try:
            response = await self._executor.execute(
                url,
                self._probe_options,
                self._config.timeout,
                host=descriptor.host,
            )
        except AttemptError as exc:
            logger.debug("Probe of %s failed: %s", descriptor.host, exc)
            self._ledger.record_outcome(descriptor.host, False)
            return
        except Exception:
            logger.exception("Probe of %s raised unexpectedly", descriptor.host)
            self._ledger.record_outcome(descriptor.host, False)
            return

        healthy = response.ok
        logger.debug("Probe of %s → %d (%.1fms)", descriptor.host, response.status, response.elapsed_ms)
        self._ledger.record_outcome(
            descriptor.host,
            healthy,
            response.elapsed_ms if healthy else None,
        )
