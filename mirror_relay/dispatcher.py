"""Dispatcher — resilient request routing across a primary and its mirrors.

Per ``request(path, options)``:

    admission  →  cache check  →  host selection  →  attempt loop  →  result

The attempt loop has a retry budget of ``max_retries + 1`` shared by the
whole call.  Each retry moves to the next host in the weighted order
(wrapping around), skips hosts whose breaker is open, and backs off
``retry_delay * 2**attempt`` between failures.  Every attempt outcome is
written to the health ledger; a ``HealthProber`` refreshes the same
ledger in the background.

Only terminal errors (``MirrorRelayError`` subclasses) leave
``request()``; httpx exceptions never do.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import asdict

from mirror_relay.core.clock import Clock, MonotonicClock
from mirror_relay.core.config import HostDescriptor, RelayConfig, Settings, build_relay_config
from mirror_relay.core.errors import (
    AllHostsUnavailableError,
    AttemptAbortedError,
    AttemptError,
    CircuitOpenSkip,
    DispatcherShutdownError,
    HttpStatusError,
    NoHealthyHostsError,
    NotInitializedError,
    RateLimitExceededError,
)
from mirror_relay.models.request import RelayResponse, RequestOptions
from mirror_relay.models.schemas import HostHealthView, RequestStatsView, StatusSnapshot
from mirror_relay.models.stats import RequestStats
from mirror_relay.request_executor import RequestExecutor
from mirror_relay.resilience.concurrency import ConcurrencyGate
from mirror_relay.resilience.health_ledger import HealthLedger
from mirror_relay.resilience.health_prober import HealthProber
from mirror_relay.resilience.host_selector import HostSelector, RandomSource
from mirror_relay.response_cache import ResponseCache, build_cache_key
from mirror_relay.security.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class Dispatcher:
    """Routes logical API paths to the healthiest available host.

    All session state (ledger, cache, stats) is owned by the instance, so
    several dispatchers can coexist in one process.

    Args:
        config:   Validated configuration snapshot.
        executor: Attempt executor; defaults to an httpx-backed one.
        clock:    Time source shared by ledger, cache, limiter and prober.
        sleep:    Awaitable sleep for backoff, gate polling and probing.
        rng:      Random source for weighted host ordering.
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        executor: RequestExecutor | None = None,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self.config = config
        self._clock = clock or MonotonicClock()
        self._sleep = sleep or asyncio.sleep
        self._executor = executor or RequestExecutor()

        self.ledger = HealthLedger(
            failure_threshold=config.breaker.failure_threshold,
            cooldown=config.breaker.cooldown,
            clock=self._clock,
        )
        self.cache = ResponseCache(max_size=config.cache.max_size, clock=self._clock)
        self.stats = RequestStats()
        self._selector = HostSelector(self.ledger, rng=rng)
        self._limiter = RateLimiter(config.security.rate_limit_per_minute, clock=self._clock)
        self._gate = ConcurrencyGate(config.performance.max_concurrent_requests, sleep=self._sleep)
        self._prober = HealthProber(
            config.hosts,
            config.health_check,
            self._executor,
            self.ledger,
            clock=self._clock,
            sleep=self._sleep,
        )

        self._initialized = False
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs) -> Dispatcher:
        """Build a dispatcher from environment settings (``MIRROR_RELAY_*``)."""
        return cls(build_relay_config(settings or Settings()), **kwargs)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Mark the dispatcher ready and arm the health prober if enabled."""
        if self._closed:
            raise DispatcherShutdownError()
        if self.config.health_check.enabled:
            self._prober.start()
        self._initialized = True

    async def shutdown(self) -> None:
        """Stop probing, drop the cache, abort in-flight attempts, close the transport."""
        if self._closed:
            return
        self._closed = True
        self._initialized = False
        await self._prober.stop()
        self.cache.clear()
        await self._executor.abort_all()
        await self._executor.close()
        logger.info("Dispatcher shut down (stats=%s)", self.stats.as_dict())

    async def __aenter__(self) -> Dispatcher:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.shutdown()

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ── Public API ───────────────────────────────────────────────────

    async def get(self, path: str, headers: dict[str, str] | None = None) -> RelayResponse:
        return await self.request(path, RequestOptions(method="GET", headers=headers or {}))

    async def request(self, path: str, options: RequestOptions | None = None) -> RelayResponse:
        """Send *path* to the best available host.

        Args:
            path:    Root-relative API path (``/api/v1/user``).
            options: Method, headers and body; defaults to a plain GET.

        Returns:
            A ``RelayResponse`` with a status in ``[200, 400)``.

        Raises:
            ValueError: If *path* is not root-relative.
            NotInitializedError: Before ``start()``.
            DispatcherShutdownError: After ``shutdown()``.
            RateLimitExceededError: The per-minute ceiling is reached.
            NoHealthyHostsError: No host is currently usable.
            AllHostsUnavailableError: The retry budget ran out.
        """
        if not path.startswith("/"):
            raise ValueError(f"path must be root-relative, got {path!r}")
        options = options or RequestOptions()
        self._check_admission()

        request_id = uuid.uuid4().hex[:12]
        self.stats.record_admitted()

        cache_key = None
        if self.config.cache.enabled and options.is_cacheable:
            cache_key = build_cache_key(options.method, path, options.headers)
            cached = self._cache_lookup(cache_key, request_id)
            if cached is not None:
                return cached

        try:
            order = self._selector.select_order(self.config.hosts)
        except NoHealthyHostsError:
            self.stats.record_failure()
            logger.warning("[%s] No usable host for %s %s", request_id, options.method, path)
            raise

        response = await self._attempt_loop(order, path, options, request_id)

        if cache_key is not None:
            self.cache.put(
                cache_key,
                body=response.body,
                status=response.status,
                status_text=response.status_text,
                headers=response.headers,
                ttl=self.config.cache.ttl,
                host=response.host,
            )
        self.stats.record_success()
        return response

    def status(self) -> StatusSnapshot:
        """Read-only diagnostic view of the session."""
        return StatusSnapshot(
            initialized=self._initialized,
            stats=RequestStatsView(**self.stats.as_dict()),
            health_by_host={host: HostHealthView(**asdict(record)) for host, record in self.ledger.snapshot().items()},
            cache_size=len(self.cache),
            last_probe_at=self._prober.last_probe_at,
            in_flight=self._executor.in_flight,
        )

    # ── Internals ────────────────────────────────────────────────────

    def _check_admission(self) -> None:
        if self._closed:
            raise DispatcherShutdownError()
        if not self._initialized:
            raise NotInitializedError()
        try:
            self._limiter.acquire()
        except RateLimitExceededError:
            self.stats.record_rate_limited()
            raise

    def _cache_lookup(self, key: str, request_id: str) -> RelayResponse | None:
        entry = self.cache.get(key)
        if entry is None:
            return None
        self.stats.record_cache_hit()
        logger.debug("[%s] Cache hit for %s", request_id, key)
        return RelayResponse(
            status=entry.status,
            status_text=entry.status_text,
            headers=dict(entry.headers),
            body=entry.body,
            host=entry.host,
            from_cache=True,
        )

    async def _attempt_loop(
        self,
        order: list[HostDescriptor],
        path: str,
        options: RequestOptions,
        request_id: str,
    ) -> RelayResponse:
        attempts = 1 + self.config.performance.max_retries
        last_exc: AttemptError | None = None

        for attempt in range(attempts):
            descriptor = order[attempt % len(order)]
            try:
                return await self._attempt_dispatch(descriptor, path, options)
            except CircuitOpenSkip as skip:
                logger.debug("[%s] %s (attempt %d/%d)", request_id, skip, attempt + 1, attempts)
                continue
            except AttemptAbortedError:
                self.stats.record_failure()
                raise DispatcherShutdownError() from None
            except AttemptError as exc:
                last_exc = exc
                self.ledger.record_outcome(descriptor.host, False)
                if attempt < attempts - 1:
                    await self._retry_delay(attempt, attempts, request_id, exc)

        self.stats.record_failure()
        logger.error(
            "[%s] %s %s failed on every candidate after %d attempt(s)",
            request_id,
            options.method,
            path,
            attempts,
        )
        raise AllHostsUnavailableError(attempts, last_exc) from last_exc

    async def _attempt_dispatch(
        self,
        descriptor: HostDescriptor,
        path: str,
        options: RequestOptions,
    ) -> RelayResponse:
        """Execute a single attempt; return a successful response or raise AttemptError."""
        host = descriptor.host
        if self.ledger.is_circuit_open(host):
            raise CircuitOpenSkip(host, self.ledger.retry_after(host))

        url = f"{descriptor.base_url}{path}"
        async with self._gate.slot():
            if self._closed:
                raise AttemptAbortedError(host, "relay shutting down")
            response = await self._executor.execute(
                url,
                options,
                self.config.performance.request_timeout,
                host=host,
            )

        if not response.ok:
            raise HttpStatusError(host, response.status, response.status_text)

        self.ledger.record_outcome(host, True, response.elapsed_ms)
        return response

    async def _retry_delay(
        self,
        attempt: int,
        attempts: int,
        request_id: str,
        exc: AttemptError,
    ) -> None:
        """Log a warning and sleep for exponential backoff."""
        delay = self.config.performance.retry_delay * (2**attempt)
        if isinstance(exc, HttpStatusError) and not exc.retryable:
            reason = "client error, advancing to next host"
        else:
            reason = "retrying"
        logger.warning(
            "[%s] %s (attempt %d/%d), %s in %.1fs",
            request_id,
            exc,
            attempt + 1,
            attempts,
            reason,
            delay,
        )
        await self._sleep(delay)
