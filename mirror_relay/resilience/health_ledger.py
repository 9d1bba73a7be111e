"""Per-host health ledger with a lazily-reset circuit breaker.

Each host gets a ``HealthRecord``.  The breaker follows the usual
three states, driven only by recorded outcomes and the clock:

    CLOSED    →  (failure_threshold consecutive failures)  →  OPEN
    OPEN      →  (cooldown elapsed, checked lazily)         →  HALF_OPEN
    HALF_OPEN →  (success)                                  →  CLOSED
    HALF_OPEN →  (failure)                                  →  OPEN

There is no timer: an elapsed breaker is cleared the next time anyone
asks ``is_circuit_open``.  A host with no record is unknown and treated
as usable.

The ledger never awaits, so under asyncio every mutation is atomic with
respect to other tasks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

from mirror_relay.core.clock import Clock, MonotonicClock

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class HealthRecord:
    """Health observations for one host.

    Attributes:
        healthy:               False once the breaker has tripped.
        last_checked_at:       Clock time of the last recorded outcome.
        last_response_time_ms: Latency of the last success, if any.
        consecutive_failures:  Reset to 0 on any success.
        circuit_open_until:    Clock time the breaker re-admits the host.
        circuit_state:         Current breaker state.
    """

    healthy: bool = True
    last_checked_at: float = 0.0
    last_response_time_ms: float | None = None
    consecutive_failures: int = 0
    circuit_open_until: float | None = None
    circuit_state: CircuitState = CircuitState.CLOSED


class HealthLedger:
    """Records per-host outcomes and answers "is this host usable now".

    Args:
        failure_threshold: Consecutive failures before the breaker opens.
        cooldown:          Seconds the breaker stays open.
        clock:             Time source (``MonotonicClock`` by default).
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown: float = 30.0,
        clock: Clock | None = None,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._clock = clock or MonotonicClock()
        self._records: dict[str, HealthRecord] = {}

        # Metrics
        self.total_trips = 0

    def _record_for(self, host: str) -> HealthRecord:
        if host not in self._records:
            self._records[host] = HealthRecord(last_checked_at=self._clock.now())
        return self._records[host]

    # ── Mutation ─────────────────────────────────────────────────────

    def record_outcome(self, host: str, success: bool, response_time_ms: float | None = None) -> None:
        """Fold one attempt or probe outcome into *host*'s record."""
        record = self._record_for(host)
        now = self._clock.now()
        record.last_checked_at = now

        if success:
            if record.circuit_state != CircuitState.CLOSED:
                logger.info("Circuit closed for %s after successful response", host)
            record.healthy = True
            record.consecutive_failures = 0
            record.circuit_open_until = None
            record.circuit_state = CircuitState.CLOSED
            if response_time_ms is not None:
                record.last_response_time_ms = response_time_ms
            return

        record.consecutive_failures += 1
        if record.circuit_state == CircuitState.HALF_OPEN:
            # Re-admitted host failed again; reopen without waiting for the threshold
            self._trip(host, record, now)
        elif record.circuit_state == CircuitState.CLOSED and record.consecutive_failures >= self.failure_threshold:
            self._trip(host, record, now)

    def _trip(self, host: str, record: HealthRecord, now: float) -> None:
        record.healthy = False
        record.circuit_state = CircuitState.OPEN
        record.circuit_open_until = now + self.cooldown
        self.total_trips += 1
        logger.warning(
            "Circuit opened for %s after %d consecutive failure(s); cooling down %.1fs",
            host,
            record.consecutive_failures,
            self.cooldown,
        )

    def reset(self) -> None:
        """Forget every record."""
        self._records.clear()

    # ── Queries ──────────────────────────────────────────────────────

    def is_circuit_open(self, host: str) -> bool:
        """Return True while *host*'s breaker is open.

        Clears an elapsed breaker as a side effect (OPEN → HALF_OPEN).
        """
        record = self._records.get(host)
        if record is None or record.circuit_open_until is None:
            return False
        if self._clock.now() <= record.circuit_open_until:
            return True
        record.circuit_open_until = None
        record.circuit_state = CircuitState.HALF_OPEN
        record.healthy = True
        logger.info("Circuit half-open for %s; re-admitting", host)
        return False

    def retry_after(self, host: str) -> float:
        """Seconds until *host*'s breaker re-admits it (0 when closed)."""
        record = self._records.get(host)
        if record is None or record.circuit_open_until is None:
            return 0.0
        return max(0.0, record.circuit_open_until - self._clock.now())

    def is_usable(self, host: str) -> bool:
        if self.is_circuit_open(host):
            return False
        record = self._records.get(host)
        return record is None or record.healthy

    def get(self, host: str) -> HealthRecord | None:
        """Return a copy of *host*'s record, or ``None`` if never seen."""
        record = self._records.get(host)
        return replace(record) if record is not None else None

    def snapshot(self) -> dict[str, HealthRecord]:
        """Copies of every record, keyed by host."""
        return {host: replace(record) for host, record in self._records.items()}

    def __contains__(self, host: object) -> bool:
        return host in self._records
