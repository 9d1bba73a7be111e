"""Diagnostic response models for ``Dispatcher.status()``."""

from pydantic import BaseModel

from mirror_relay.resilience.health_ledger import CircuitState


class RequestStatsView(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    cached: int = 0
    rate_limited: int = 0


class HostHealthView(BaseModel):
    """Read-only copy of one host's ``HealthRecord``."""

    healthy: bool
    last_checked_at: float
    last_response_time_ms: float | None = None
    consecutive_failures: int
    circuit_open_until: float | None = None
    circuit_state: CircuitState


class StatusSnapshot(BaseModel):
    """Point-in-time view of a dispatcher's session state."""

    initialized: bool
    stats: RequestStatsView
    health_by_host: dict[str, HostHealthView]
    cache_size: int
    last_probe_at: float | None = None
    in_flight: int = 0
