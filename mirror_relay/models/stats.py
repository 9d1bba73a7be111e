"""RequestStats — advisory per-dispatcher counters."""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass
class RequestStats:
    """Counters for dispatched calls.

    Monotonically non-decreasing until ``reset()``.  Observability only;
    nothing reads these for routing decisions.
    """

    total: int = 0
    success: int = 0
    failed: int = 0
    cached: int = 0
    rate_limited: int = 0

    def record_admitted(self) -> None:
        self.total += 1

    def record_success(self) -> None:
        self.success += 1

    def record_failure(self) -> None:
        self.failed += 1

    def record_cache_hit(self) -> None:
        self.cached += 1

    def record_rate_limited(self) -> None:
        self.rate_limited += 1

    def reset(self) -> None:
        self.total = self.success = self.failed = self.cached = self.rate_limited = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)
