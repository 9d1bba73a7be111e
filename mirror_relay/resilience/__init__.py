"""Resilience patterns — health ledger, host ordering, probing, admission.

Per-host circuit breakers live in the ``HealthLedger``; the
``HostSelector`` orders usable hosts by weight; the ``HealthProber``
refreshes the ledger in the background; the ``ConcurrencyGate`` caps
in-flight attempts.
"""

from mirror_relay.resilience.concurrency import ConcurrencyGate
from mirror_relay.resilience.health_ledger import (
    CircuitState,
    HealthLedger,
    HealthRecord,
)
from mirror_relay.resilience.health_prober import HealthProber
from mirror_relay.resilience.host_selector import HostSelector

__all__ = [
    "CircuitState",
    "ConcurrencyGate",
    "HealthLedger",
    "HealthProber",
    "HealthRecord",
    "HostSelector",
]
