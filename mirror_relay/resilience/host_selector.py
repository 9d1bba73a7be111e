"""Weighted-random host ordering.

``HostSelector.select_order`` returns every usable host exactly once,
ordered by repeated weighted draws without replacement.  A host with
twice the weight is twice as likely to be tried first, but every usable
host appears somewhere in the order so one logical request can fall
through all of them.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import Protocol

from mirror_relay.core.config import HostDescriptor
from mirror_relay.core.errors import NoHealthyHostsError
from mirror_relay.resilience.health_ledger import HealthLedger


class RandomSource(Protocol):
    def random(self) -> float: ...


class HostSelector:
    """Orders configured hosts for one request.

    Args:
        ledger: Health ledger consulted for ``is_usable``.
        rng:    Uniform ``[0, 1)`` source; inject a seeded
                ``random.Random`` for reproducible orderings.
    """

    def __init__(self, ledger: HealthLedger, rng: RandomSource | None = None) -> None:
        self._ledger = ledger
        self._rng = rng or random.Random()

    def select_order(self, hosts: Sequence[HostDescriptor]) -> list[HostDescriptor]:
        """Return the usable subset of *hosts* in weighted-random order.

        Raises:
            NoHealthyHostsError: If no host passes ``is_usable``.
        """
        pool = [h for h in hosts if self._ledger.is_usable(h.host)]
        if not pool:
            raise NoHealthyHostsError(len(hosts))

        ordered: list[HostDescriptor] = []
        while pool:
            ordered.append(pool.pop(self._draw_index(pool)))
        return ordered

    def _draw_index(self, pool: list[HostDescriptor]) -> int:
        total_weight = sum(h.weight for h in pool)
        cursor = self._rng.random() * total_weight
        for index, host in enumerate(pool):
            cursor -= host.weight
            if cursor <= 0:
                return index
        # Float rounding can leave a sliver of cursor; the last host owns it
        return len(pool) - 1
