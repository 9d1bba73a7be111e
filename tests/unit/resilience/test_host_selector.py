"""Tests for HostSelector — weighted ordering without replacement."""

from __future__ import annotations

import random
from collections import Counter

import pytest

from mirror_relay.core.clock import ManualClock
from mirror_relay.core.config import HostDescriptor
from mirror_relay.core.errors import NoHealthyHostsError
from mirror_relay.resilience.health_ledger import HealthLedger
from mirror_relay.resilience.host_selector import HostSelector
from tests.relay_fakes import FirstPick


class SequenceRandom:
    """Returns the given values in order."""

    def __init__(self, values: list[float]) -> None:
        self._values = iter(values)

    def random(self) -> float:
        return next(self._values)


@pytest.fixture
def ledger(clock: ManualClock) -> HealthLedger:
    return HealthLedger(failure_threshold=2, cooldown=30.0, clock=clock)


HOSTS = [
    HostDescriptor(host="p.example.com", weight=10),
    HostDescriptor(host="f1.example.com", weight=5),
    HostDescriptor(host="f2.example.com", weight=1),
]


class TestSelectOrder:
    def test_is_a_permutation_of_usable_hosts(self, ledger):
        selector = HostSelector(ledger, rng=random.Random(7))
        for _ in range(50):
            order = selector.select_order(HOSTS)
            assert len(order) == len(HOSTS)
            assert {h.host for h in order} == {h.host for h in HOSTS}

    def test_zero_draw_keeps_configured_order(self, ledger):
        order = HostSelector(ledger, rng=FirstPick()).select_order(HOSTS)
        assert [h.host for h in order] == ["p.example.com", "f1.example.com", "f2.example.com"]

    def test_cursor_walks_by_weight(self, ledger):
        # total 16: 0.7 * 16 = 11.2 → past p (10), lands on f1
        # remaining total 11: 0.99 * 11 = 10.89 → past p (10), lands on f2
        order = HostSelector(ledger, rng=SequenceRandom([0.7, 0.99, 0.0])).select_order(HOSTS)
        assert [h.host for h in order] == ["f1.example.com", "f2.example.com", "p.example.com"]

    def test_unusable_hosts_are_filtered(self, ledger):
        ledger.record_outcome("p.example.com", False)
        ledger.record_outcome("p.example.com", False)
        order = HostSelector(ledger, rng=FirstPick()).select_order(HOSTS)
        assert [h.host for h in order] == ["f1.example.com", "f2.example.com"]

    def test_no_usable_hosts_raises(self, ledger):
        for h in HOSTS:
            ledger.record_outcome(h.host, False)
            ledger.record_outcome(h.host, False)
        with pytest.raises(NoHealthyHostsError) as exc_info:
            HostSelector(ledger).select_order(HOSTS)
        assert exc_info.value.host_count == 3

    def test_empty_host_list_raises(self, ledger):
        with pytest.raises(NoHealthyHostsError):
            HostSelector(ledger).select_order([])

    def test_first_pick_tracks_weight(self, ledger):
        selector = HostSelector(ledger, rng=random.Random(1234))
        firsts = Counter(selector.select_order(HOSTS)[0].host for _ in range(4000))
        # Expected shares: 10/16, 5/16, 1/16
        assert firsts["p.example.com"] / 4000 == pytest.approx(0.625, abs=0.05)
        assert firsts["f1.example.com"] / 4000 == pytest.approx(0.3125, abs=0.05)
        assert firsts["f2.example.com"] > 0
