"""Tests for ConcurrencyGate — polling admission with a fixed slot count."""

from __future__ import annotations

import asyncio

import pytest

from mirror_relay.resilience.concurrency import ConcurrencyGate


class TestConcurrencyGate:
    async def test_acquire_and_release(self):
        gate = ConcurrencyGate(max_concurrent=2)
        await gate.acquire()
        await gate.acquire()
        assert gate.active == 2
        gate.release()
        assert gate.active == 1

    async def test_release_never_goes_negative(self):
        gate = ConcurrencyGate(max_concurrent=1)
        gate.release()
        assert gate.active == 0

    async def test_slot_context_releases_on_error(self):
        gate = ConcurrencyGate(max_concurrent=1)
        with pytest.raises(RuntimeError):
            async with gate.slot():
                assert gate.active == 1
                raise RuntimeError("boom")
        assert gate.active == 0

    async def test_waiter_polls_until_slot_frees(self):
        polls: list[float] = []
        gate: ConcurrencyGate

        async def sleep(seconds: float) -> None:
            polls.append(seconds)
            if len(polls) == 3:
                gate.release()
            await asyncio.sleep(0)

        gate = ConcurrencyGate(max_concurrent=1, poll_interval=0.25, sleep=sleep)
        await gate.acquire()

        await asyncio.wait_for(gate.acquire(), timeout=1.0)
        assert polls == [0.25, 0.25, 0.25]
        assert gate.active == 1
        assert gate.total_waits == 1

    async def test_limits_parallel_holders(self):
        gate = ConcurrencyGate(max_concurrent=2, poll_interval=0.001)
        peak = 0

        async def worker():
            nonlocal peak
            async with gate.slot():
                peak = max(peak, gate.active)
                await asyncio.sleep(0.005)

        await asyncio.gather(*(worker() for _ in range(6)))
        assert peak == 2
        assert gate.active == 0
