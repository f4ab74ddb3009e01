"""
Tests for the Debouncer, the manual scheduler and the asyncio scheduler.
"""

import asyncio

import pytest

from webssh_client.testing import ManualScheduler
from webssh_client.timers import AsyncioScheduler, Debouncer


class TestDebouncer:
    """Bursts collapse into one trailing call."""

    def test_trailing_call_with_last_args(self, scheduler: ManualScheduler) -> None:
        calls: list[int] = []
        debounced = Debouncer(scheduler, 0.15, calls.append)

        debounced(1)
        scheduler.advance(0.1)
        debounced(2)
        scheduler.advance(0.1)
        debounced(3)

        assert debounced.pending
        scheduler.advance(0.15)
        assert calls == [3]
        assert not debounced.pending

    def test_cancel(self, scheduler: ManualScheduler) -> None:
        calls: list[int] = []
        debounced = Debouncer(scheduler, 0.15, calls.append)
        debounced(1)
        debounced.cancel()
        debounced.cancel()
        scheduler.advance(1)
        assert calls == []


class TestManualScheduler:
    """The scheduler used throughout the tests."""

    def test_fires_in_due_order(self, scheduler: ManualScheduler) -> None:
        order: list[str] = []
        scheduler.call_later(2, lambda: order.append("late"))
        scheduler.call_later(1, lambda: order.append("early"))
        scheduler.call_later(1, lambda: order.append("early-2"))

        assert scheduler.advance(2) == 3
        assert order == ["early", "early-2", "late"]

    def test_clock_moves_to_due_time(self, scheduler: ManualScheduler) -> None:
        start = scheduler.time()
        seen: list[float] = []
        scheduler.call_later(0.5, lambda: seen.append(scheduler.time()))
        scheduler.advance(3)
        assert seen == [start + 0.5]
        assert scheduler.time() == start + 3

    def test_cancelled_timers_skipped(self, scheduler: ManualScheduler) -> None:
        timer = scheduler.call_later(1, lambda: pytest.fail("cancelled timer fired"))
        timer.cancel()
        assert scheduler.pending == 0
        assert scheduler.advance(2) == 0


class TestAsyncioScheduler:
    """The production scheduler uses the running loop."""

    @pytest.mark.asyncio
    async def test_call_later(self) -> None:
        scheduler = AsyncioScheduler()
        fired = asyncio.Event()
        scheduler.call_later(0.01, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=1.0)
        assert scheduler.time() > 0

    @pytest.mark.asyncio
    async def test_debounce_on_loop(self) -> None:
        calls: list[int] = []
        debounced = Debouncer(AsyncioScheduler(), 0.02, calls.append)
        debounced(1)
        debounced(2)
        await asyncio.sleep(0.1)
        assert calls == [2]
