"""
Deferred execution for the client core.

Timers are the only source of deferred work: toast auto-dismiss, the
focus-trap safety valve and debounced resize emission. They all go through
a Scheduler so tests can drive time by hand (see webssh_client.testing).

Provides:
- Scheduler: protocol with time() and call_later()
- AsyncioScheduler: the running event loop's clock and timers
- Debouncer: collapse bursts of calls into one trailing call
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Clock plus one-shot timers, in seconds."""

    def time(self) -> float: ...

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """
    Scheduler backed by the running asyncio loop.

    Must be used from inside the loop; the client core is single-threaded
    and every callback runs on the loop thread.
    """

    def time(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle:
        assert delay_sec >= 0, f"delay_sec must be non-negative, got {delay_sec}"
        return asyncio.get_running_loop().call_later(delay_sec, callback)


class Debouncer:
    """
    Run fn once, delay_sec after the last of a burst of calls.

    Usage:
        emit_resize = Debouncer(scheduler, 0.15, transport_resize)
        emit_resize({"cols": 80, "rows": 24})
        emit_resize({"cols": 81, "rows": 24})  # only this one is sent
    """

    def __init__(
        self,
        scheduler: Scheduler,
        delay_sec: float,
        fn: Callable[..., Any],
    ) -> None:
        assert delay_sec > 0, f"delay_sec must be positive, got {delay_sec}"
        self._scheduler = scheduler
        self._delay_sec = delay_sec
        self._fn = fn
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        """Return True if a call is waiting to fire."""
        return self._handle is not None

    def __call__(self, *args: Any, **kwargs: Any) -> None:
        self.cancel()

        def fire() -> None:
            self._handle = None
            self._fn(*args, **kwargs)

        self._handle = self._scheduler.call_later(self._delay_sec, fire)

    def cancel(self) -> None:
        """Drop the pending call, if any. Idempotent."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
