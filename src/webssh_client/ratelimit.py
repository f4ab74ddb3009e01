"""
Sliding-window rate limiter and circuit breaker for server-issued prompts.

Two thresholds share one rolling window:

- soft limit: a prompt is dropped when the window already holds
  max_per_second admitted prompts
- circuit breaker: when arrivals in the window (admitted or not) reach
  breaker_threshold, the limiter latches tripped and rejects everything
  until reset() is called on reconnect

The breaker counts arrivals rather than admissions; admissions are capped
by the soft limit and could never reach the breaker threshold.
"""
from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_MAX_PER_SECOND = 5
DEFAULT_BREAKER_THRESHOLD = 10
DEFAULT_WINDOW_SEC = 1.0


class Admission(str, Enum):
    """Outcome of PromptRateLimiter.check()."""
    ADMITTED = "admitted"
    RATE_LIMITED = "rate_limited"
    TRIPPED = "tripped"          # this arrival tripped the breaker
    BREAKER_OPEN = "breaker_open"  # breaker was already tripped

    @property
    def admitted(self) -> bool:
        return self is Admission.ADMITTED


class PromptRateLimiter:
    """
    Rolling-window limiter with a latching circuit breaker.

    Args:
        clock: Returns the current time in seconds (monotonic)
        max_per_second: Admissions allowed per window
        breaker_threshold: Arrivals per window that trip the breaker
        window_sec: Window length in seconds
    """

    def __init__(
        self,
        clock: Callable[[], float],
        max_per_second: int = DEFAULT_MAX_PER_SECOND,
        breaker_threshold: int = DEFAULT_BREAKER_THRESHOLD,
        window_sec: float = DEFAULT_WINDOW_SEC,
    ) -> None:
        assert max_per_second > 0, f"max_per_second must be positive, got {max_per_second}"
        assert breaker_threshold > max_per_second, \
            f"breaker_threshold must exceed max_per_second, got {breaker_threshold}"
        assert window_sec > 0, f"window_sec must be positive, got {window_sec}"

        self._clock = clock
        self._max_per_second = max_per_second
        self._breaker_threshold = breaker_threshold
        self._window_sec = window_sec
        self._admitted: deque[float] = deque()
        self._arrivals: deque[float] = deque()
        self._tripped = False

    @property
    def tripped(self) -> bool:
        return self._tripped

    @property
    def admitted_in_window(self) -> int:
        self._expire(self._clock())
        return len(self._admitted)

    def _expire(self, now: float) -> None:
        cutoff = now - self._window_sec
        for window in (self._admitted, self._arrivals):
            while window and window[0] <= cutoff:
                window.popleft()

    def check(self) -> Admission:
        """Record an arrival and decide whether to admit it."""
        if self._tripped:
            return Admission.BREAKER_OPEN

        now = self._clock()
        self._expire(now)
        self._arrivals.append(now)

        if len(self._arrivals) >= self._breaker_threshold:
            self._tripped = True
            self._admitted.clear()
            self._arrivals.clear()
            logger.warning(
                "Prompt circuit breaker tripped: %d prompts within %.1fs",
                self._breaker_threshold, self._window_sec,
            )
            return Admission.TRIPPED

        if len(self._admitted) >= self._max_per_second:
            logger.debug("Prompt rate limit reached, dropping prompt")
            return Admission.RATE_LIMITED

        self._admitted.append(now)
        return Admission.ADMITTED

    def reset(self) -> None:
        """Clear the window and the breaker latch."""
        if self._tripped:
            logger.info("Prompt circuit breaker reset")
        self._tripped = False
        self._admitted.clear()
        self._arrivals.clear()
