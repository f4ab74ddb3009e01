"""
Tests for the prompt rate limiter and its latching circuit breaker.
"""

import pytest

from webssh_client.ratelimit import Admission, PromptRateLimiter
from webssh_client.testing import ManualClock


@pytest.fixture
def limiter(clock: ManualClock) -> PromptRateLimiter:
    return PromptRateLimiter(clock)


class TestSoftLimit:
    """Five admissions per rolling second."""

    def test_admits_up_to_limit(self, limiter: PromptRateLimiter) -> None:
        """The sixth prompt within a second is dropped."""
        outcomes = [limiter.check() for _ in range(6)]
        assert outcomes[:5] == [Admission.ADMITTED] * 5
        assert outcomes[5] is Admission.RATE_LIMITED
        assert limiter.admitted_in_window == 5

    def test_window_rolls(self, limiter: PromptRateLimiter, clock: ManualClock) -> None:
        """Admissions older than the window no longer count."""
        for _ in range(5):
            limiter.check()
        clock.advance(1.0)
        assert limiter.check() is Admission.ADMITTED
        assert limiter.admitted_in_window == 1

    def test_spaced_prompts_never_limited(self, limiter: PromptRateLimiter, clock: ManualClock) -> None:
        for _ in range(50):
            assert limiter.check().admitted
            clock.advance(0.25)


class TestCircuitBreaker:
    """Ten arrivals within a second trip the breaker."""

    def test_trips_on_tenth_arrival(self, limiter: PromptRateLimiter) -> None:
        """Dropped arrivals still count towards the breaker."""
        outcomes = [limiter.check() for _ in range(10)]
        assert outcomes.count(Admission.ADMITTED) == 5
        assert outcomes.count(Admission.RATE_LIMITED) == 4
        assert outcomes[-1] is Admission.TRIPPED
        assert limiter.tripped

    def test_latched_until_reset(self, limiter: PromptRateLimiter, clock: ManualClock) -> None:
        """Once tripped, everything is rejected even after the window passes."""
        for _ in range(10):
            limiter.check()
        clock.advance(60)
        assert limiter.check() is Admission.BREAKER_OPEN

        limiter.reset()

        assert not limiter.tripped
        assert limiter.check() is Admission.ADMITTED

    def test_slow_flood_does_not_trip(self, limiter: PromptRateLimiter, clock: ManualClock) -> None:
        """Nine per second, spread out, stays under the breaker."""
        for _ in range(5):
            for _ in range(9):
                limiter.check()
            clock.advance(1.0)
        assert not limiter.tripped

    def test_thresholds_must_be_ordered(self, clock: ManualClock) -> None:
        with pytest.raises(AssertionError):
            PromptRateLimiter(clock, max_per_second=10, breaker_threshold=5)
