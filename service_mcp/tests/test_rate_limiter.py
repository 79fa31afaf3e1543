"""
Unit tests for the fixed window rate limiter.
"""

import pytest
from concurrent.futures import ThreadPoolExecutor

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_mcp.app.ratelimit.fixed_window import (
    API_TIER,
    GENERAL_TIER,
    FixedWindowRateLimiter,
    RateLimitTier,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateLimitTier:
    """Test cases for tier definitions."""

    def test_default_tiers(self):
        """General and API tiers use 100 and 50 requests per 15 minutes."""
        assert GENERAL_TIER.limit == 100
        assert GENERAL_TIER.window_seconds == 900
        assert API_TIER.limit == 50
        assert API_TIER.window_seconds == 900

    def test_window_label(self):
        assert GENERAL_TIER.window_label == "15min"
        assert RateLimitTier("burst", 5, 45).window_label == "45s"


class TestFixedWindowRateLimiter:
    """Test cases for FixedWindowRateLimiter."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def rate_limiter(self, clock):
        """Create a small limiter driven by a fake clock."""
        return FixedWindowRateLimiter(RateLimitTier("test", 3, 60), clock=clock)

    def test_allows_up_to_limit(self, rate_limiter):
        """Requests up to the ceiling are admitted with decreasing remaining."""
        results = [rate_limiter.hit("10.0.0.1") for _ in range(3)]

        assert all(result.allowed for result in results)
        assert [result.remaining for result in results] == [2, 1, 0]
        assert results[0].limit == 3
        assert results[0].tier == "test"

    def test_rejects_request_past_limit(self, rate_limiter):
        """The (N+1)-th request in a window is rejected."""
        for _ in range(3):
            rate_limiter.hit("10.0.0.1")

        result = rate_limiter.hit("10.0.0.1")

        assert result.allowed is False
        assert result.remaining == 0
        assert result.retry_after == 60

    def test_rejections_do_not_extend_count(self, rate_limiter, clock):
        """Rejected hits are not counted, so the window still resets on time."""
        for _ in range(10):
            rate_limiter.hit("10.0.0.1")

        clock.advance(60)

        assert rate_limiter.hit("10.0.0.1").allowed is True

    def test_window_reset(self, rate_limiter, clock):
        """After the window elapses the counter starts again."""
        for _ in range(4):
            rate_limiter.hit("10.0.0.1")

        clock.advance(59)
        assert rate_limiter.hit("10.0.0.1").allowed is False

        clock.advance(1)
        result = rate_limiter.hit("10.0.0.1")
        assert result.allowed is True
        assert result.remaining == 2

    def test_reset_in_seconds_counts_down(self, rate_limiter, clock):
        assert rate_limiter.hit("10.0.0.1").reset_in_seconds == 60

        clock.advance(15.5)

        assert rate_limiter.hit("10.0.0.1").reset_in_seconds == 45

    def test_keys_are_independent(self, rate_limiter):
        """Exhausting one client does not affect another."""
        for _ in range(4):
            rate_limiter.hit("10.0.0.1")

        assert rate_limiter.hit("10.0.0.2").allowed is True

    def test_reset(self, rate_limiter):
        for _ in range(4):
            rate_limiter.hit("10.0.0.1")

        assert rate_limiter.reset("10.0.0.1") is True
        assert rate_limiter.reset("10.0.0.1") is False
        assert rate_limiter.hit("10.0.0.1").allowed is True

    def test_sweep_removes_idle_windows(self, rate_limiter, clock):
        """Idle counters are garbage collected after a full window."""
        rate_limiter.hit("10.0.0.1")
        clock.advance(30)
        rate_limiter.hit("10.0.0.2")
        assert len(rate_limiter) == 2

        clock.advance(30)
        assert rate_limiter.sweep() == 1
        assert len(rate_limiter) == 1

    def test_sweep_runs_opportunistically(self, rate_limiter, clock):
        """A hit after a full window sweeps stale keys of other clients."""
        for index in range(5):
            rate_limiter.hit(f"10.0.0.{index}")

        clock.advance(61)
        rate_limiter.hit("10.0.1.1")

        assert len(rate_limiter) == 1

    def test_headers(self, rate_limiter):
        """Admitted and rejected results expose standard headers."""
        allowed = rate_limiter.hit("10.0.0.1")
        assert allowed.headers() == {
            "RateLimit-Limit": "3",
            "RateLimit-Remaining": "2",
            "RateLimit-Reset": "60",
        }

        for _ in range(3):
            rejected = rate_limiter.hit("10.0.0.1")
        assert rejected.headers()["Retry-After"] == "60"
        assert rejected.headers()["RateLimit-Remaining"] == "0"

    def test_concurrent_hits_never_exceed_limit(self):
        """Parallel hits from one client at the boundary admit exactly the ceiling."""
        rate_limiter = FixedWindowRateLimiter(RateLimitTier("race", 50, 900))

        with ThreadPoolExecutor(max_workers=32) as pool:
            results = list(pool.map(lambda _: rate_limiter.hit("198.51.100.9"), range(400)))

        assert sum(result.allowed for result in results) == 50

    def test_reset_never_exceeds_window(self):
        """Float clock values never push the reset countdown past the window."""
        clock = FakeClock()
        rate_limiter = FixedWindowRateLimiter(RateLimitTier("float", 10, 900), clock=clock)

        for index in range(10000):
            clock.now = 12345.678 + index * 0.1037
            result = rate_limiter.hit(f"10.1.{index // 250}.{index % 250}")
            assert result.reset_in_seconds == 900

    def test_reset_with_fractional_window(self):
        rate_limiter = FixedWindowRateLimiter(RateLimitTier("short", 1, 2.5), clock=FakeClock())

        assert rate_limiter.hit("10.0.0.1").reset_in_seconds == 3
