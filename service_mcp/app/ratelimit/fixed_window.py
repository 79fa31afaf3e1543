"""
Fixed window rate limiter for the MCP gateway.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from shared.logging import get_logger


@dataclass(frozen=True)
class RateLimitTier:
    """A named request ceiling per client over a fixed window."""

    name: str
    limit: int
    window_seconds: float

    @property
    def window_label(self) -> str:
        minutes, seconds = divmod(int(self.window_seconds), 60)
        if seconds == 0 and minutes:
            return f"{minutes}min"
        return f"{int(self.window_seconds)}s"


GENERAL_TIER = RateLimitTier("general", 100, 15 * 60)
API_TIER = RateLimitTier("api", 50, 15 * 60)


@dataclass
class WindowState:
    """Request count for one client inside the current window."""

    count: int
    window_start: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single rate limit check."""

    allowed: bool
    tier: str
    limit: int
    remaining: int
    reset_in_seconds: int

    @property
    def retry_after(self) -> Optional[int]:
        return None if self.allowed else self.reset_in_seconds

    def headers(self) -> Dict[str, str]:
        """Standard ``RateLimit-*`` response headers."""
        headers = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_in_seconds),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset_in_seconds)
        return headers


class FixedWindowRateLimiter:
    """In-process fixed window counter keyed by client.

    ``hit`` increments and compares under one lock, so concurrent requests
    from the same client can never be admitted past the ceiling. Windows idle
    for a full window length are swept at most once per window.
    """

    def __init__(self, tier: RateLimitTier, clock: Callable[[], float] = time.monotonic):
        self.tier = tier
        self.clock = clock
        self.logger = get_logger(f"mcp.rate_limiter.{tier.name}")
        self._windows: Dict[str, WindowState] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)

    def hit(self, key: str) -> RateLimitResult:
        """Count one request for ``key`` and decide whether it is admitted."""
        window = self.tier.window_seconds
        limit = self.tier.limit

        with self._lock:
            now = self.clock()
            if now - self._last_sweep >= window:
                self._sweep_locked(now)

            state = self._windows.get(key)
            if state is None or now - state.window_start >= window:
                state = WindowState(count=0, window_start=now)
                self._windows[key] = state

            elapsed = now - state.window_start
            reset_in = max(0, min(math.ceil(window - elapsed), math.ceil(window)))

            if state.count >= limit:
                return RateLimitResult(
                    allowed=False,
                    tier=self.tier.name,
                    limit=limit,
                    remaining=0,
                    reset_in_seconds=reset_in,
                )

            state.count += 1
            return RateLimitResult(
                allowed=True,
                tier=self.tier.name,
                limit=limit,
                remaining=limit - state.count,
                reset_in_seconds=reset_in,
            )

    def reset(self, key: str) -> bool:
        """Forget the window for ``key``."""
        with self._lock:
            removed = self._windows.pop(key, None) is not None
        if removed:
            self.logger.info("Rate limit reset", client_id=key)
        return removed

    def sweep(self) -> int:
        """Drop windows that have been idle for a full window length."""
        with self._lock:
            return self._sweep_locked(self.clock())

    def _sweep_locked(self, now: float) -> int:
        window = self.tier.window_seconds
        expired = [key for key, state in self._windows.items() if now - state.window_start >= window]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        if expired:
            self.logger.debug("Swept expired rate limit windows", removed=len(expired), tracked=len(self._windows))
        return len(expired)
