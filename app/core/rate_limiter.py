"""
Registry rate limiter.

Implements a sliding window limiter for the company registry API. The
registry publishes a budget of 600 requests per 5 minute window that is
shared by every caller using the same API key, so one limiter instance is
shared process-wide and handed to every registry client.
"""

import asyncio
import logging
import threading
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from app.core.api_errors import RateLimitError
from app.core.config import get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# Sliding Window Implementation
# =============================================================================


@dataclass
class SlidingWindow:
    """
    Sliding window of request timestamps.

    A request is allowed when fewer than max_requests timestamps fall inside
    the last window_seconds. Each allowed request records its timestamp.
    """

    source: str
    max_requests: int
    window_seconds: float
    clock: Callable[[], float] = time.monotonic

    # Current state
    timestamps: Deque[float] = field(default_factory=deque)

    # Statistics
    total_requests: int = 0
    total_throttled: int = 0

    def _evict(self, now: float) -> None:
        """Drop timestamps that have left the window."""
        while self.timestamps and now - self.timestamps[0] >= self.window_seconds:
            self.timestamps.popleft()

    def try_acquire(self) -> bool:
        """
        Try to record a request in the current window.

        Returns:
            True if the request fits the budget, False if rate limited
        """
        now = self.clock()
        self._evict(now)

        if len(self.timestamps) >= self.max_requests:
            self.total_throttled += 1
            return False

        self.timestamps.append(now)
        self.total_requests += 1
        return True

    def wait_time(self) -> float:
        """
        Seconds until the oldest request leaves the window.

        Returns:
            Seconds to wait (0 if a slot is free)
        """
        now = self.clock()
        self._evict(now)

        if len(self.timestamps) < self.max_requests:
            return 0.0

        return max(0.0, self.window_seconds - (now - self.timestamps[0]))

    def in_window(self) -> int:
        """Number of requests counted in the current window."""
        self._evict(self.clock())
        return len(self.timestamps)


# =============================================================================
# Rate Limiter Service
# =============================================================================


class RateLimitExceeded(RateLimitError):
    """Raised when no slot frees up before the acquire timeout."""

    def __init__(self, message: str, source: Optional[str] = None, retry_after: Optional[int] = None):
        super().__init__(message=message, source=source, retry_after=retry_after)


class SlidingWindowRateLimiter:
    """
    Thread-safe sliding window limiter shared by all registry calls.

    State is guarded by a threading.Lock rather than an asyncio.Lock so one
    instance can be shared by clients running on different event loops
    (request handlers, worker threads).

    The clock and sleep functions are injectable so tests can drive the
    window without real waiting.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        source: str = "companies_house",
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        self.source = source
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._window = SlidingWindow(
            source=source,
            max_requests=max_requests,
            window_seconds=window_seconds,
            clock=self._clock,
        )
        self._lock = threading.Lock()

    @property
    def max_requests(self) -> int:
        return self._window.max_requests

    @property
    def window_seconds(self) -> float:
        return self._window.window_seconds

    async def acquire(self, timeout: float = 30.0) -> None:
        """
        Wait for a slot in the window and claim it.

        Args:
            timeout: Maximum seconds to wait

        Raises:
            RateLimitExceeded: If no slot frees up within the timeout
        """
        start_time = self._clock()

        while True:
            with self._lock:
                if self._window.try_acquire():
                    return
                wait_time = self._window.wait_time()

            elapsed = self._clock() - start_time
            if elapsed + wait_time > timeout:
                logger.warning(
                    f"Rate limit timeout for source '{self.source}' after {elapsed:.1f}s "
                    f"({self._window.max_requests} requests per {self._window.window_seconds:.0f}s)"
                )
                raise RateLimitExceeded(
                    f"Rate limit exceeded for source '{self.source}'",
                    source=self.source,
                    retry_after=int(wait_time) + 1,
                )

            logger.debug(f"Rate limiting '{self.source}': waiting {wait_time:.2f}s")
            await self._sleep(wait_time)

    @asynccontextmanager
    async def limit(self, timeout: float = 30.0):
        """
        Async context manager for rate-limited requests.

        Usage:
            async with rate_limiter.limit():
                response = await client.get(url)
        """
        await self.acquire(timeout)
        yield

    def get_stats(self) -> Dict[str, Any]:
        """Get rate limit statistics."""
        with self._lock:
            return {
                "source": self.source,
                "max_requests": self._window.max_requests,
                "window_seconds": self._window.window_seconds,
                "in_window": self._window.in_window(),
                "total_requests": self._window.total_requests,
                "total_throttled": self._window.total_throttled,
            }

    def reset(self) -> None:
        """Clear the window (tokens for the whole budget become available)."""
        with self._lock:
            self._window.timestamps.clear()
            logger.info(f"Reset rate limit state for '{self.source}'")


# =============================================================================
# Global Rate Limiter Instance
# =============================================================================

# Singleton instance
_rate_limiter: Optional[SlidingWindowRateLimiter] = None
_rate_limiter_lock = threading.Lock()


def get_rate_limiter() -> SlidingWindowRateLimiter:
    """Get the process-wide registry rate limiter, built from settings."""
    global _rate_limiter
    with _rate_limiter_lock:
        if _rate_limiter is None:
            settings = get_settings()
            _rate_limiter = SlidingWindowRateLimiter(
                max_requests=settings.registry_rate_limit_requests,
                window_seconds=settings.registry_rate_limit_window_seconds,
            )
        return _rate_limiter


def reset_rate_limiter() -> None:
    """Reset the global rate limiter instance (for testing)."""
    global _rate_limiter
    with _rate_limiter_lock:
        _rate_limiter = None
