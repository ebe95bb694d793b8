"""
Fixed-window rate limiter for provider requests.

A request that would exceed the window's quota waits for the next window
instead of failing, so callers always make progress.
"""

import asyncio
import time
from typing import Any

from loguru import logger


class RateLimiter:
    """
    Counts requests per fixed window; over-quota callers sleep.

    Usage:
        limiter = RateLimiter("appeears", max_requests=100, window_seconds=60)
        await limiter.acquire()
    """

    def __init__(
        self,
        name: str,
        max_requests: int = 100,
        window_seconds: float = 60.0,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds

        self._count = 0
        self._reset_at = time.monotonic() + window_seconds
        self._waits = 0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Take one slot, sleeping until the next window if the quota is used."""
        async with self._lock:
            now = time.monotonic()
            if now >= self._reset_at:
                self._start_window(now)

            if self._count >= self.max_requests:
                wait = max(0.0, self._reset_at - now)
                self._waits += 1
                logger.info(
                    f"Rate limit reached for '{self.name}', waiting {wait:.1f}s"
                )
                await asyncio.sleep(wait)
                self._start_window(time.monotonic())

            self._count += 1

    def _start_window(self, now: float) -> None:
        self._count = 0
        self._reset_at = now + self.window_seconds

    @property
    def remaining(self) -> int:
        if time.monotonic() >= self._reset_at:
            return self.max_requests
        return max(0, self.max_requests - self._count)

    def get_status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "remaining": self.remaining,
            "waits": self._waits,
        }
