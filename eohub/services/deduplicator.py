"""
RequestDeduplicator - Single-flight execution of concurrent identical work.

When several coroutines ask for the same key while a call is running,
only one call is made and every waiter receives its result (or exception).
Used for live provider fetches and for OAuth token refreshes.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class RequestDeduplicator:
    """
    Shares one in-flight task per key between all concurrent callers.

    Usage:
        dedup = RequestDeduplicator(name="live")

        response = await dedup.dedupe(
            key=cache_key,
            request_fn=lambda: adapter.fetch(product, request),
        )
    """

    def __init__(self, name: str = "dedup", debug: bool = False):
        self._name = name
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._lock = asyncio.Lock()
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run request_fn once per key at a time.

        Args:
            key: Identifier of the logical request
            request_fn: Coroutine factory, only called if nothing is in flight

        Returns:
            Result of the single shared call
        """
        async with self._lock:
            task = self._in_flight.get(key)
            if task is not None:
                self._stats.deduplicated += 1
                self._log(f"JOIN: {key[:60]}")
            else:
                self._stats.total += 1
                self._log(f"START: {key[:60]}")
                task = asyncio.create_task(self._run(key, request_fn))
                self._in_flight[key] = task

        # shield so one cancelled waiter does not cancel the shared call
        return await asyncio.shield(task)

    async def _run(self, key: str, request_fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await request_fn()
        finally:
            async with self._lock:
                self._in_flight.pop(key, None)
            self._log(f"DONE: {key[:60]}")

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def cancel_all(self) -> int:
        """Cancel all in-flight calls."""
        async with self._lock:
            tasks = list(self._in_flight.values())
            self._in_flight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            self._log(f"CANCEL_ALL: {len(tasks)} calls cancelled")
        return len(tasks)

    def get_stats(self) -> "DeduplicatorStats":
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[{self._name}] {message}")


class DeduplicatorStats:
    """Counters for single-flight calls."""

    def __init__(self):
        self.total: int = 0  # calls actually executed
        self.deduplicated: int = 0  # callers that joined an existing call
        self.in_flight: int = 0

    @property
    def dedup_rate(self) -> float:
        total = self.total + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "executed": self.total,
            "joined": self.deduplicated,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }
