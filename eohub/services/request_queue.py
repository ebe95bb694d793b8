"""
RequestQueue - FIFO backlog of fetch operations, drained one per scheduler tick.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger


@dataclass
class QueuedRequest:
    """A pending operation and the future its caller waits on."""

    name: str
    operation: Callable[[], Awaitable[Any]]
    future: asyncio.Future = field(repr=False)


class RequestQueue:
    """
    Serializes a backlog of outbound fetches.

    A failing item is logged and its exception is set on the item's future;
    the items behind it are still processed.
    """

    def __init__(self, max_size: int | None = None):
        self._items: deque[QueuedRequest] = deque()
        self._max_size = max_size
        self._processing = False
        self.processed = 0
        self.failed = 0

    def enqueue(
        self,
        operation: Callable[[], Awaitable[Any]],
        name: str = "request",
    ) -> asyncio.Future:
        """Add an operation to the back of the queue and return its future."""
        if self._max_size is not None and len(self._items) >= self._max_size:
            raise OverflowError(f"Request queue is full ({self._max_size} items)")

        future = asyncio.get_running_loop().create_future()
        self._items.append(QueuedRequest(name=name, operation=operation, future=future))
        logger.debug(f"Queued {name} ({len(self._items)} pending)")
        return future

    async def process_next(self) -> bool:
        """Run the oldest pending operation. Returns False if nothing ran."""
        if self._processing or not self._items:
            return False

        self._processing = True
        item = self._items.popleft()
        try:
            result = await item.operation()
        except Exception as e:
            self.failed += 1
            logger.error(f"Queued request {item.name} failed: {e}")
            if not item.future.done():
                item.future.set_exception(e)
        else:
            self.processed += 1
            if not item.future.done():
                item.future.set_result(result)
        finally:
            self._processing = False
        return True

    async def drain(self) -> int:
        """Process every pending item in order. Returns the number processed."""
        count = 0
        while await self.process_next():
            count += 1
        return count

    @property
    def is_processing(self) -> bool:
        return self._processing

    def __len__(self) -> int:
        return len(self._items)

    def get_status(self) -> dict[str, Any]:
        return {
            "pending": len(self._items),
            "processing": self._processing,
            "processed": self.processed,
            "failed": self.failed,
        }
