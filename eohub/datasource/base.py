"""
Base source adapter interfaces.

Two shapes of provider are supported:
- SyncSourceAdapter: one rate-limited request answers the query
- AsyncTaskAdapter: submit a task, poll it until done, then download results
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from enum import Enum
from typing import Any

from loguru import logger

from eohub.datasource.registry import get_descriptor
from eohub.exceptions import TaskFailedError, TaskTimeoutError
from eohub.geo import format_pixel_size
from eohub.models import DataRequest, SourceData, SourceDescriptor
from eohub.services.http import ProviderClient
from eohub.services.rate_limiter import RateLimiter


class BaseSourceAdapter(ABC):
    """
    Abstract base class for all source adapters.

    All adapters should:
    - Use ProviderClient for HTTP requests (typed errors, optional auth)
    - Take a rate limit slot before every provider request
    - Return SourceData with educational metadata attached
    - Raise AdapterError subclasses, never return partial garbage
    """

    def __init__(
        self,
        client: ProviderClient,
        rate_limiter: RateLimiter | None = None,
    ):
        self.client = client
        self.rate_limiter = rate_limiter or RateLimiter(self.source_id)

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Unique identifier for this adapter."""
        ...

    @property
    @abstractmethod
    def products(self) -> tuple[str, ...]:
        """Product ids this adapter serves."""
        ...

    @abstractmethod
    async def fetch(self, product: str, request: DataRequest) -> SourceData:
        """Fetch one product for a request."""
        ...

    def is_configured(self) -> bool:
        return True

    def describe(self, product: str) -> SourceDescriptor:
        if product not in self.products:
            raise ValueError(f"'{self.source_id}' does not serve product {product}")
        return get_descriptor(product)

    async def _throttle(self) -> None:
        await self.rate_limiter.acquire()

    def _educational(self, product: str, **extra: Any) -> dict[str, Any]:
        """Common educational block; extra keys override the defaults."""
        descriptor = self.describe(product)
        info: dict[str, Any] = {
            "resolution": descriptor.native_resolution,
            "pixel_size": format_pixel_size(descriptor.native_resolution),
            "source": descriptor.label,
            "revisit_time": descriptor.revisit_time,
        }
        if descriptor.depth_range:
            info["depth"] = descriptor.depth_range
        info.update(extra)
        return info


class SyncSourceAdapter(BaseSourceAdapter):
    """Adapter whose provider answers a query with a single request."""

    async def fetch(self, product: str, request: DataRequest) -> SourceData:
        self.describe(product)
        await self._throttle()
        raw = await self._request(product, request)
        return self._parse(product, request, raw)

    @abstractmethod
    async def _request(self, product: str, request: DataRequest) -> Any: ...

    @abstractmethod
    def _parse(self, product: str, request: DataRequest, raw: Any) -> SourceData: ...


class TaskState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class AsyncTaskAdapter(BaseSourceAdapter):
    """
    Adapter for task-based providers.

    Lifecycle: Submitted -> Polling -> Done | Failed | TimedOut. Polling uses
    a fixed interval and gives up after max_wait seconds. Cancelling the
    fetch stops polling; the remote task is left to the provider.
    """

    MAX_TASK_HISTORY = 100

    def __init__(
        self,
        client: ProviderClient,
        rate_limiter: RateLimiter | None = None,
        poll_interval: float = 5.0,
        max_wait: float = 300.0,
    ):
        super().__init__(client, rate_limiter)
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.task_states: OrderedDict[str, TaskState] = OrderedDict()

    async def fetch(self, product: str, request: DataRequest) -> SourceData:
        self.describe(product)
        await self._throttle()
        task_id = await self.submit_task(product, request)
        self._set_state(task_id, TaskState.SUBMITTED)
        logger.info(f"Submitted {product} task {task_id} to {self.source_id}")

        try:
            await self.wait_for_task(task_id)

            await self._throttle()
            raw = await self.fetch_result(task_id)
        finally:
            self._forget_task(task_id)
        return self._parse(product, request, raw)

    def _set_state(self, task_id: str, state: TaskState) -> None:
        """Record a task state, keeping only the most recent tasks."""
        self.task_states[task_id] = state
        self.task_states.move_to_end(task_id)
        while len(self.task_states) > self.MAX_TASK_HISTORY:
            self.task_states.popitem(last=False)

    def _forget_task(self, task_id: str) -> None:
        """Drop per-task bookkeeping once a fetch has finished, however it ended."""

    async def wait_for_task(self, task_id: str) -> None:
        """
        Poll until the task is done.

        Raises:
            TaskFailedError: Provider reported an error state
            TaskTimeoutError: Task not done within max_wait
        """
        started = time.monotonic()
        self._set_state(task_id, TaskState.POLLING)

        try:
            while True:
                await self._throttle()
                state, detail = await self.task_status(task_id)

                if state is TaskState.DONE:
                    self._set_state(task_id, TaskState.DONE)
                    return
                if state is TaskState.FAILED:
                    self._set_state(task_id, TaskState.FAILED)
                    raise TaskFailedError(self.source_id, task_id, detail)

                if time.monotonic() - started >= self.max_wait:
                    self._set_state(task_id, TaskState.TIMED_OUT)
                    raise TaskTimeoutError(self.source_id, task_id, self.max_wait)

                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.warning(f"Stopped polling {self.source_id} task {task_id}")
            self._set_state(task_id, TaskState.TIMED_OUT)
            raise

    @abstractmethod
    async def submit_task(self, product: str, request: DataRequest) -> str:
        """Create the remote task and return its id."""
        ...

    @abstractmethod
    async def task_status(self, task_id: str) -> tuple[TaskState, str]:
        """Return the task's state (POLLING while pending) and a detail message."""
        ...

    @abstractmethod
    async def fetch_result(self, task_id: str) -> Any: ...

    @abstractmethod
    def _parse(self, product: str, request: DataRequest, raw: Any) -> SourceData: ...
