"""
Result type threaded through the integrator's fallback chain.

Each fallback step receives the previous Err and returns a new Ok or Err,
so the chain reads as a sequence of steps instead of nested try/except.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Why a fallback step did not produce a value."""

    CACHE_MISS = "cache_miss"
    CACHE_EXPIRED = "cache_expired"
    OFFLINE_MODE = "offline_mode"
    ADAPTER_FAILURE = "adapter_failure"
    TIMEOUT = "timeout"
    NO_STALE_ENTRY = "no_stale_entry"
    GENERATOR_UNAVAILABLE = "generator_unavailable"


@dataclass
class Ok(Generic[T]):
    """Successful step result."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass
class Err:
    """Failed step result, keeping the first underlying exception."""

    kind: ErrorKind
    message: str = ""
    cause: Exception | None = None

    @property
    def is_ok(self) -> bool:
        return False

    def describe(self) -> str:
        if self.message:
            return f"{self.kind.value}: {self.message}"
        return self.kind.value


Result = Union[Ok[T], Err]

FallbackStep = Callable[[Err], Awaitable["Result[T]"]]


async def run_chain(first: "Result[T]", steps: list[FallbackStep]) -> "Result[T]":
    """Apply fallback steps in order until one yields Ok."""
    result = first
    for step in steps:
        if isinstance(result, Ok):
            break
        result = await step(result)
    return result
