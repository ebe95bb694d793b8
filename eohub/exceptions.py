"""
Error taxonomy for the data hub.

- AuthError: OAuth state mismatch, failed exchange or refresh
- AdapterError: provider failures, converted into fallback steps by the integrator
- UnsupportedResolutionError: caller asked for a resolution no source serves
- CacheCorruptionError: persisted cache snapshot could not be read
- FallbackExhaustedError: every fallback tier failed
"""


class EOHubError(Exception):
    """Base exception for all data hub errors."""

    def __init__(self, message: str, source_id: str | None = None):
        self.source_id = source_id
        super().__init__(message)


class AuthError(EOHubError):
    """Authentication failed or no valid credentials are available."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, source_id="earthdata")


class AdapterError(EOHubError):
    """Base class for provider-side failures raised by source adapters."""

    pass


class ProviderHTTPError(AdapterError):
    """Provider answered with a non-success HTTP status."""

    def __init__(self, source_id: str, status_code: int, detail: str = ""):
        self.status_code = status_code
        msg = f"HTTP {status_code} from '{source_id}'"
        if detail:
            msg += f": {detail[:200]}"
        super().__init__(msg, source_id=source_id)


class ProviderTimeoutError(AdapterError):
    """Request to a provider timed out."""

    def __init__(self, source_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to '{source_id}' timed out after {timeout}s",
            source_id=source_id,
        )


class ProviderAuthError(AdapterError):
    """An authenticated provider call could not obtain valid credentials."""

    pass


class MalformedPayloadError(AdapterError):
    """Provider response could not be parsed into usable values."""

    pass


class TaskFailedError(AdapterError):
    """Asynchronous provider task ended in an error state."""

    def __init__(self, source_id: str, task_id: str, detail: str = ""):
        self.task_id = task_id
        super().__init__(
            f"Task {task_id} on '{source_id}' failed: {detail or 'unknown error'}",
            source_id=source_id,
        )


class TaskTimeoutError(AdapterError):
    """Asynchronous provider task did not finish within its time limit."""

    def __init__(self, source_id: str, task_id: str, max_wait: float):
        self.task_id = task_id
        self.max_wait = max_wait
        super().__init__(
            f"Task {task_id} on '{source_id}' not done after {max_wait:.0f}s",
            source_id=source_id,
        )


class UnsupportedResolutionError(EOHubError):
    """No source can serve the requested data kind at this resolution."""

    def __init__(self, kind: str, resolution_meters: int):
        self.kind = kind
        self.resolution_meters = resolution_meters
        super().__init__(f"No {kind} source available at {resolution_meters}m resolution")


class CacheCorruptionError(EOHubError):
    """Persisted cache snapshot is malformed."""

    pass


class FallbackExhaustedError(EOHubError):
    """Live, cached and synthetic tiers all failed for a request."""

    def __init__(self, cache_key: str, reason: str):
        self.cache_key = cache_key
        self.reason = reason
        super().__init__(f"No data available for {cache_key}: {reason}")
