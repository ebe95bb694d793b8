"""
Service layer infrastructure shared by adapters and the integrator.

Provides:
- DataCache: LRU cache with TTL cleanup and JSON snapshots
- RequestDeduplicator: Single-flight execution per key
- RateLimiter: Fixed-window provider quotas
- RequestQueue: FIFO backlog drained one item per tick
- ProviderClient: HTTP client with typed provider errors
"""

from eohub.services.cache import CacheStats, DataCache, make_cache_key
from eohub.services.deduplicator import RequestDeduplicator
from eohub.services.http import ProviderClient
from eohub.services.persistence import CacheSnapshotStore
from eohub.services.rate_limiter import RateLimiter
from eohub.services.request_queue import RequestQueue
from eohub.services.result import Err, ErrorKind, Ok, Result, run_chain

__all__ = [
    # Cache
    "DataCache",
    "CacheStats",
    "CacheSnapshotStore",
    "make_cache_key",
    # Concurrency
    "RequestDeduplicator",
    "RateLimiter",
    "RequestQueue",
    # HTTP
    "ProviderClient",
    # Result
    "Ok",
    "Err",
    "ErrorKind",
    "Result",
    "run_chain",
]
