"""
Source adapters - one per upstream provider.

Provides:
- BaseSourceAdapter: uniform fetch(product, request) contract
- SyncSourceAdapter / AsyncTaskAdapter: single-request and task-based shapes
- select_source: resolution routing over the product catalogue
"""

from eohub.datasource.base import (
    AsyncTaskAdapter,
    BaseSourceAdapter,
    SyncSourceAdapter,
    TaskState,
)
from eohub.datasource.registry import SOURCE_DESCRIPTORS, get_descriptor, select_source

__all__ = [
    # Base
    "BaseSourceAdapter",
    "SyncSourceAdapter",
    "AsyncTaskAdapter",
    "TaskState",
    # Registry
    "SOURCE_DESCRIPTORS",
    "get_descriptor",
    "select_source",
]
