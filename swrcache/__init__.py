"""
In-process stale-while-revalidate cache with tag invalidation, request
coalescing and bounded size.
"""
from .core import (
    CacheEntry,
    CacheEvent,
    CacheEventKind,
    CacheMeta,
    CacheOptions,
    CacheSource,
    CacheState,
    CacheStats,
    CacheTag,
)
from .exceptions import CacheError, FetchFailedError, InvalidArgumentError
from .tag_index import TagIndex
from .store import CacheStore
from .coalescer import RequestCoalescer
from .revalidator import Revalidator
from .manager import SWRCache

__all__ = [
    # Core types
    "CacheEntry",
    "CacheEvent",
    "CacheEventKind",
    "CacheMeta",
    "CacheOptions",
    "CacheSource",
    "CacheState",
    "CacheStats",
    "CacheTag",
    # Errors
    "CacheError",
    "FetchFailedError",
    "InvalidArgumentError",
    # Building blocks
    "TagIndex",
    "CacheStore",
    "RequestCoalescer",
    "Revalidator",
    # Facade
    "SWRCache",
]
