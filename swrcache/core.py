"""
Core cache data structures.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Iterable, Optional, Union

from .exceptions import InvalidArgumentError

DEFAULT_FRESH_FOR = 300.0   # 5 minutes
DEFAULT_STALE_FOR = 600.0   # 10 minutes, measured from creation


class CacheState(Enum):
    """Freshness classification of an entry at a point in time."""
    FRESH = "fresh"       # age < fresh_for, served without fetching
    STALE = "stale"       # fresh_for <= age < stale_for, served while revalidating
    EXPIRED = "expired"   # age >= stale_for, must be refetched


class CacheSource(Enum):
    """Where the value returned to a caller came from."""
    FRESH = "fresh"
    STALE = "stale"
    UPSTREAM = "upstream"  # Fetched synchronously
    FALLBACK = "fallback"  # Fetch failed, expired value served instead


class CacheEventKind(Enum):
    STALE_FALLBACK = "stale_fallback"
    REFRESHED = "refreshed"
    REFRESH_FAILED = "refresh_failed"
    EVICTED = "evicted"


class CacheTag:
    """Well-known tags used by the host application."""
    USER_IMAGES = "user-images"
    ADMIN_STATS = "admin-stats"
    USER_QUOTA = "user-quota"


def normalize_tags(tags: Union[str, Iterable[str], None]) -> FrozenSet[str]:
    """Accept a single tag or any iterable of tags."""
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        return frozenset((tags,))
    return frozenset(tags)


@dataclass(frozen=True)
class CacheOptions:
    """
    Per-call caching options.

    Both windows are measured in seconds from the moment the entry is
    installed, so ``stale_for`` must be at least ``fresh_for``.
    """
    fresh_for: float = DEFAULT_FRESH_FOR
    stale_for: float = DEFAULT_STALE_FOR
    tags: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        if self.fresh_for < 0 or self.stale_for < 0:
            raise InvalidArgumentError(
                f"Durations must be non-negative "
                f"(fresh_for={self.fresh_for}, stale_for={self.stale_for})"
            )
        if self.stale_for < self.fresh_for:
            raise InvalidArgumentError(
                f"stale_for ({self.stale_for}) must be >= fresh_for ({self.fresh_for})"
            )
        object.__setattr__(self, "tags", normalize_tags(self.tags))


@dataclass(frozen=True)
class CacheEntry:
    """
    Represents a cached item with the timestamps needed for staleness tracking.

    Entries are never mutated; a refresh installs a new entry.
    """
    key: str
    value: Any
    created_at: float
    fresh_for: float
    stale_for: float
    tags: FrozenSet[str] = frozenset()

    def age(self, now: float) -> float:
        """Seconds since the entry was installed."""
        return now - self.created_at

    def state(self, now: float) -> CacheState:
        age = self.age(now)
        if age < self.fresh_for:
            return CacheState.FRESH
        if age < self.stale_for:
            return CacheState.STALE
        return CacheState.EXPIRED


@dataclass(frozen=True)
class CacheStats:
    """Entry counts by state, computed against the clock at call time."""
    total: int = 0
    fresh: int = 0
    stale: int = 0
    expired: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "fresh": self.fresh,
            "stale": self.stale,
            "expired": self.expired,
        }


@dataclass(frozen=True)
class CacheEvent:
    """Observable cache event delivered to the ``on_event`` hook."""
    kind: CacheEventKind
    key: str
    error: Optional[BaseException] = None


@dataclass
class CacheMeta:
    """
    Metadata about a single cache access.
    """
    cache_source: str  # "fresh", "stale", "upstream" or "fallback"
    age_seconds: Optional[float] = None
    fresh_for: Optional[float] = None
    stale_for: Optional[float] = None

    @property
    def used_fallback(self) -> bool:
        return self.cache_source == CacheSource.FALLBACK.value

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        result = {"cacheSource": self.cache_source}
        if self.age_seconds is not None:
            result["age"] = round(self.age_seconds, 3)
        if self.fresh_for is not None:
            result["freshFor"] = self.fresh_for
            result["staleFor"] = self.stale_for
        return result
