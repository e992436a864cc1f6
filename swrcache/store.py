"""
Key to entry storage with freshness classification and bounded size.
"""
import threading
import time
import logging
from typing import Callable, Dict, Iterable, List, Optional

from .core import CacheEntry, CacheOptions, CacheState, CacheStats
from .exceptions import InvalidArgumentError
from .tag_index import TagIndex

logger = logging.getLogger("cache.store")

DEFAULT_MAX_ENTRIES = 100


class CacheStore:
    """
    Authoritative key -> CacheEntry mapping.

    - Entries and tag registrations change together under one lock
    - Eviction is by insertion order: when a new key arrives at capacity,
      the oldest-inserted entry is dropped. Reads never reorder entries.
    - Replacing a key re-inserts it as the newest entry
    - A fetch that began before a key was invalidated or cleared cannot
      install into it (see begin_fetch)
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
        on_evict: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize the store.

        Args:
            max_entries: Maximum number of entries held at once
            clock: Monotonic time source in seconds
            on_evict: Called with each evicted key, outside the lock
        """
        if max_entries < 1:
            raise InvalidArgumentError(f"max_entries must be >= 1, got {max_entries}")
        self._entries: Dict[str, CacheEntry] = {}
        self._tags = TagIndex()
        self._lock = threading.RLock()
        self._max_entries = max_entries
        self._clock = clock
        self._on_evict = on_evict

        # Removal generations, only tracked while fetches are pending
        self._generation = 0
        self._cleared_at = 0
        self._removed_at: Dict[str, int] = {}
        self._pending_fetches = 0

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def now(self) -> float:
        return self._clock()

    def lookup(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def begin_fetch(self) -> int:
        """
        Register a fetch that will later install through put(..., since=...).

        Every begin_fetch must be paired with end_fetch.

        Returns:
            Generation to pass as ``since``
        """
        with self._lock:
            self._pending_fetches += 1
            return self._generation

    def end_fetch(self) -> None:
        with self._lock:
            self._pending_fetches -= 1
            if self._pending_fetches == 0:
                self._removed_at.clear()

    def put(
        self,
        key: str,
        value,
        options: CacheOptions,
        since: Optional[int] = None,
    ) -> Optional[CacheEntry]:
        """
        Install a new entry for key, replacing any previous one.

        Args:
            since: Generation from begin_fetch. When the key was removed or
                the store cleared after it, nothing is installed.

        Returns:
            The installed entry, or None if the install was discarded
        """
        evicted: Optional[str] = None
        with self._lock:
            if since is not None and self._removed_at.get(key, self._cleared_at) > since:
                logger.info(f"Discarded fetch result for invalidated key: {key}")
                return None
            entry = CacheEntry(
                key=key,
                value=value,
                created_at=self._clock(),
                fresh_for=options.fresh_for,
                stale_for=options.stale_for,
                tags=options.tags,
            )
            previous = self._entries.pop(key, None)
            if previous is not None:
                self._tags.discard(key, previous.tags)
            elif len(self._entries) >= self._max_entries:
                evicted = next(iter(self._entries))
                self._drop(evicted)

            self._entries[key] = entry
            self._tags.add(key, entry.tags)

        if evicted is not None:
            logger.info(f"Evicted oldest entry: {evicted}")
            if self._on_evict:
                self._on_evict(evicted)
        return entry

    def remove(self, key: str) -> bool:
        with self._lock:
            if key not in self._entries:
                return False
            self._drop(key)
            self._mark_removed([key])
            return True

    def remove_tagged(self, tags: Iterable[str]) -> List[str]:
        """
        Remove every entry carrying at least one of the given tags.

        Returns:
            Keys that were removed
        """
        with self._lock:
            keys = self._tags.keys_for(tags)
            for key in keys:
                self._drop(key)
            self._mark_removed(keys)
            return sorted(keys)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._tags.clear()
            self._generation += 1
            self._cleared_at = self._generation
            self._removed_at.clear()
            return count

    def _mark_removed(self, keys: Iterable[str]) -> None:
        """Caller holds the lock."""
        self._generation += 1
        if not self._pending_fetches:
            return
        for key in keys:
            self._removed_at[key] = self._generation

    def count_states(self, now: Optional[float] = None) -> CacheStats:
        """Count entries by state against the given (or current) time."""
        with self._lock:
            if now is None:
                now = self._clock()
            counts = {state: 0 for state in CacheState}
            for entry in self._entries.values():
                counts[entry.state(now)] += 1
            return CacheStats(
                total=len(self._entries),
                fresh=counts[CacheState.FRESH],
                stale=counts[CacheState.STALE],
                expired=counts[CacheState.EXPIRED],
            )

    def keys(self) -> List[str]:
        """Snapshot of keys, oldest-inserted first."""
        with self._lock:
            return list(self._entries)

    def tags(self) -> List[str]:
        with self._lock:
            return sorted(self._tags.tags())

    def keys_for_tags(self, tags: Iterable[str]) -> List[str]:
        with self._lock:
            return sorted(self._tags.keys_for(tags))

    def _drop(self, key: str) -> None:
        """Remove key and its tag registrations. Caller holds the lock."""
        entry = self._entries.pop(key)
        self._tags.discard(key, entry.tags)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries
