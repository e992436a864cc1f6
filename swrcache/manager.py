"""
Main cache orchestration with stale-while-revalidate.
"""
import threading
import time
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from .core import (
    CacheEntry,
    CacheEvent,
    CacheEventKind,
    CacheMeta,
    CacheOptions,
    CacheSource,
    CacheState,
    CacheStats,
    normalize_tags,
)
from .coalescer import RequestCoalescer
from .exceptions import FetchFailedError, InvalidArgumentError
from .revalidator import Revalidator
from .store import DEFAULT_MAX_ENTRIES, CacheStore

logger = logging.getLogger("cache.manager")


class SWRCache:
    """
    In-process stale-while-revalidate cache with:
    - Fresh/stale/expired classification per entry
    - Background refresh of stale entries, one in flight per key
    - Request coalescing for concurrent expired fetches
    - Stale fallback when a synchronous fetch fails
    - Tag-based bulk invalidation and insertion-order eviction
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_options: Optional[CacheOptions] = None,
        max_revalidation_workers: int = 4,
        coalesce_expired: bool = True,
        coalesce_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        on_event: Optional[Callable[[CacheEvent], None]] = None,
    ):
        """
        Initialize the cache.

        Args:
            max_entries: Capacity before the oldest-inserted entry is evicted
            default_options: Options used when a call passes none
            max_revalidation_workers: Thread pool size for background refresh
            coalesce_expired: Share one fetch among concurrent expired reads
                of the same key. When False, duplicate fetches can happen.
            coalesce_timeout: Max seconds a coalesced caller waits, None for no limit
            clock: Monotonic time source in seconds
            on_event: Observability hook receiving CacheEvent objects
        """
        self._default_options = default_options or CacheOptions()
        self._on_event = on_event
        self._store = CacheStore(
            max_entries=max_entries,
            clock=clock,
            on_evict=self._handle_evicted,
        )
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout) if coalesce_expired else None
        self._revalidator = Revalidator(
            self._store,
            max_workers=max_revalidation_workers,
            notify=self._handle_refresh_event,
        )

        # Stats tracking
        self._stats_lock = threading.Lock()
        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "revalidations": 0,
            "revalidation_failures": 0,
            "fallbacks": 0,
            "evictions": 0,
        }

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "SWRCache":
        """Build a cache from a config.settings.Settings object."""
        options = CacheOptions(
            fresh_for=settings.default_fresh_for_seconds,
            stale_for=settings.default_stale_for_seconds,
        )
        params = dict(
            max_entries=settings.max_entries,
            default_options=options,
            max_revalidation_workers=settings.revalidation_workers,
            coalesce_expired=settings.coalesce_expired,
            coalesce_timeout=settings.coalesce_timeout_seconds,
        )
        params.update(kwargs)
        return cls(**params)

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def revalidator(self) -> Revalidator:
        return self._revalidator

    @property
    def default_options(self) -> CacheOptions:
        return self._default_options

    def get(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        options: Optional[CacheOptions] = None,
    ) -> Any:
        """
        Get a value from cache or fetch it.

        Raises:
            InvalidArgumentError: key is empty
            FetchFailedError: a required fetch failed and nothing is cached
        """
        value, _ = self.get_with_meta(key, fetch_fn, options)
        return value

    def get_with_meta(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        options: Optional[CacheOptions] = None,
    ) -> Tuple[Any, CacheMeta]:
        """
        Get a value from cache or fetch it, along with access metadata.

        Args:
            key: Cache key
            fetch_fn: Zero-argument callable producing the value
            options: Windows and tags for the entry a fetch installs

        Returns:
            (value, cache_meta) tuple
        """
        _validate_key(key)
        options = options or self._default_options

        entry = self._store.lookup(key)
        now = self._store.now()
        state = entry.state(now) if entry is not None else CacheState.EXPIRED

        if state is CacheState.FRESH:
            logger.debug(f"CACHE HIT (fresh): {key} [age={entry.age(now):.1f}s]")
            self._count("hits_fresh")
            return entry.value, _make_meta(CacheSource.FRESH, entry, now)

        if state is CacheState.STALE:
            logger.info(f"CACHE HIT (stale, revalidating): {key} [age={entry.age(now):.1f}s]")
            self._revalidator.schedule(key, fetch_fn, options, seen=entry)
            self._count("hits_stale")
            return entry.value, _make_meta(CacheSource.STALE, entry, now)

        if entry is None:
            logger.info(f"CACHE MISS: {key}")
        else:
            logger.info(f"CACHE EXPIRED: {key} [age={entry.age(now):.1f}s]")
        self._count("misses")

        try:
            return self._fetch(key, fetch_fn, options)
        except Exception as e:
            fallback = self._store.lookup(key)
            if fallback is None:
                logger.warning(f"Fetch failed for {key} with nothing cached: {e}")
                raise FetchFailedError(key, e) from e
            logger.warning(f"Fetch failed for {key}, serving cached value: {e}")
            self._count("fallbacks")
            self._emit(CacheEvent(CacheEventKind.STALE_FALLBACK, key, e))
            return fallback.value, _make_meta(CacheSource.FALLBACK, fallback, self._store.now())

    def _fetch(self, key: str, fetch_fn: Callable[[], Any], options: CacheOptions) -> Tuple[Any, CacheMeta]:
        """Fetch and install; only the coalesced initiator installs."""
        def fetch_and_store():
            since = self._store.begin_fetch()
            try:
                value = fetch_fn()
                entry = self._store.put(key, value, options, since=since)
            finally:
                self._store.end_fetch()
            if entry is None:
                # Invalidated while fetching: the caller still gets the value
                return value, CacheMeta(
                    cache_source=CacheSource.UPSTREAM.value,
                    age_seconds=0.0,
                    fresh_for=options.fresh_for,
                    stale_for=options.stale_for,
                )
            return value, _make_meta(CacheSource.UPSTREAM, entry, entry.created_at)

        if self._coalescer is None:
            return fetch_and_store()
        return self._coalescer.get_or_fetch(key, fetch_and_store)

    def set(self, key: str, value: Any, options: Optional[CacheOptions] = None) -> CacheEntry:
        """Install or replace the entry for key without calling a fetcher."""
        _validate_key(key)
        entry = self._store.put(key, value, options or self._default_options)
        logger.debug(f"CACHE SET: {key}")
        return entry

    def invalidate(self, key: str) -> bool:
        """
        Invalidate a specific cache entry.

        Returns:
            True if entry was found and removed
        """
        _validate_key(key)
        removed = self._store.remove(key)
        if removed:
            logger.info(f"Invalidated cache: {key}")
        return removed

    def invalidate_by_tags(self, tags: Union[str, Iterable[str]]) -> int:
        """
        Remove every entry carrying any of the given tags.

        Returns:
            Number of entries invalidated
        """
        tags = normalize_tags(tags)
        removed = self._store.remove_tagged(tags)
        if removed:
            logger.info(f"Invalidated {len(removed)} entries tagged {sorted(tags)}")
        return len(removed)

    def clear(self) -> int:
        """
        Clear all cache entries.

        Returns:
            Number of entries cleared
        """
        count = self._store.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    def stats(self) -> CacheStats:
        """Entry counts by state right now."""
        return self._store.count_states()

    def get_stats(self) -> Dict[str, Any]:
        """Diagnostic statistics: state counts plus access counters."""
        with self._stats_lock:
            counters = dict(self._stats)
        total_hits = counters["hits_fresh"] + counters["hits_stale"]
        total_requests = total_hits + counters["misses"]
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        result = self.stats().to_dict()
        result.update(counters)
        result["hit_rate_percent"] = round(hit_rate, 1)
        result["max_entries"] = self._store.max_entries
        result["revalidating"] = self._revalidator.in_flight
        if self._coalescer is not None:
            result["coalescer"] = self._coalescer.get_stats()
        return result

    def wait_for_revalidations(self, timeout: Optional[float] = None) -> bool:
        """Block until background refreshes started so far have settled."""
        return self._revalidator.wait(timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._revalidator.shutdown(wait=wait)

    def __enter__(self) -> "SWRCache":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def _handle_evicted(self, key: str) -> None:
        self._count("evictions")
        self._emit(CacheEvent(CacheEventKind.EVICTED, key))

    def _handle_refresh_event(self, event: CacheEvent) -> None:
        if event.kind is CacheEventKind.REFRESHED:
            self._count("revalidations")
        elif event.kind is CacheEventKind.REFRESH_FAILED:
            self._count("revalidation_failures")
        self._emit(event)

    def _emit(self, event: CacheEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception(f"Cache event hook failed for {event.kind.value}: {event.key}")


def _validate_key(key: str) -> None:
    if not isinstance(key, str) or not key:
        raise InvalidArgumentError(f"Cache key must be a non-empty string, got {key!r}")


def _make_meta(source: CacheSource, entry: CacheEntry, now: float) -> CacheMeta:
    """Create cache metadata for a response."""
    return CacheMeta(
        cache_source=source.value,
        age_seconds=entry.age(now),
        fresh_for=entry.fresh_for,
        stale_for=entry.stale_for,
    )
