"""
Background refresh of stale entries.
"""
import threading
import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional

from .core import CacheEntry, CacheEvent, CacheEventKind, CacheOptions
from .store import CacheStore

logger = logging.getLogger("cache.revalidator")


class Revalidator:
    """
    Runs refreshes on a thread pool, at most one in flight per key.

    A refresh that fails leaves the current entry in place and is reported
    through logging and the event callback only.
    """

    def __init__(
        self,
        store: CacheStore,
        max_workers: int = 4,
        notify: Optional[Callable[[CacheEvent], None]] = None,
    ):
        self._store = store
        self._notify = notify
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="cache-revalidate",
        )
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def schedule(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        options: CacheOptions,
        seen: Optional[CacheEntry] = None,
    ) -> bool:
        """
        Start a background refresh for key unless one is already running.

        Args:
            seen: Entry the caller read. If the store holds a different one
                by now, a newer value is already installed and nothing runs.

        Returns:
            True if a refresh was started
        """
        with self._lock:
            if key in self._in_flight:
                logger.debug(f"Already revalidating: {key}")
                return False
            if seen is not None and self._store.lookup(key) is not seen:
                logger.debug(f"Already revalidated: {key}")
                return False
            since = self._store.begin_fetch()
            try:
                future = self._pool.submit(self._refresh, key, fetch_fn, options, since)
            except RuntimeError as e:
                # Pool is shut down
                self._store.end_fetch()
                logger.warning(f"Cannot schedule revalidation for {key}: {e}")
                return False
            self._in_flight[key] = future
        logger.debug(f"Scheduled revalidation: {key}")
        return True

    def _refresh(
        self,
        key: str,
        fetch_fn: Callable[[], Any],
        options: CacheOptions,
        since: int,
    ) -> None:
        try:
            value = fetch_fn()
        except Exception as e:
            logger.warning(f"Background revalidation failed: {key} - {e}")
            self._emit(CacheEvent(CacheEventKind.REFRESH_FAILED, key, e))
        else:
            if self._store.put(key, value, options, since=since) is not None:
                logger.debug(f"Background revalidation complete: {key}")
                self._emit(CacheEvent(CacheEventKind.REFRESHED, key))
        finally:
            self._store.end_fetch()
            with self._lock:
                self._in_flight.pop(key, None)

    def _emit(self, event: CacheEvent) -> None:
        if self._notify:
            self._notify(event)

    @property
    def in_flight(self) -> List[str]:
        with self._lock:
            return sorted(self._in_flight)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the refreshes running right now have settled.

        Returns:
            True if all of them finished within the timeout
        """
        with self._lock:
            futures = list(self._in_flight.values())
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
