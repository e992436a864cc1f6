"""
Request coalescing for synchronous fetches.

When several threads miss the same key at once, only the first one calls
the fetcher; the others block until it settles and share its outcome.
"""
import threading
import time
import logging
from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass, field

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightFetch:
    """Tracks a fetch that other callers may join."""
    event: threading.Event = field(default_factory=threading.Event)
    result: Optional[Any] = None
    error: Optional[Exception] = None
    started_at: float = field(default_factory=time.monotonic)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Single-flight execution keyed by cache key.

    The in-flight record is removed as soon as the fetch settles, so a
    later call for the same key starts a new fetch.

    Usage:
        coalescer = RequestCoalescer()
        value = coalescer.get_or_fetch("images:42", load_images)
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        Args:
            timeout: Max seconds a joining caller waits; None waits for as long
                as the fetcher takes
        """
        self._in_flight: Dict[str, InFlightFetch] = {}
        self._lock = threading.Lock()
        self._timeout = timeout

    def get_or_fetch(self, key: str, fetch_fn: Callable[[], Any]) -> Any:
        """
        Join an in-flight fetch for key or start one.

        Raises:
            TimeoutError: A joining caller waited longer than the timeout
            Exception: Whatever fetch_fn raised, re-raised in every caller
        """
        with self._lock:
            in_flight = self._in_flight.get(key)
            if in_flight is not None:
                in_flight.waiter_count += 1
                logger.debug(f"Coalescing fetch for {key} (waiters: {in_flight.waiter_count})")
                is_initiator = False
            else:
                in_flight = InFlightFetch()
                self._in_flight[key] = in_flight
                is_initiator = True

        if is_initiator:
            try:
                in_flight.result = fetch_fn()
            except Exception as e:
                in_flight.error = e
            finally:
                with self._lock:
                    self._in_flight.pop(key, None)
                in_flight.event.set()
        elif not in_flight.event.wait(timeout=self._timeout):
            logger.error(f"Timeout waiting for coalesced fetch: {key}")
            raise TimeoutError(f"Fetch for {key} timed out after {self._timeout}s")

        if in_flight.error is not None:
            raise in_flight.error
        return in_flight.result

    @property
    def active_requests(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "active_requests": len(self._in_flight),
                "active_keys": sorted(self._in_flight),
            }
