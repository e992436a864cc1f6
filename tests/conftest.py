"""Shared fixtures for cache tests."""
import threading
import time

import pytest

from swrcache import SWRCache


class FakeClock:
    """Manually advanced monotonic clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds


class CountingFetcher:
    """Fetcher returning a fixed value (or raising) and counting calls."""

    def __init__(self, value=None, error=None, delay=0.0):
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def events():
    return []


@pytest.fixture
def cache(clock, events):
    cache = SWRCache(max_entries=100, clock=clock, on_event=events.append)
    yield cache
    cache.shutdown()
