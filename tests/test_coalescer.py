"""
Tests for per-key request coalescing.
"""
import threading

import pytest

from swrcache import RequestCoalescer
from conftest import CountingFetcher


def _run_concurrently(count, target):
    """Start count threads through a barrier and collect their results."""
    barrier = threading.Barrier(count)
    results = []
    errors = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            value = target()
        except Exception as e:
            with lock:
                errors.append(e)
        else:
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return results, errors


def test_single_caller_gets_result():
    coalescer = RequestCoalescer()
    assert coalescer.get_or_fetch("k", lambda: 42) == 42
    assert coalescer.active_requests == 0


def test_concurrent_callers_share_one_fetch():
    coalescer = RequestCoalescer()
    fetcher = CountingFetcher(value="shared", delay=0.2)
    results, errors = _run_concurrently(10, lambda: coalescer.get_or_fetch("k", fetcher))
    assert errors == []
    assert results == ["shared"] * 10
    # The barrier releases every caller well inside the 200ms fetch
    assert fetcher.calls == 1


def test_error_is_shared_with_waiters():
    coalescer = RequestCoalescer()
    fetcher = CountingFetcher(error=RuntimeError("upstream down"), delay=0.2)
    results, errors = _run_concurrently(5, lambda: coalescer.get_or_fetch("k", fetcher))
    assert results == []
    assert len(errors) == 5
    assert all(isinstance(e, RuntimeError) for e in errors)
    assert fetcher.calls == 1


def test_different_keys_fetch_independently():
    coalescer = RequestCoalescer()
    assert coalescer.get_or_fetch("a", lambda: 1) == 1
    assert coalescer.get_or_fetch("b", lambda: 2) == 2


def test_record_is_removed_after_failure():
    coalescer = RequestCoalescer()
    with pytest.raises(ValueError):
        coalescer.get_or_fetch("k", CountingFetcher(error=ValueError("bad")))
    assert coalescer.get_stats() == {"active_requests": 0, "active_keys": []}
    assert coalescer.get_or_fetch("k", lambda: "ok") == "ok"


def test_waiter_times_out():
    coalescer = RequestCoalescer(timeout=0.05)
    release = threading.Event()
    started = threading.Event()

    def slow():
        started.set()
        release.wait(5)
        return "late"

    initiator = threading.Thread(target=lambda: coalescer.get_or_fetch("k", slow))
    initiator.start()
    assert started.wait(5)
    try:
        with pytest.raises(TimeoutError):
            coalescer.get_or_fetch("k", slow)
        assert coalescer.get_stats()["active_keys"] == ["k"]
    finally:
        release.set()
        initiator.join(timeout=5)
