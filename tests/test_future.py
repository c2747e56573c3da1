import threading
import time

import pytest

from papply.errors import FutureCancelled
from papply.pa import ExecutionPlan, Future, FutureState, apply


def test_deferred_apply_starts_nothing_until_forced() -> None:
    calls: list[int] = []

    def tracked(x: int) -> int:
        calls.append(x)
        return x + 1

    future = apply([1, 2, 3], tracked, plan=ExecutionPlan.sequential(), deferred=True)
    assert isinstance(future, Future)
    assert future.state is FutureState.PENDING
    assert not future.is_resolved()
    assert calls == []
    assert [t.varying_arg for t in future.payload] == [1, 2, 3]

    first = future.force()
    assert future.state is FutureState.RESOLVED
    assert future.is_resolved()
    assert first.values() == [2, 3, 4]
    assert future.force() is first
    assert calls == [1, 2, 3]


def test_failed_future_caches_the_error() -> None:
    calls: list[int] = []

    def fails(x: int) -> int:
        calls.append(x)
        raise KeyError(x)

    future = apply([7], fails, plan=ExecutionPlan.sequential(fail_fast=True), deferred=True)
    with pytest.raises(KeyError) as first:
        future.force()
    with pytest.raises(KeyError) as second:
        future.force()
    assert first.value is second.value
    assert future.error is first.value
    assert future.state is FutureState.FAILED
    assert future.is_resolved()
    assert calls == [7]


def test_deferred_under_worker_pool() -> None:
    plan = ExecutionPlan.worker_pool(2, kind="thread")
    future = apply(range(5), lambda x: x * x, plan=plan, deferred=True)
    assert future.force().values() == [0, 1, 4, 9, 16]


def test_empty_deferred() -> None:
    future = apply([], lambda x: x, deferred=True)
    assert future.state is FutureState.PENDING
    assert len(future.force()) == 0
    assert future.state is FutureState.RESOLVED


def test_cancel_pending() -> None:
    calls: list[int] = []
    future = apply([1], calls.append, deferred=True)
    assert future.cancel()
    assert future.state is FutureState.FAILED
    with pytest.raises(FutureCancelled):
        future.force()
    assert calls == []
    # cancelling twice has no further effect
    assert not future.cancel()


def test_cancel_after_resolution_has_no_effect() -> None:
    future = Future(None, lambda: 42)
    assert future.force() == 42
    assert not future.cancel()
    assert future.force() == 42
    assert future.state is FutureState.RESOLVED


def test_cancel_while_evaluating_has_no_effect() -> None:
    started = threading.Event()
    release = threading.Event()

    def slow() -> str:
        started.set()
        release.wait(5)
        return "done"

    future = Future(None, slow)
    forcer = threading.Thread(target=future.force)
    forcer.start()
    assert started.wait(5)
    assert future.state is FutureState.EVALUATING
    assert not future.is_resolved()
    assert not future.cancel()
    release.set()
    forcer.join(5)
    assert future.force() == "done"


def test_concurrent_forcing_evaluates_once() -> None:
    calls: list[int] = []

    def thunk() -> int:
        calls.append(1)
        time.sleep(0.05)
        return len(calls)

    future = Future(None, thunk)
    results: list[int] = []
    threads = [threading.Thread(target=lambda: results.append(future.force())) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)
    assert calls == [1]
    assert results == [1, 1, 1, 1]


def test_base_exception_is_cached_as_failure() -> None:
    calls: list[int] = []

    def interrupted() -> int:
        calls.append(1)
        raise KeyboardInterrupt

    future = Future(None, interrupted)
    with pytest.raises(KeyboardInterrupt) as first:
        future.force()
    assert future.state is FutureState.FAILED
    assert future.is_resolved()
    with pytest.raises(KeyboardInterrupt) as second:
        future.force()
    assert first.value is second.value
    assert calls == [1]
