from typing import Iterator

import pytest

from papply.errors import PlanInvalid
from papply.pa import ExecutionPlan, Mode, available_workers, get_plan, session, set_plan, shutdown
from papply.pa.plan import session_pool


@pytest.fixture(autouse=True)
def fresh_session() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_plan_validation() -> None:
    for worker_count in (0, -1, 1.5, True, "2"):
        with pytest.raises(PlanInvalid):
            ExecutionPlan(Mode.WORKER_POOL, worker_count)  # type: ignore[arg-type]
    with pytest.raises(PlanInvalid):
        ExecutionPlan.worker_pool(2, kind="fiber")
    with pytest.raises(PlanInvalid):
        ExecutionPlan.worker_pool(2, chunking="random")
    with pytest.raises(PlanInvalid):
        ExecutionPlan("parallel", 2)  # type: ignore[arg-type]
    # also a ValueError
    with pytest.raises(ValueError):
        ExecutionPlan.worker_pool(0)


def test_plan_constructors() -> None:
    assert ExecutionPlan() == ExecutionPlan.sequential()
    assert ExecutionPlan().is_sequential
    assert ExecutionPlan.worker_pool(1).is_sequential
    plan = ExecutionPlan.worker_pool(3, kind="thread")
    assert not plan.is_sequential
    assert plan.with_fail_fast().fail_fast
    assert not plan.fail_fast
    assert ExecutionPlan.worker_pool().worker_count == available_workers() >= 1


def test_set_plan_lifecycle() -> None:
    assert get_plan() == ExecutionPlan()
    plan = ExecutionPlan.worker_pool(2, kind="thread")
    previous = set_plan(plan)
    assert previous == ExecutionPlan()
    assert get_plan() == plan
    pool = session_pool(plan)
    assert pool is not None and pool.started

    # re-activating keeps the pool
    set_plan(ExecutionPlan.worker_pool(2, kind="thread"))
    assert session_pool(plan) is pool

    # replacing tears it down
    other = ExecutionPlan.worker_pool(3, kind="thread")
    set_plan(other)
    assert not pool.started
    assert session_pool(plan) is None
    other_pool = session_pool(other)
    assert other_pool is not None and other_pool.started

    shutdown()
    assert not other_pool.started
    assert get_plan() == ExecutionPlan()


def test_sequential_plans_have_no_pool() -> None:
    plan = ExecutionPlan.worker_pool(1)
    set_plan(plan)
    assert session_pool(plan) is None


def test_session_restores_previous_plan() -> None:
    outer = ExecutionPlan.sequential(fail_fast=True)
    set_plan(outer)
    inner = ExecutionPlan.worker_pool(2, kind="thread")
    with session(inner) as active:
        assert active == inner
        assert get_plan() == inner
    assert get_plan() == outer
