import logging
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Sequence, TypeVar, Union, runtime_checkable

from papply.ds import ResultCollection
from papply.pa.future import Future
from papply.pa.plan import ExecutionPlan, get_plan, session_pool
from papply.pa.sequential import SequentialExecutor
from papply.pa.task import Task, make_batch

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@runtime_checkable
class Executor(Protocol):
    """Runs a batch of tasks, returning their outcomes sorted by index."""

    def run(self, batch: Sequence[Task], fail_fast: bool = False) -> ResultCollection:
        raise NotImplementedError


def execute(batch: Sequence[Task], plan: ExecutionPlan) -> ResultCollection:
    """Runs `batch` with the executor `plan` implies: the caller's thread for sequential plans, the session pool if
    `plan` is the active one, and otherwise a pool that lives only for this call."""
    if not batch:
        return ResultCollection([])
    if plan.is_sequential:
        return SequentialExecutor().run(batch, plan.fail_fast)
    pool = session_pool(plan)
    if pool is not None:
        return pool.run(batch, plan.fail_fast)
    logger.debug(f"plan {plan} is not the active one, running {len(batch)} tasks on a transient pool")
    with plan.make_pool(min(plan.worker_count, len(batch))) as transient:
        return transient.run(batch, plan.fail_fast)


def apply(
    items: Iterable[T],
    fn: Callable[..., R],
    fixed_args: Optional[Mapping[str, Any]] = None,
    plan: Optional[ExecutionPlan] = None,
    deferred: bool = False,
    spread: bool = False,
) -> Union[ResultCollection[R], Future[ResultCollection[R]]]:
    """Applies `fn` to every element of `items`, with `fixed_args` passed as keyword arguments to every call.

    Without `deferred`, blocks until all items are processed. With it, returns a pending Future and starts nothing.
    Either way the tasks are built right away, so arity errors surface from this call. If `plan` is not given, the
    active plan is used -- for deferred applies, the one active now rather than at forcing time."""
    batch = make_batch(fn, items, fixed_args, spread)
    plan = plan or get_plan()
    if deferred:
        return Future(batch, lambda: execute(batch, plan))
    return execute(batch, plan)
