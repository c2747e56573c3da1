"""
This module provides parallel execution of apply-style computations: a single function applied to each element of a
sequence, the results then put back together in input order. The call site stays the same regardless of how the work
is executed -- that is decided by the execution plan:
 - sequential -- on the caller's thread, one item after another,
 - worker pool -- split into chunks across long-lived worker processes (or threads), one chunk per worker.

Exceptions raised by the function do not bring the whole computation down by default: they are captured per item as
`Failure`s, and the rest of the batch completes. A fail-fast plan instead re-raises the first one and skips the items
not yet started. A crashed worker process affects only the items it was assigned, which fail with `WorkerLost`.

To use, either activate a plan process-wide with `set_plan` (or the `session` context manager), or pass one to the
individual call. Then call `apply` for the raw ResultCollection, or one of the apply family -- `lapply`, `sapply`,
`vapply`, `mapply`, `replicate` -- for an assembled output. `apply(..., deferred=True)` and `future_map` return a
Future instead, which does nothing until forced.

With process workers, the function, its arguments and its results must be picklable -- in particular, the function
must be importable by name, so no lambdas or closures.
"""

from papply.pa.apply import future_map, lapply, mapply, replicate, sapply, vapply  # noqa: F401
from papply.pa.core import Executor, apply, execute  # noqa: F401
from papply.pa.future import Future, FutureState  # noqa: F401
from papply.pa.plan import ExecutionPlan, Mode, available_workers, get_plan, session, set_plan, shutdown  # noqa: F401
from papply.pa.sequential import SequentialExecutor  # noqa: F401
from papply.pa.task import Task, make_batch  # noqa: F401
from papply.pa.worker_pool import WorkerPool  # noqa: F401
