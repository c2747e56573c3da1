"""
Execution plans and the process-wide session.

A plan selects how batches are executed -- sequentially on the caller's thread, or split across a pool of worker
units (processes or threads). The active plan is process-wide state: `set_plan` activates one, starting its worker
pool right away, and tears down the previous plan's pool. Every `apply` without an explicit plan reads the active one.

Changing the plan while an `apply` is in flight on another thread is undefined -- callers serialize plan changes.
"""

import atexit
import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterator, Optional

from papply.errors import PlanInvalid
from papply.pa.worker_pool import CHUNKINGS, KINDS, WorkerPool

logger = logging.getLogger(__name__)


class Mode(Enum):
    SEQUENTIAL = "sequential"
    WORKER_POOL = "worker_pool"


def available_workers() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class ExecutionPlan:
    mode: Mode = Mode.SEQUENTIAL
    worker_count: int = 1
    kind: str = "process"
    fail_fast: bool = False
    chunking: str = "round_robin"

    mp_context: str = "forkserver"

    def __post_init__(self) -> None:
        if not isinstance(self.mode, Mode):
            raise PlanInvalid(f"unknown mode {self.mode!r}")
        if isinstance(self.worker_count, bool) or not isinstance(self.worker_count, int) or self.worker_count < 1:
            raise PlanInvalid(f"worker_count must be an integer >= 1, got {self.worker_count!r}")
        if self.kind not in KINDS:
            raise PlanInvalid(f"kind must be one of {KINDS}, got {self.kind!r}")
        if self.chunking not in CHUNKINGS:
            raise PlanInvalid(f"chunking must be one of {CHUNKINGS}, got {self.chunking!r}")

    @classmethod
    def sequential(cls, fail_fast: bool = False) -> "ExecutionPlan":
        return cls(Mode.SEQUENTIAL, 1, fail_fast=fail_fast)

    @classmethod
    def worker_pool(cls, worker_count: Optional[int] = None, kind: str = "process", **kwargs) -> "ExecutionPlan":
        if worker_count is None:
            worker_count = available_workers()
        return cls(Mode.WORKER_POOL, worker_count, kind=kind, **kwargs)

    @property
    def is_sequential(self) -> bool:
        return self.mode is Mode.SEQUENTIAL or self.worker_count == 1

    def with_fail_fast(self, fail_fast: bool = True) -> "ExecutionPlan":
        return replace(self, fail_fast=fail_fast)

    def make_pool(self, worker_count: Optional[int] = None) -> WorkerPool:
        return WorkerPool(
            worker_count=worker_count or self.worker_count,
            kind=self.kind,
            mp_context=self.mp_context,
            chunking=self.chunking,
        )


# *** session state ***
_lock = threading.Lock()
_plan = ExecutionPlan()
_pool: Optional[WorkerPool] = None


def get_plan() -> ExecutionPlan:
    return _plan


def set_plan(plan: ExecutionPlan) -> ExecutionPlan:
    """Activates `plan`, returning the previously active one. Re-activating the active plan keeps its pool."""
    global _plan, _pool
    with _lock:
        previous = _plan
        if plan == previous and (_pool is not None or plan.is_sequential):
            return previous
        if _pool is not None:
            logger.debug(f"tearing down pool of plan {previous}")
            _pool.shutdown()
            _pool = None
        _plan = plan
        if not plan.is_sequential:
            _pool = plan.make_pool()
            _pool.start()
        logger.debug(f"activated plan {plan}")
        return previous


def session_pool(plan: ExecutionPlan) -> Optional[WorkerPool]:
    """The running pool of `plan`, if `plan` is the active one"""
    with _lock:
        if plan == _plan:
            return _pool
        return None


@contextmanager
def session(plan: ExecutionPlan) -> Iterator[ExecutionPlan]:
    previous = set_plan(plan)
    try:
        yield plan
    finally:
        set_plan(previous)


def shutdown() -> None:
    """Ends the session: stops the pool, if any, and reverts to the sequential plan."""
    set_plan(ExecutionPlan())


atexit.register(shutdown)
