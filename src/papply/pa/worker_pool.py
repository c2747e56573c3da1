"""
Executes batches on a fixed set of long-lived worker units -- processes or threads.

Every batch is partitioned into at most `worker_count` chunks, and each chunk is assigned to exactly one worker. The
worker evaluates its chunk sequentially, sending an item report per task and a chunk-done marker at the end, over a
queue shared by all workers. The main process merges the reports and returns them sorted by index -- completion
order among workers never matters.

Features:
 - crash isolation: a worker that dies before finishing its chunk (segfault, kill, `os._exit`, `SystemExit`) takes
   down only its chunk, all of whose items are reported as failed with `WorkerLost`. The dead worker is then replaced,
   so the pool keeps its size for subsequent batches,
 - fail-fast: on the first failed item, a shared event tells all workers to skip the items they have not yet started;
   the first failure is then re-raised once every chunk has either finished or lost its worker,
 - no timeouts, and no preemption of a running item -- a hung item hangs its batch,
 - for processes, tasks are pickled in the main process before dispatch (so that e.g. a lambda fails immediately in
   the caller), and reports are pickled in the worker (so that an unpicklable result becomes a failure of that item,
   rather than a report silently dropped by the queue feeder thread).

To use, either let `plan.set_plan` manage the pool, or instantiate WorkerPool directly as a context manager.
"""

import logging
import multiprocessing as mp
import pickle
import queue
import threading
from dataclasses import dataclass, field
from multiprocessing.process import BaseProcess
from typing import Any, Optional, Sequence, Union

from papply.ds import Failure, Outcome, ResultCollection
from papply.errors import PlanInvalid, WorkerLost
from papply.it import contiguous, round_robin
from papply.pa.task import Task

logger = logging.getLogger(__name__)

KINDS = ("process", "thread")
CHUNKINGS = ("round_robin", "contiguous")

_poll_interval_s = 0.1  # how often liveness of workers is checked while waiting for reports
_join_grace_s = 3  # number of seconds we wait for a worker to exit on shutdown before killing it


@dataclass
class _ItemReport:
    batch_id: int
    worker_id: int
    outcome: Outcome


@dataclass
class _ChunkDone:
    batch_id: int
    worker_id: int


def _seal(report: _ItemReport) -> bytes:
    try:
        data = pickle.dumps(report)
        # e.g. exceptions with a custom __init__ pickle fine, but fail to load
        pickle.loads(data)
        return data
    except Exception as e:
        outcome = report.outcome
        substitute = RuntimeError(f"outcome of item {outcome.index} could not be transported: {e!r}")
        origin = outcome.failure.origin if outcome.failure else f"unpicklable result at index {outcome.index}"
        failed = Outcome(outcome.index, None, Failure(origin, substitute, outcome.index))
        return pickle.dumps(_ItemReport(report.batch_id, report.worker_id, failed))


def _worker_loop(worker_id: int, inbox: Any, outbox: Any, cancel: Any, serialize: bool) -> None:
    """Entrypoint of a worker unit. Runs until it receives the `None` sentinel."""
    while True:
        order = inbox.get()
        if order is None:
            break
        batch_id, fail_fast, payload = order
        tasks: list[Task] = pickle.loads(payload) if serialize else payload
        for task in tasks:
            if cancel.is_set():
                break
            outcome = task.evaluate()
            if fail_fast and not outcome.ok:
                # stops this worker before its next item, not only once the main process reacts
                cancel.set()
            report = _ItemReport(batch_id, worker_id, outcome)
            outbox.put(_seal(report) if serialize else report)
        done = _ChunkDone(batch_id, worker_id)
        outbox.put(pickle.dumps(done) if serialize else done)


@dataclass
class _Worker:
    worker_id: int
    unit: Union[BaseProcess, threading.Thread]
    inbox: Any

    def describe_exit(self) -> str:
        exitcode = getattr(self.unit, "exitcode", None)
        if exitcode is None:
            return f"worker {self.worker_id} exited"
        return f"worker {self.worker_id} exited with code {exitcode}"


@dataclass
class _BatchState:
    batch_id: int
    fail_fast: bool
    chunks: dict[int, list[Task]]
    reports: dict[int, dict[int, Outcome]] = field(default_factory=dict)
    outcomes: list[Outcome] = field(default_factory=list)
    first_failure: Optional[Failure] = None

    def note_failure(self, failure: Failure, cancel: Any) -> None:
        if self.first_failure is None and self.fail_fast:
            self.first_failure = failure
            cancel.set()


class WorkerPool:
    def __init__(
        self,
        worker_count: int,
        kind: str = "process",
        mp_context: str = "forkserver",
        chunking: str = "round_robin",
    ):
        if worker_count < 1:
            raise PlanInvalid(f"worker_count must be >= 1, got {worker_count}")
        if kind not in KINDS:
            raise PlanInvalid(f"kind must be one of {KINDS}, got {kind!r}")
        if chunking not in CHUNKINGS:
            raise PlanInvalid(f"chunking must be one of {CHUNKINGS}, got {chunking!r}")
        self.worker_count = worker_count
        self.kind = kind
        self.mp_context = mp_context
        self.chunking = chunking

        self._lock = threading.Lock()
        self._workers: list[_Worker] = []
        self._batch_id = 0
        self._ctx: Any = None
        self._outbox: Any = None
        self._cancel: Any = None

    @property
    def started(self) -> bool:
        return bool(self._workers)

    @property
    def _serialize(self) -> bool:
        return self.kind == "process"

    def __enter__(self) -> "WorkerPool":
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    def start(self) -> None:
        with self._lock:
            self._start()

    def _start(self) -> None:
        if self._workers:
            return
        if self.kind == "process":
            self._ctx = mp.get_context(self.mp_context)
            self._outbox = self._ctx.Queue()
            self._cancel = self._ctx.Event()
        else:
            self._outbox = queue.Queue()
            self._cancel = threading.Event()
        self._workers = [self._spawn(worker_id) for worker_id in range(self.worker_count)]
        logger.debug(f"started a pool of {self.worker_count} {self.kind} workers")

    def _spawn(self, worker_id: int) -> _Worker:
        inbox: Any
        unit: Union[BaseProcess, threading.Thread]
        if self.kind == "process":
            inbox = self._ctx.Queue()
            args = (worker_id, inbox, self._outbox, self._cancel, True)
            unit = self._ctx.Process(target=_worker_loop, args=args, daemon=True)
        else:
            inbox = queue.Queue()
            args = (worker_id, inbox, self._outbox, self._cancel, False)
            unit = threading.Thread(target=_worker_loop, args=args, daemon=True, name=f"papply-worker-{worker_id}")
        unit.start()
        logger.debug(f"spawned {self.kind} worker #{worker_id}")
        return _Worker(worker_id, unit, inbox)

    def shutdown(self) -> None:
        with self._lock:
            if not self._workers:
                return
            for worker in self._workers:
                if worker.unit.is_alive():
                    worker.inbox.put(None)
            for worker in self._workers:
                worker.unit.join(_join_grace_s)
                if isinstance(worker.unit, BaseProcess):
                    if worker.unit.is_alive():
                        logger.debug(f"killing worker #{worker.worker_id} with pid {worker.unit.pid}")
                        worker.unit.kill()
                        worker.unit.join(_join_grace_s)
                    worker.inbox.close()
                    worker.inbox.cancel_join_thread()
            if self.kind == "process":
                self._outbox.close()
                self._outbox.cancel_join_thread()
            self._workers = []
            logger.debug(f"pool of {self.worker_count} {self.kind} workers shut down")

    def _partition(self, batch: Sequence[Task], n: int) -> list[list[Task]]:
        if self.chunking == "contiguous":
            return contiguous(batch, n)
        return round_robin(batch, n)

    def run(
        self, batch: Sequence[Task], fail_fast: bool = False, worker_count: Optional[int] = None
    ) -> ResultCollection:
        batch = list(batch)
        if not batch:
            return ResultCollection([])
        with self._lock:
            self._start()
            n = min(worker_count or self.worker_count, self.worker_count, len(batch))
            self._batch_id += 1
            self._cancel.clear()
            self._replace_dead(range(n))
            chunks = dict(enumerate(self._partition(batch, n)))
            # pickling happens here, before any chunk is sent out, so a failure leaves nothing half-dispatched
            orders = {w: pickle.dumps(chunk) if self._serialize else chunk for w, chunk in chunks.items()}
            state = _BatchState(self._batch_id, fail_fast, chunks, reports={w: {} for w in chunks})
            for worker_id, payload in orders.items():
                self._workers[worker_id].inbox.put((state.batch_id, fail_fast, payload))
            logger.debug(f"batch #{state.batch_id} of {len(batch)} tasks dispatched to {n} workers")

            while state.chunks:
                try:
                    message = self._outbox.get(timeout=_poll_interval_s)
                except queue.Empty:
                    self._reap(state)
                    continue
                self._handle(message, state)

        if state.first_failure is not None:
            raise state.first_failure.exception
        return ResultCollection.from_outcomes(state.outcomes)

    def _handle(self, message: Any, state: _BatchState) -> None:
        if self._serialize:
            message = pickle.loads(message)
        if message.batch_id != state.batch_id:
            logger.debug(f"dropping a stale report of batch #{message.batch_id}")
            return
        if message.worker_id not in state.chunks:
            return
        if isinstance(message, _ItemReport):
            state.reports[message.worker_id][message.outcome.index] = message.outcome
            if message.outcome.failure is not None:
                state.note_failure(message.outcome.failure, self._cancel)
        elif isinstance(message, _ChunkDone):
            state.chunks.pop(message.worker_id)
            state.outcomes.extend(state.reports.pop(message.worker_id).values())
            logger.debug(f"worker #{message.worker_id} completed its chunk of batch #{state.batch_id}")
        else:
            raise ValueError(f"internal error: unexpected message {message!r}")

    def _reap(self, state: _BatchState) -> None:
        """Marks the chunks of dead workers as lost, and replaces those workers."""
        dead = [w for w in state.chunks if not self._workers[w].unit.is_alive()]
        if not dead:
            return
        # whatever the dead reported before dying may still sit in the queue
        while True:
            try:
                message = self._outbox.get_nowait()
            except queue.Empty:
                break
            self._handle(message, state)
        for worker_id in dead:
            if worker_id not in state.chunks:
                continue
            worker = self._workers[worker_id]
            self._discard(worker)
            reason = worker.describe_exit()
            logger.warning(f"{reason} while running batch #{state.batch_id}, its chunk is lost")
            chunk = state.chunks.pop(worker_id)
            state.reports.pop(worker_id)
            for task in chunk:
                failure = Failure(f"{reason} with args of index {task.index}", WorkerLost(reason), task.index)
                state.outcomes.append(Outcome(task.index, None, failure))
                state.note_failure(failure, self._cancel)
            self._workers[worker_id] = self._spawn(worker_id)

    def _replace_dead(self, worker_ids: Any) -> None:
        for worker_id in worker_ids:
            worker = self._workers[worker_id]
            if not worker.unit.is_alive():
                logger.warning(f"{worker.describe_exit()} while idle, replacing it")
                self._discard(worker)
                self._workers[worker_id] = self._spawn(worker_id)

    def _discard(self, worker: _Worker) -> None:
        worker.unit.join(_join_grace_s)
        if isinstance(worker.unit, BaseProcess):
            worker.inbox.close()
            worker.inbox.cancel_join_thread()
