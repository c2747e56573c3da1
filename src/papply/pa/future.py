"""
Deferred evaluation. A Future holds the work to be done (its `payload`) and a thunk that performs it; nothing runs
until `force` is called. Once evaluated, the outcome -- result or exception -- is cached for good, and forcing again
returns (or re-raises) it without recomputation.

States: PENDING -> EVALUATING -> RESOLVED | FAILED. A PENDING future can be cancelled, which lands it in FAILED with
`FutureCancelled`. Once evaluation has started there is no cancellation.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from papply.errors import FutureCancelled

logger = logging.getLogger(__name__)

R = TypeVar("R")


class FutureState(Enum):
    PENDING = "pending"
    EVALUATING = "evaluating"
    RESOLVED = "resolved"
    FAILED = "failed"


class Future(Generic[R]):
    def __init__(self, payload: Any, evaluate: Callable[[], R]):
        self._payload = payload
        self._evaluate: Optional[Callable[[], R]] = evaluate
        self._state = FutureState.PENDING
        self._result: Optional[R] = None
        self._error: Optional[BaseException] = None
        # held for the whole evaluation, so concurrent forcers wait for the single evaluation to finish
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"Future(state={self._state.value})"

    @property
    def state(self) -> FutureState:
        return self._state

    @property
    def payload(self) -> Any:
        return self._payload

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def is_resolved(self) -> bool:
        """Non-blocking. True once the future reached a terminal state, be it a result or an error."""
        return self._state in (FutureState.RESOLVED, FutureState.FAILED)

    def force(self) -> R:
        with self._lock:
            if self._state is FutureState.PENDING:
                self._run()
        if self._state is FutureState.FAILED:
            raise self._error  # type: ignore[misc]
        return self._result  # type: ignore[return-value]

    def _run(self) -> None:
        evaluate = self._evaluate
        if evaluate is None:
            raise ValueError("internal error: pending future without a thunk")
        self._state = FutureState.EVALUATING
        try:
            self._result = evaluate()
            self._state = FutureState.RESOLVED
        except Exception as e:
            self._error = e
            self._state = FutureState.FAILED
            logger.debug(f"future failed with {e!r}")
        except BaseException as e:
            # KeyboardInterrupt, SystemExit, ... are cached as well, but keep propagating
            self._error = e
            self._state = FutureState.FAILED
            raise
        finally:
            # release whatever the thunk closed over
            self._evaluate = None

    def cancel(self) -> bool:
        """Returns whether the future got cancelled. Only a PENDING future can be."""
        if not self._lock.acquire(blocking=False):
            return False
        try:
            if self._state is not FutureState.PENDING:
                return False
            self._error = FutureCancelled("future was cancelled before evaluation")
            self._state = FutureState.FAILED
            self._evaluate = None
            return True
        finally:
            self._lock.release()
