"""
Error kinds raised by papply. Each takes a single message argument, so instances survive the pickling round trip
from a worker process back to the caller.

Errors a user function raises are *not* wrapped in these -- they are captured as `ds.Failure` values, and re-raised
as-is under fail-fast plans.
"""


class PApplyError(Exception):
    pass


class InvalidArity(PApplyError, TypeError):
    """The varying argument(s) of a task do not bind to the function signature. Typically a whole sequence was passed
    where the function expects one element per call, or vice versa."""


class PlanInvalid(PApplyError, ValueError):
    """Raised at ExecutionPlan construction, never deferred to first use."""


class ShapeMismatch(PApplyError, ValueError):
    """Per-item results can't be coerced into the requested shape."""


class RaggedShape(ShapeMismatch):
    """Row-bound assembly met rows of differing lengths."""


class WorkerLost(PApplyError, RuntimeError):
    """A worker unit terminated abnormally. Attached to every item of the chunk it was assigned."""


class BatchFailed(PApplyError):
    """Strict assembly of a result collection that contains per-item failures. The failures are kept on the
    instance for inspection; the first one's exception is chained as the cause."""

    def __init__(self, message: str, failures: tuple = ()):
        super().__init__(message)
        self.failures = list(failures)

    def __reduce__(self):
        return (type(self), (str(self), tuple(self.failures)))


class FutureCancelled(PApplyError):
    pass
