"""
The unit of work: a function, its fixed keyword arguments, and the one varying argument that differs per item. With
`spread=True`, the varying argument is a tuple of correlated positional arguments instead (the mapply case).

Arity is checked on construction, by binding the arguments against the signature -- so that passing a whole vector
where the function expects one element per call fails before anything is scheduled, not somewhere in a worker.
"""

import inspect
import reprlib
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, TypeVar

from papply.ds import Failure, Outcome
from papply.errors import InvalidArity

T = TypeVar("T")
R = TypeVar("R")

_arg_repr = reprlib.Repr()
_arg_repr.maxstring = 60
_arg_repr.maxother = 60


def _signature(fn: Callable) -> Optional[inspect.Signature]:
    try:
        return inspect.signature(fn)
    except (TypeError, ValueError):
        # some builtins and C extensions don't expose one
        return None


# weak keys, so that caching a signature does not keep the callable and its closure alive
_signatures: "weakref.WeakKeyDictionary[Callable, Optional[inspect.Signature]]" = weakref.WeakKeyDictionary()


def _cached_signature(fn: Callable) -> Optional[inspect.Signature]:
    try:
        return _signatures[fn]
    except KeyError:
        pass
    except TypeError:
        # unhashable, or not weakly referenceable
        return _signature(fn)
    signature = _signature(fn)
    _signatures[fn] = signature
    return signature


@dataclass(frozen=True)
class Task(Generic[T, R]):
    fn: Callable[..., R]
    fixed_args: Mapping[str, Any]
    varying_arg: T
    index: int
    spread: bool = False

    def __post_init__(self) -> None:
        # a private copy, so that the caller mutating their mapping later does not leak into scheduled work
        object.__setattr__(self, "fixed_args", dict(self.fixed_args))
        if self.spread and not isinstance(self.varying_arg, (tuple, list)):
            raise InvalidArity(
                f"item {self.index}: spread task expects a tuple of arguments, got {type(self.varying_arg).__name__}"
            )
        signature = _cached_signature(self.fn)
        if signature is None:
            return
        try:
            signature.bind(*self.args, **self.fixed_args)
        except TypeError as e:
            name = getattr(self.fn, "__qualname__", repr(self.fn))
            raise InvalidArity(f"item {self.index}: arguments do not fit {name}{signature}: {e}") from e

    @property
    def args(self) -> tuple:
        return tuple(self.varying_arg) if self.spread else (self.varying_arg,)

    def __call__(self) -> R:
        return self.fn(*self.args, **self.fixed_args)

    def describe(self) -> str:
        return f"failure with args {_arg_repr.repr(self.varying_arg)} at index {self.index}"

    def evaluate(self) -> Outcome[R]:
        try:
            return Outcome(self.index, self(), None)
        except Exception as e:
            return Outcome(self.index, None, Failure(self.describe(), e, self.index))


def make_batch(
    fn: Callable[..., R],
    items: Iterable[T],
    fixed_args: Optional[Mapping[str, Any]] = None,
    spread: bool = False,
) -> list[Task[T, R]]:
    fixed = dict(fixed_args or {})
    return [Task(fn, fixed, item, i, spread) for i, item in enumerate(items)]

