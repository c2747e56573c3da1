"""
The apply family: `apply` plus the assembly step, under the names of the idioms they stand for.

 - lapply -- one result per item, as-is,
 - sapply -- simplified to the strictest shape that fits,
 - vapply -- assembled into a shape given upfront, failing otherwise,
 - mapply -- several sequences walked in lockstep, their elements being the function's positional arguments,
 - replicate -- the same function run `n` times, each run with its own random generator,
 - future_map -- a deferred lapply/vapply; forcing the Future yields the assembled output.
"""

from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, TypeVar, cast

import numpy as np

from papply.assemble import Shape, assemble, simplify
from papply.ds import ResultCollection
from papply.errors import InvalidArity
from papply.pa.core import apply
from papply.pa.future import Future
from papply.pa.plan import ExecutionPlan
from papply.rng import spawn_generators

T = TypeVar("T")
R = TypeVar("R")


def _collect(
    items: Iterable[Any], fn: Callable, fixed_args: Optional[Mapping[str, Any]], plan: Optional[ExecutionPlan], **kw
) -> ResultCollection:
    return cast(ResultCollection, apply(items, fn, fixed_args, plan, **kw))


def lapply(
    items: Iterable[T],
    fn: Callable[..., R],
    fixed_args: Optional[Mapping[str, Any]] = None,
    plan: Optional[ExecutionPlan] = None,
) -> list[Any]:
    return assemble(_collect(items, fn, fixed_args, plan), Shape.AS_IS)


def sapply(
    items: Iterable[T],
    fn: Callable[..., R],
    fixed_args: Optional[Mapping[str, Any]] = None,
    plan: Optional[ExecutionPlan] = None,
) -> Any:
    return simplify(_collect(items, fn, fixed_args, plan))


def vapply(
    items: Iterable[T],
    fn: Callable[..., R],
    shape: Shape,
    fixed_args: Optional[Mapping[str, Any]] = None,
    plan: Optional[ExecutionPlan] = None,
) -> Any:
    return assemble(_collect(items, fn, fixed_args, plan), shape)


def mapply(
    fn: Callable[..., R],
    *sequences: Sequence[Any],
    fixed_args: Optional[Mapping[str, Any]] = None,
    plan: Optional[ExecutionPlan] = None,
    shape: Optional[Shape] = None,
) -> Any:
    """`mapply(f, xs, ys)` computes `[f(xs[0], ys[0]), f(xs[1], ys[1]), ...]`. The sequences must be equally long --
    there is no recycling of the shorter ones."""
    if not sequences:
        raise InvalidArity("mapply needs at least one sequence")
    lengths = {len(s) for s in sequences}
    if len(lengths) > 1:
        raise InvalidArity(f"sequences of differing lengths {sorted(lengths)} can't be walked in lockstep")
    results = _collect(zip(*sequences), fn, fixed_args, plan, spread=True)
    return simplify(results) if shape is None else assemble(results, shape)


def replicate(
    n: int,
    fn: Callable[[np.random.Generator], R],
    seed: Optional[int] = None,
    plan: Optional[ExecutionPlan] = None,
    shape: Optional[Shape] = None,
) -> Any:
    """Calls `fn(rng)` `n` times, each time with an independent generator derived from `seed`. With a fixed seed, the
    output is the same under every plan."""
    results = _collect(spawn_generators(seed, n), fn, None, plan)
    return simplify(results) if shape is None else assemble(results, shape)


def future_map(
    items: Iterable[T],
    fn: Callable[..., R],
    shape: Shape = Shape.AS_IS,
    fixed_args: Optional[Mapping[str, Any]] = None,
    plan: Optional[ExecutionPlan] = None,
) -> Future[Any]:
    pending = cast(Future, apply(items, fn, fixed_args, plan, deferred=True))
    return Future(pending.payload, lambda: assemble(pending.force(), shape))
