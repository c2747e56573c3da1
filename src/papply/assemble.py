"""
Reshapes a ResultCollection into the output the caller asked for:
 - FLAT -- a list of scalars, all of the same type,
 - ROW_BOUND -- a 2-D numpy array, one row per item, so every item must yield a sequence of the same length,
 - AS_IS -- a list of whatever the items returned, with `Failure`s inline where an item failed. Never fails.

The strict shapes refuse rather than guess: mixed types, ragged rows or failed items raise. Pass `fallback=AS_IS` to get
the as-is list instead, or use `simplify`, which picks the strictest shape that fits.
"""

from enum import Enum
from typing import Any, Mapping, Optional

import numpy as np

from papply.ds import ResultCollection
from papply.errors import BatchFailed, RaggedShape, ShapeMismatch


class Shape(Enum):
    FLAT = "flat"
    ROW_BOUND = "row_bound"
    AS_IS = "as_is"


def _is_row(value: Any) -> bool:
    if isinstance(value, np.ndarray):
        return value.ndim == 1
    return isinstance(value, (list, tuple))


def _is_scalar(value: Any) -> bool:
    return not isinstance(value, (list, tuple, set, frozenset, Mapping, np.ndarray))


def as_is(results: ResultCollection) -> list[Any]:
    return [o.value if o.ok else o.failure for o in results]


def flat(results: ResultCollection) -> list[Any]:
    values = results.values()
    for i, value in enumerate(values):
        if not _is_scalar(value):
            raise ShapeMismatch(f"item {i} is a {type(value).__name__}, not a scalar")
    kinds = {type(v) for v in values}
    if len(kinds) > 1:
        names = sorted(k.__name__ for k in kinds)
        raise ShapeMismatch(f"items are of differing types {names}")
    return values


def row_bound(results: ResultCollection) -> np.ndarray:
    values = results.values()
    for i, value in enumerate(values):
        if not _is_row(value):
            raise ShapeMismatch(f"item {i} is a {type(value).__name__}, not a row")
    lengths = {len(v) for v in values}
    if len(lengths) > 1:
        raise RaggedShape(f"rows are of differing lengths {sorted(lengths)}")
    if not values:
        return np.empty((0, 0))
    width = lengths.pop()
    try:
        grid = np.array([list(v) for v in values])
    except ValueError:
        # inhomogeneous nested elements
        return _object_grid(values, width)
    if grid.ndim != 2:
        # rows of nested sequences, keep the elements as objects rather than growing a third dimension
        return _object_grid(values, width)
    return grid


def _object_grid(values: list[Any], width: int) -> np.ndarray:
    grid = np.empty((len(values), width), dtype=object)
    for i, value in enumerate(values):
        for j, element in enumerate(value):
            grid[i, j] = element
    return grid


_strict = {Shape.FLAT: flat, Shape.ROW_BOUND: row_bound}


def assemble(results: ResultCollection, shape: Shape, fallback: Optional[Shape] = None) -> Any:
    if fallback not in (None, Shape.AS_IS):
        raise ValueError(f"only AS_IS can be a fallback, got {fallback}")
    if shape is Shape.AS_IS:
        return as_is(results)
    if not results.ok:
        if fallback is Shape.AS_IS:
            return as_is(results)
        failures = results.failures()
        raise BatchFailed(
            f"{len(failures)} of {len(results)} items failed, first: {failures[0].origin}", tuple(failures)
        ) from failures[0].exception
    try:
        return _strict[shape](results)
    except ShapeMismatch:
        if fallback is Shape.AS_IS:
            return as_is(results)
        raise


def simplify(results: ResultCollection) -> Any:
    """The strictest shape that fits: FLAT, else ROW_BOUND, else AS_IS."""
    if not results.ok:
        return as_is(results)
    for shape in (Shape.FLAT, Shape.ROW_BOUND):
        try:
            return _strict[shape](results)
        except ShapeMismatch:
            continue
    return as_is(results)
