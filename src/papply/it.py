"""
Module contents:
    - flatmap -- standard functional construct, useful for e.g. map-and-filter or maps that produce Optional results,
    - round_robin -- `round_robin([1,2,3,4,5], 2) -> [[1, 3, 5], [2, 4]]`,
    - contiguous -- `contiguous([1,2,3,4,5], 2) -> [[1, 2, 3], [4, 5]]`.

The latter two partition work among workers. Both never produce empty parts, so there may be fewer than `n` parts
when the sequence is shorter than `n`.
"""
from typing import Callable, Iterable, Sequence, TypeVar

TA = TypeVar("TA")
TB = TypeVar("TB")


def flatmap(f: Callable[[TA], Iterable[TB]], xs: Iterable[TA]) -> Iterable[TB]:
    """Often one wants to map-and-filter a sequence, which perfectly suits the flatMap."""
    return (y for x in xs for y in f(x))


def round_robin(s: Sequence[TA], n: int) -> list[list[TA]]:
    """Deals the elements out like cards. Evens out the load when the cost per element is uneven but correlated with
    position."""
    if n < 1:
        raise ValueError(f"cannot partition into {n} parts")
    return [list(s[i::n]) for i in range(min(n, len(s)))]


def contiguous(s: Sequence[TA], n: int) -> list[list[TA]]:
    """Splits into at most `n` consecutive runs, sizes differing by at most one."""
    if n < 1:
        raise ValueError(f"cannot partition into {n} parts")
    n = min(n, len(s))
    size, extra = divmod(len(s), n) if n else (0, 0)
    parts = []
    start = 0
    for i in range(n):
        end = start + size + (1 if i < extra else 0)
        parts.append(list(s[start:end]))
        start = end
    return parts
