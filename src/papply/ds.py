"""
Module contents:
 - Failure: a caught Exception, tagged with the index of the item that raised it. Used so that a single exception does
   not bring a whole batch down, but rather we finish what can be finished and collect all exceptions at the end.
 - Outcome and ResultCollection: the per-item outcomes of a batch, in input order.
 - Monoid and MaybeResult: "things you can sum together", for reducing a ResultCollection into a single value.
   Accompanied by the `msum` function.
"""

from abc import abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Generic, Iterable, Iterator, Optional, Protocol, Type, TypeVar, runtime_checkable

from typing_extensions import Self

from papply.it import flatmap


# *** Monoid ***
@runtime_checkable
class Monoid(Protocol):
    """Define a dataclass that represents the result of a single computation, and how two computations can be put
    together, to satisfy the Monoid protocol -- then `ResultCollection.reduce` does the rest for you."""

    @abstractmethod
    def __add__(self, other: Self) -> Self:
        raise NotImplementedError

    @classmethod
    @abstractmethod
    def empty(cls) -> Self:
        raise NotImplementedError


# NOTE the Type needs to be passed explicitly, Python can't infer it from the context
TMonoid = TypeVar("TMonoid", bound=Monoid)


def msum(i: Iterable[TMonoid], t: Type[TMonoid]) -> TMonoid:
    return sum(i, start=t.empty())


@dataclass
class Failure:
    """Represents a caught Exception. `origin` is a human readable description of where it happened (arguments,
    worker, ...), `index` the position of the failed item in the input."""

    origin: str
    exception: BaseException
    index: Optional[int] = None

    def __eq__(self, other: Any) -> bool:
        # NOTE we override since `Exception`'s eq is identity, which does not survive pickling
        if not isinstance(other, Failure):
            return False
        return (
            other.origin == self.origin
            and other.index == self.index
            and type(other.exception) is type(self.exception)
            and str(self.exception) == str(other.exception)
        )


@dataclass
class MaybeResult(Generic[TMonoid]):
    """Note this is *not* an Either-class, both `result` and `failure` may be filled"""

    result: Optional[TMonoid]
    failure: list[Failure]

    @classmethod
    def empty(cls) -> Self:
        return cls(result=None, failure=[])

    def __add__(self, other: Self) -> Self:
        if self.result is None:
            result = other.result
        elif other.result is None:
            result = self.result
        else:
            result = self.result + other.result
        return replace(self, result=result, failure=self.failure + other.failure)


T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Outcome of a single item: either `value` is meaningful, or `failure` is set."""

    index: int
    value: Optional[T] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class ResultCollection(Generic[T]):
    """Outcomes of a batch, sorted by index. Every index 0..N-1 is present exactly once -- enforced on construction,
    so an executor that lost or duplicated an item fails loudly rather than silently shifting results."""

    entries: list[Outcome[T]] = field(default_factory=list)

    def __post_init__(self) -> None:
        for position, outcome in enumerate(self.entries):
            if outcome.index != position:
                raise ValueError(f"internal error: expected outcome with index {position}, got {outcome.index}")

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[Outcome[T]]) -> "ResultCollection[T]":
        return cls(sorted(outcomes, key=lambda o: o.index))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Outcome[T]]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> Outcome[T]:
        return self.entries[index]

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.entries)

    def values(self) -> list[Optional[T]]:
        return [o.value for o in self.entries]

    def failures(self) -> list[Failure]:
        return list(flatmap(lambda o: [o.failure] if o.failure is not None else [], self.entries))

    def reduce(self, t: Type[TMonoid]) -> MaybeResult[TMonoid]:
        """Sums up the successful values, which must be of the Monoid type `t`, and collects the failures."""
        total = msum((MaybeResult(o.value, [o.failure] if o.failure else []) for o in self.entries), MaybeResult)
        if total.result is None:
            return replace(total, result=t.empty())
        return total
