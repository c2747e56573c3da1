import pickle
from dataclasses import dataclass, replace

import pytest
from typing_extensions import Self

from papply.ds import Failure, MaybeResult, Outcome, ResultCollection, msum


@dataclass
class AMonoid:
    a: int

    def __add__(self, other: Self) -> Self:
        return replace(self, a=self.a + other.a)

    @classmethod
    def empty(cls) -> Self:
        return cls(0)


def test_monoid() -> None:
    l1 = [AMonoid(4), AMonoid(5)]
    l2: list[AMonoid] = []
    assert msum(l1, AMonoid) == AMonoid(a=9)
    assert msum(l2, AMonoid) == AMonoid(a=0)


def test_maybe_result() -> None:
    succ1 = MaybeResult(result=AMonoid(a=4), failure=[])
    fail1 = MaybeResult(result=AMonoid.empty(), failure=[Failure(origin="a", exception=ValueError())])
    succ2 = MaybeResult(result=AMonoid(a=5), failure=[])
    fail2 = MaybeResult(result=AMonoid.empty(), failure=[Failure(origin="b", exception=ValueError())])
    all_r = msum([succ1, fail1, succ2, fail2], MaybeResult)
    assert all_r.result == AMonoid(a=9)
    assert all_r.failure == [fail1.failure[0], fail2.failure[0]]


def test_failure_eq_survives_pickling() -> None:
    f = Failure("failure with args 3 at index 1", ValueError("boom"), 1)
    assert pickle.loads(pickle.dumps(f)) == f
    assert f != Failure("failure with args 3 at index 1", TypeError("boom"), 1)
    assert f != Failure("failure with args 3 at index 1", ValueError("boom"), 2)


def test_result_collection_invariants() -> None:
    shuffled = [Outcome(2, "c"), Outcome(0, "a"), Outcome(1, "b")]
    rc = ResultCollection.from_outcomes(shuffled)
    assert [o.index for o in rc] == [0, 1, 2]
    assert rc.values() == ["a", "b", "c"]
    assert len(rc) == 3
    assert rc.ok

    with pytest.raises(ValueError):
        ResultCollection.from_outcomes([Outcome(0, "a"), Outcome(2, "c")])
    with pytest.raises(ValueError):
        ResultCollection.from_outcomes([Outcome(0, "a"), Outcome(0, "a")])
    assert len(ResultCollection()) == 0


def test_result_collection_failures_and_reduce() -> None:
    failure = Failure("failure with args 10 at index 1", ValueError("too big"), 1)
    rc = ResultCollection([Outcome(0, AMonoid(2)), Outcome(1, None, failure), Outcome(2, AMonoid(3))])
    assert not rc.ok
    assert rc.failures() == [failure]

    reduced = rc.reduce(AMonoid)
    assert reduced.result == AMonoid(5)
    assert reduced.failure == [failure]

    all_failed = ResultCollection([Outcome(0, None, failure)]).reduce(AMonoid)
    assert all_failed.result == AMonoid(0)
