import numpy as np
import pytest

from papply.rng import spawn_generators


def test_spawn_generators_is_reproducible() -> None:
    first = [g.integers(0, 1_000_000) for g in spawn_generators(42, 4)]
    second = [g.integers(0, 1_000_000) for g in spawn_generators(42, 4)]
    assert first == second
    # independent streams
    assert len(set(first)) == 4


def test_spawn_generators_edge_cases() -> None:
    assert spawn_generators(1, 0) == []
    assert all(isinstance(g, np.random.Generator) for g in spawn_generators(None, 3))
    with pytest.raises(ValueError):
        spawn_generators(1, -1)
