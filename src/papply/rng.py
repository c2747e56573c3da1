"""
Reproducible randomness for parallel work. The core never seeds anything -- a function drawing from a global random
state gets different numbers depending on which worker runs it. Instead, derive one independent Generator per item
from a single seed, and pass it along as the item's argument: the results then depend on the seed only, not on the
plan.
"""

from typing import Optional

import numpy as np


def spawn_generators(seed: Optional[int], n: int) -> list[np.random.Generator]:
    """`n` statistically independent generators. With `seed=None`, fresh entropy is drawn."""
    if n < 0:
        raise ValueError(f"cannot spawn {n} generators")
    return [np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(n)]
