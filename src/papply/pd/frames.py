"""
ResultCollections as pandas DataFrames, for inspecting a batch -- which items failed and why -- the way one inspects
any other table.
"""

from typing import Optional, Sequence

import pandas as pd

from papply.assemble import Shape, assemble
from papply.ds import ResultCollection


def results_frame(results: ResultCollection) -> pd.DataFrame:
    """One row per item, with columns `index`, `value`, `error` and `origin`; the latter two None for successes."""
    rows = [
        {
            "index": o.index,
            "value": o.value,
            "error": repr(o.failure.exception) if o.failure else None,
            "origin": o.failure.origin if o.failure else None,
        }
        for o in results
    ]
    return pd.DataFrame(rows, columns=["index", "value", "error", "origin"])


def grid_frame(results: ResultCollection, columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """The row-bound grid of the results, one row per item. Raises like the ROW_BOUND assembly does."""
    grid = assemble(results, Shape.ROW_BOUND)
    if columns is not None and len(columns) != grid.shape[1]:
        raise ValueError(f"got {len(columns)} column names for rows of length {grid.shape[1]}")
    return pd.DataFrame(grid, columns=list(columns) if columns is not None else None)
