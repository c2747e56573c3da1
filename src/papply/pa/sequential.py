"""
Executes a batch on the caller's thread, one task after another. This is what plans with `worker_count == 1` use as
well, so that a single worker never pays for process startup and pickling.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from papply.ds import Outcome, ResultCollection
from papply.pa.task import Task

logger = logging.getLogger(__name__)


def sequential_run(batch: Sequence[Task], fail_fast: bool = False) -> ResultCollection:
    outcomes: list[Outcome] = []
    for task in batch:
        if fail_fast:
            # not catching anything -- the first exception aborts the remaining tasks
            outcomes.append(Outcome(task.index, task(), None))
        else:
            outcomes.append(task.evaluate())
    logger.debug(f"sequentially evaluated {len(outcomes)} tasks")
    return ResultCollection(outcomes)


@dataclass
class SequentialExecutor:
    def run(self, batch: Sequence[Task], fail_fast: bool = False) -> ResultCollection:
        return sequential_run(batch, fail_fast)
