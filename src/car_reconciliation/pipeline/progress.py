"""
Progress accounting for a reconciliation run.

Workers put one signal per finished archive on a completion channel. The
aggregator drains that channel without blocking whenever it handles a match,
so archives that produce no matches still advance the count.
"""

import logging
import queue

from ..metrics import PROGRESS_COMPLETED

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Counts completed archives out of a fixed total."""

    def __init__(self, total: int):
        self.total = total
        self.completed = 0
        PROGRESS_COMPLETED.set(0)

    def drain(self, completions: queue.Queue) -> int:
        """
        Consume every completion signal currently queued, without blocking.

        Logs a ``file progress: <completed>/<total>`` line if anything was
        drained.

        Args:
            completions: Completion channel fed by the workers

        Returns:
            Number of signals drained
        """
        drained = 0
        while True:
            try:
                completions.get_nowait()
            except queue.Empty:
                break
            drained += 1

        if drained:
            self.completed = min(self.completed + drained, self.total)
            PROGRESS_COMPLETED.set(self.completed)
            logger.info(f"file progress: {self.completed}/{self.total}")

        return drained
