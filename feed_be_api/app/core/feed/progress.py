"""
Progress tracking for long-running feed generation.
"""

import resource
import sys
import time
from typing import Any, Callable, Dict, Optional


class FeedProgress:
    """
    Progress counter for one streaming response.

    Not shared between requests; each feed stream builds its own.
    """

    def __init__(
        self,
        total: int,
        log_interval_ms: int = 5000,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            total: Number of products to process
            log_interval_ms: Minimum wall-clock gap between two progress logs
            clock: Seconds-based clock (injectable for tests)
        """
        self.total = total
        self.log_interval_ms = log_interval_ms
        self._clock = clock
        self.processed = 0
        self.start_time = clock()
        self.last_log_time = self.start_time

    def increment(self, count: int = 1) -> None:
        self.processed += count

    def should_log(self) -> bool:
        """True at most once per log interval; updates the last-log time."""
        now = self._clock()
        if (now - self.last_log_time) * 1000 >= self.log_interval_ms:
            self.last_log_time = now
            return True
        return False

    def get_progress(self) -> Dict[str, Any]:
        """
        Snapshot of progress. Time estimates are linear extrapolations and
        are None until at least one product has been processed.
        """
        elapsed_ms = (self._clock() - self.start_time) * 1000
        percentage = (self.processed / self.total) * 100 if self.total else 0.0

        estimated_total_ms: Optional[int] = None
        estimated_remaining_ms: Optional[int] = None
        if self.processed > 0:
            estimate = (elapsed_ms / self.processed) * self.total
            estimated_total_ms = round(estimate)
            estimated_remaining_ms = round(estimate - elapsed_ms)

        return {
            "processed": self.processed,
            "total": self.total,
            "percentage": round(percentage, 2),
            "elapsed_ms": round(elapsed_ms),
            "estimated_total_ms": estimated_total_ms,
            "estimated_remaining_ms": estimated_remaining_ms,
        }

    def reset(self) -> None:
        self.processed = 0
        self.start_time = self._clock()
        self.last_log_time = self.start_time


def get_memory_usage() -> Dict[str, int]:
    """Peak resident set size of this process in MiB."""
    max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # bytes on macOS, KiB elsewhere
    divisor = 1024 * 1024 if sys.platform == "darwin" else 1024
    return {"max_rss_mb": round(max_rss / divisor)}
