"""
Progress Monitor
================
Counters for one traversal run, reported in the final summary.

Tracks:
- Pages and units written
- Error placeholders written
- Navigation retries
- Elapsed time
"""

import logging
import time
from threading import Lock
from typing import Optional

logger = logging.getLogger(__name__)


class ProgressTracker:
    """
    Tracks traversal progress for reporting.
    """

    def __init__(self):
        self.pages_written = 0
        self.units_written = 0
        self.pages_failed = 0
        self.retries = 0
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self._lock = Lock()

    def start(self) -> None:
        """Mark run start."""
        self.start_time = time.time()
        self.end_time = None

    def finish(self) -> None:
        """Mark run end."""
        self.end_time = time.time()

    def record_page(self, new_unit: bool) -> int:
        """Count a written page; returns pages written so far."""
        with self._lock:
            self.pages_written += 1
            if new_unit:
                self.units_written += 1
            return self.pages_written

    def record_failure(self) -> int:
        with self._lock:
            self.pages_failed += 1
            return self.pages_failed

    def record_retry(self) -> int:
        with self._lock:
            self.retries += 1
            return self.retries

    @property
    def elapsed_time(self) -> float:
        """Elapsed time in seconds."""
        if self.start_time is None:
            return 0
        end = self.end_time or time.time()
        return end - self.start_time

    def get_stats(self) -> dict:
        """Get current statistics."""
        return {
            'pages_written': self.pages_written,
            'units_written': self.units_written,
            'pages_failed': self.pages_failed,
            'retries': self.retries,
            'elapsed_time': round(self.elapsed_time, 2),
        }
