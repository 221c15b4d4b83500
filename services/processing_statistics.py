"""
Run statistics for a TranscriptProcessor.

All updates go through one lock because batch runs record results from
several worker threads at once.
"""

from __future__ import annotations

import threading

from domain.models import ProcessingStatus, StatisticsSnapshot


class ProcessingStatistics:
    """Thread-safe accumulator of processed / successful / failed counts and time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.processed = 0
        self.successful = 0
        self.failed = 0
        self.processing_time = 0.0  # seconds

    def record(self, status: ProcessingStatus, duration: float) -> None:
        """Account for one finished ``process_transcript`` call."""
        with self._lock:
            self.processed += 1
            if status == ProcessingStatus.COMPLETED:
                self.successful += 1
            else:
                self.failed += 1
            self.processing_time += duration

    def snapshot(self) -> StatisticsSnapshot:
        with self._lock:
            processed = self.processed
            successful = self.successful
            failed = self.failed
            total_time = self.processing_time

        if processed == 0:
            return StatisticsSnapshot()

        return StatisticsSnapshot(
            total_processed=processed,
            successful=successful,
            failed=failed,
            success_rate=round(successful / processed * 100, 1),
            average_processing_time=round(total_time / processed, 3),
        )

    def reset(self) -> None:
        with self._lock:
            self.processed = 0
            self.successful = 0
            self.failed = 0
            self.processing_time = 0.0
