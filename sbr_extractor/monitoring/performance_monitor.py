"""
Performance monitoring for backup extraction runs.

Tracks per-file elapsed time and throughput plus process memory for the
whole run. Resource samples are taken inline by the processing loop (the
run is single-threaded), not by a background thread.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import psutil


@dataclass
class FileTiming:
    """Timing of one backup file."""
    source_file: str
    elapsed_seconds: float
    records: int

    @property
    def records_per_second(self) -> float:
        return self.records / self.elapsed_seconds if self.elapsed_seconds > 0 else 0.0


@dataclass
class PerformanceMetrics:
    """Container for performance metrics."""
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    records_processed: int = 0
    files_processed: int = 0

    # System resource metrics
    start_memory_mb: float = 0.0
    peak_memory_mb: float = 0.0
    memory_samples: int = 0
    cpu_percent: float = 0.0

    # Throughput metrics
    records_per_second: float = 0.0

    file_timings: List[FileTiming] = field(default_factory=list)


class PerformanceMonitor:
    """
    Run-level performance monitor backed by psutil.

    Usage::

        monitor.start_monitoring()
        monitor.start_file(path)
        ...  # monitor.sample_memory() every N records
        monitor.end_file(path, records)
        metrics = monitor.stop_monitoring()
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._metrics = PerformanceMetrics()
        self._is_monitoring = False
        self._process = psutil.Process()
        self._start_clock = 0.0
        self._end_clock = 0.0
        self._file_clock: Dict[str, float] = {}

    @property
    def is_monitoring(self) -> bool:
        return self._is_monitoring

    def start_monitoring(self) -> None:
        """Start a run."""
        if self._is_monitoring:
            self.logger.warning("Performance monitoring already started")
            return

        self._metrics = PerformanceMetrics(start_time=datetime.now())
        self._start_clock = time.perf_counter()
        self._is_monitoring = True
        # First call primes psutil's CPU counter; the value is meaningless
        self._process.cpu_percent(interval=None)
        self._metrics.start_memory_mb = self.sample_memory()
        self.logger.debug("Performance monitoring started")

    def start_file(self, source_file: str) -> None:
        self._file_clock[source_file] = time.perf_counter()

    def end_file(self, source_file: str, records: int) -> float:
        """
        Close the timing of one file.

        Returns:
            Seconds spent on the file
        """
        started = self._file_clock.pop(source_file, None)
        elapsed = time.perf_counter() - started if started is not None else 0.0
        timing = FileTiming(source_file=source_file, elapsed_seconds=elapsed, records=records)
        self._metrics.file_timings.append(timing)
        self._metrics.files_processed += 1
        self._metrics.records_processed += records
        self.sample_memory()
        self.logger.debug(
            f"{source_file}: {records} records in {elapsed:.2f}s ({timing.records_per_second:.1f} records/sec)"
        )
        return elapsed

    def sample_memory(self) -> float:
        """Record the current RSS and return it in MB."""
        try:
            memory_mb = self._process.memory_info().rss / 1024 / 1024
        except psutil.Error as e:
            self.logger.debug(f"Unable to sample memory: {e}")
            return 0.0
        self._metrics.memory_samples += 1
        if memory_mb > self._metrics.peak_memory_mb:
            self._metrics.peak_memory_mb = memory_mb
        return memory_mb

    def stop_monitoring(self) -> PerformanceMetrics:
        """Stop the run and compute final metrics."""
        if not self._is_monitoring:
            self.logger.warning("Performance monitoring not started")
            return self._metrics

        self.sample_memory()
        self._end_clock = time.perf_counter()
        self._metrics.end_time = datetime.now()
        self._is_monitoring = False
        try:
            self._metrics.cpu_percent = self._process.cpu_percent(interval=None)
        except psutil.Error as e:
            self.logger.debug(f"Unable to read CPU usage: {e}")

        total_time = self.total_processing_time
        if total_time > 0:
            self._metrics.records_per_second = self._metrics.records_processed / total_time

        self.logger.info(
            f"Performance monitoring stopped. Processed {self._metrics.records_processed} records "
            f"in {total_time:.2f} seconds ({self._metrics.records_per_second:.1f} records/sec), "
            f"peak memory {self._metrics.peak_memory_mb:.1f} MB"
        )
        return self._metrics

    @property
    def total_processing_time(self) -> float:
        end = self._end_clock if not self._is_monitoring else time.perf_counter()
        return max(end - self._start_clock, 0.0) if self._start_clock else 0.0

    def get_performance_summary(self) -> Dict[str, Any]:
        """Get the metrics as a plain dictionary for ProcessingResult."""
        metrics = self._metrics
        return {
            'total_processing_time_seconds': self.total_processing_time,
            'records_processed': metrics.records_processed,
            'records_per_second': metrics.records_per_second,
            'files': [
                {
                    'source_file': timing.source_file,
                    'elapsed_seconds': timing.elapsed_seconds,
                    'records': timing.records,
                    'records_per_second': timing.records_per_second,
                }
                for timing in metrics.file_timings
            ],
            'resource_usage': {
                'start_memory_mb': metrics.start_memory_mb,
                'peak_memory_mb': metrics.peak_memory_mb,
                'memory_samples_count': metrics.memory_samples,
                'cpu_percent': metrics.cpu_percent,
            },
        }
