# ========================
# src/utils/performance_monitor.py
# ========================

"""
Performance Monitoring Utilities

Tracks throughput and memory of load sessions.
"""

import time
import os
import logging
from contextlib import contextmanager
from typing import Dict, Any

import psutil

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """
    Performance monitoring utility for load sessions.
    Tracks memory usage, processing time, and throughput.
    """

    def __init__(self, name: str = "Load", log_every_chunks: int = 100):
        """
        Initialize performance monitor.

        Args:
            name (str): Name for this monitoring session
            log_every_chunks (int): Log a progress line every this many chunks
        """
        self.name = name
        self.log_every_chunks = log_every_chunks
        self.start_time = None
        self.end_time = None
        self.peak_memory_mb = 0.0
        self.records_processed = 0
        self.chunks_processed = 0
        self.bytes_processed = 0
        self.summary: Dict[str, Any] = {}

        logger.debug(f"PerformanceMonitor initialized: {name}")

    def start_monitoring(self) -> None:
        """Start performance monitoring."""
        self.start_time = time.time()
        self.peak_memory_mb = self._get_memory_usage_mb()

        logger.debug(f"{self.name} - monitoring started, memory {self.peak_memory_mb:.2f} MB")

    def update_progress(self, records_in_chunk: int, bytes_in_chunk: int = 0) -> None:
        """
        Update progress tracking.

        Args:
            records_in_chunk (int): Number of records parsed from this chunk
            bytes_in_chunk (int): Number of bytes read for this chunk
        """
        self.records_processed += records_in_chunk
        self.bytes_processed += bytes_in_chunk
        self.chunks_processed += 1
        current_memory = self._get_memory_usage_mb()
        self.peak_memory_mb = max(self.peak_memory_mb, current_memory)

        # Log progress periodically
        if self.chunks_processed % self.log_every_chunks == 0:
            self._log_progress(current_memory)

    def _log_progress(self, current_memory: float) -> None:
        """Log current progress."""
        if self.start_time:
            elapsed = time.time() - self.start_time
            throughput = self.records_processed / elapsed if elapsed > 0 else 0

            logger.info(
                f"{self.name} - Progress: {self.chunks_processed} chunks, "
                f"{self.records_processed:,} records, "
                f"{throughput:.0f} records/sec, "
                f"Memory: {current_memory:.2f} MB"
            )

    def stop_monitoring(self) -> Dict[str, Any]:
        """
        Stop monitoring and return performance summary.

        Returns:
            dict: Performance statistics
        """
        self.end_time = time.time()
        total_time = self.end_time - self.start_time if self.start_time else 0
        throughput = self.records_processed / total_time if total_time > 0 else 0

        self.summary = {
            'name': self.name,
            'total_processing_time_seconds': total_time,
            'records_processed': self.records_processed,
            'chunks_processed': self.chunks_processed,
            'bytes_processed': self.bytes_processed,
            'average_throughput_records_per_second': throughput,
            'peak_memory_usage_mb': self.peak_memory_mb,
        }

        logger.info(
            f"{self.name} - {self.records_processed:,} records in {total_time:.2f}s "
            f"({throughput:.0f} records/sec), peak memory {self.peak_memory_mb:.2f} MB"
        )
        return self.summary

    def _get_memory_usage_mb(self) -> float:
        """Get current memory usage in MB."""
        try:
            memory_bytes = psutil.Process(os.getpid()).memory_info().rss
        except psutil.Error as e:
            logger.debug(f"Could not get memory usage: {e}")
            return self.peak_memory_mb
        return memory_bytes / (1024 * 1024)


@contextmanager
def monitor_performance(name: str = "Load"):
    """
    Context manager for easy performance monitoring.

    Args:
        name (str): Name for this monitoring session

    Yields:
        PerformanceMonitor: Monitor instance; its summary is filled on exit
    """
    monitor = PerformanceMonitor(name)
    monitor.start_monitoring()
    try:
        yield monitor
    finally:
        monitor.stop_monitoring()


class SystemResourceMonitor:
    """Monitor system-wide resource usage."""

    @staticmethod
    def get_system_stats() -> Dict[str, Any]:
        """Get current system resource statistics."""
        stats = {}

        try:
            stats['cpu_count'] = psutil.cpu_count()

            memory = psutil.virtual_memory()
            stats['memory_total_gb'] = memory.total / (1024**3)
            stats['memory_available_gb'] = memory.available / (1024**3)
            stats['memory_used_percent'] = memory.percent

            stats['process_memory_mb'] = psutil.Process(os.getpid()).memory_info().rss / (1024 * 1024)
        except psutil.Error as e:
            logger.warning(f"Could not get system stats: {e}")

        return stats
