"""
Per-operation latency and error accounting for workload runs.
"""

import threading
import time
from collections import deque
from typing import Deque, Dict

from tpcbench.models.summary import OperationSummary

# Latency samples kept per operation for percentile estimation.
LATENCY_WINDOW = 100_000


class _OpStats:
    __slots__ = ("count", "errors", "total_ms", "max_ms", "latencies")

    def __init__(self) -> None:
        self.count = 0
        self.errors = 0
        self.total_ms = 0.0
        self.max_ms = 0.0
        self.latencies: Deque[float] = deque(maxlen=LATENCY_WINDOW)

    def summarize(self, name: str) -> OperationSummary:
        summary = OperationSummary(
            name=name,
            count=self.count,
            error_count=self.errors,
            max_ms=self.max_ms,
        )
        if self.count:
            summary.avg_ms = self.total_ms / self.count
        if self.latencies:
            sorted_lat = sorted(self.latencies)
            n = len(sorted_lat)
            summary.p50_ms = sorted_lat[int(n * 0.50)]
            summary.p95_ms = sorted_lat[min(int(n * 0.95), n - 1)]
            summary.p99_ms = sorted_lat[min(int(n * 0.99), n - 1)]
        return summary


class Measurement:
    """
    Thread-safe counters for one workload run.

    Keeps cumulative stats for the final report and interval stats that are
    reset by :meth:`take_interval` for periodic progress output.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._total: Dict[str, _OpStats] = {}
        self._interval: Dict[str, _OpStats] = {}
        self.started_at = time.monotonic()
        self._interval_started_at = self.started_at

    def record(self, op: str, duration_ms: float, error: bool = False) -> None:
        with self._lock:
            for table in (self._total, self._interval):
                stats = table.get(op)
                if stats is None:
                    stats = table[op] = _OpStats()
                if error:
                    stats.errors += 1
                    continue
                stats.count += 1
                stats.total_ms += duration_ms
                if duration_ms > stats.max_ms:
                    stats.max_ms = duration_ms
                stats.latencies.append(duration_ms)

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def take_interval(self) -> tuple[float, Dict[str, OperationSummary]]:
        """Return (seconds, summaries) for the interval and start a new one."""
        with self._lock:
            now = time.monotonic()
            elapsed = now - self._interval_started_at
            interval, self._interval = self._interval, {}
            self._interval_started_at = now
        return elapsed, {name: s.summarize(name) for name, s in interval.items()}

    def summary(self) -> Dict[str, OperationSummary]:
        with self._lock:
            return {name: s.summarize(name) for name, s in self._total.items()}
