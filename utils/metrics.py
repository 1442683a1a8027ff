"""
Latency metrics for the dispatch engine.

The worker records key-to-sound latency for every keystroke, so each stage
keeps only a bounded window of recent samples. Stages above their
threshold are logged as warnings.
"""
import time
import logging
import threading
from contextlib import contextmanager
from typing import Deque, Dict, List, Optional
from dataclasses import dataclass
from collections import defaultdict, deque

logger = logging.getLogger(__name__)

WINDOW = 2048


@dataclass
class TimingStats:
    """Statistics for a timed stage over the current window."""
    stage: str
    count: int
    total_time: float
    avg_time: float
    min_time: float
    max_time: float
    last_time: float
    p95_time: float = 0.0


class MetricsCollector:
    """Thread-safe latency collector."""

    def __init__(self, window: int = WINDOW):
        self.timings: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=window))
        self.thresholds: Dict[str, float] = {
            "dispatch": 0.016,     # one 60Hz frame
            "reconfigure": 0.5,
            "catalog_load": 5.0,
        }
        self.warnings: Deque[str] = deque(maxlen=50)
        self._lock = threading.Lock()

    def record_timing(self, stage: str, duration: float) -> None:
        with self._lock:
            self.timings[stage].append(duration)
            threshold = self.thresholds.get(stage)
            exceeded = threshold is not None and duration > threshold
            if exceeded:
                warning = f"{stage} exceeded threshold: {duration*1000:.1f}ms > {threshold*1000:.0f}ms"
                self.warnings.append(warning)
        if exceeded:
            logger.warning(warning)

    def get_stats(self, stage: str) -> Optional[TimingStats]:
        with self._lock:
            times = list(self.timings.get(stage, ()))
        if not times:
            return None

        ordered = sorted(times)
        return TimingStats(
            stage=stage,
            count=len(times),
            total_time=sum(times),
            avg_time=sum(times) / len(times),
            min_time=ordered[0],
            max_time=ordered[-1],
            last_time=times[-1],
            p95_time=ordered[min(len(ordered) - 1, int(len(ordered) * 0.95))]
        )

    def stages(self) -> List[str]:
        with self._lock:
            return sorted(self.timings.keys())

    def log_summary(self) -> None:
        """Print a latency table for all stages."""
        print("\n" + "="*70)
        print("LATENCY SUMMARY")
        print("="*70)
        print(f"{'Stage':<14} {'Count':<6} {'Avg':>8} {'P95':>8} {'Min':>8} {'Max':>8}")
        print("-" * 70)

        for stage in self.stages():
            stats = self.get_stats(stage)
            if stats:
                print(f"{stage:<14} {stats.count:<6} "
                      f"{stats.avg_time*1000:>6.2f}ms {stats.p95_time*1000:>6.2f}ms "
                      f"{stats.min_time*1000:>6.2f}ms {stats.max_time*1000:>6.2f}ms")

        if self.warnings:
            print(f"\n{len(self.warnings)} threshold violations (most recent):")
            for warning in list(self.warnings)[-5:]:
                print(f"   {warning}")

        print("="*70)

    def clear(self) -> None:
        with self._lock:
            self.timings.clear()
            self.warnings.clear()


# Global metrics collector
_metrics = MetricsCollector()


@contextmanager
def timer(stage: str):
    """Context manager for timing operations."""
    start_time = time.perf_counter()
    try:
        yield
    finally:
        _metrics.record_timing(stage, time.perf_counter() - start_time)


def record_timing(stage: str, duration: float) -> None:
    _metrics.record_timing(stage, duration)


def get_stats(stage: str) -> Optional[TimingStats]:
    return _metrics.get_stats(stage)


def log_latency() -> None:
    """Print the latency summary table."""
    _metrics.log_summary()


def clear_metrics() -> None:
    _metrics.clear()
