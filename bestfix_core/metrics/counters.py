"""
Thread-safe counters and sample histograms for the arbitration pipeline.

Anything that does not become the held estimate is counted under a drop
reason, whether the arbiter rejected it or a live update registration
filtered it out under its rate policy.
"""

import logging
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


DROP_REASONS = {
    'no_reading': 'source had no reading available',
    'less_accurate': 'fresh but less accurate than the held reading',
    'candidate_stale': 'older than the staleness threshold',
    'not_comparable': 'no accuracy on either side, held still fresh',
    'filtered_min_time': 'sooner than the policy minimum interval',
    'filtered_min_distance': 'closer than the policy minimum distance',
}

STANDARD_COUNTERS = (
    'readings_submitted',
    'readings_accepted',
    'readings_dropped',
    'sources_attached',
    'sources_detached',
    'live_deliveries',
)


@dataclass
class CounterSnapshot:
    """Copy of the collector state."""

    timestamp: float
    counters: Dict[str, int]
    drop_reasons: Dict[str, int]
    histograms: Dict[str, List[float]] = field(default_factory=dict)

    def total_dropped(self) -> int:
        return sum(self.drop_reasons.values())

    def acceptance_rate(self) -> float:
        """Percentage of submitted readings that replaced the held one."""
        submitted = self.counters.get('readings_submitted', 0)
        if not submitted:
            return 0.0
        return 100.0 * self.counters.get('readings_accepted', 0) / submitted


class MetricsCollector:
    """
    Counters, drop reasons and bounded histograms behind one lock.

    Usage:
        metrics = MetricsCollector()
        metrics.increment('readings_submitted')
        metrics.increment_drop('candidate_stale')
        metrics.record_histogram('accuracy_m', 8.0)

        metrics.print_summary()
    """

    DROP_REASONS = DROP_REASONS

    def __init__(self, max_samples: int = 10000):
        """
        Initialize collector with every standard counter and reason at 0.

        Args:
            max_samples: Default number of most recent samples kept per histogram
        """
        self.max_samples = max_samples
        self._lock = threading.Lock()
        self._started = time.time()
        self._counters = Counter(dict.fromkeys(STANDARD_COUNTERS, 0))
        self._drops = Counter(dict.fromkeys(DROP_REASONS, 0))
        self._samples: Dict[str, Deque[float]] = {}

    def increment(self, counter_name: str, value: int = 1):
        with self._lock:
            self._counters[counter_name] += value

    def increment_drop(self, reason: str, value: int = 1):
        """
        Count dropped readings under reason (also bumps readings_dropped).

        Unknown reasons are logged and counted anyway.
        """
        if reason not in DROP_REASONS:
            logger.warning(f"Unknown drop reason '{reason}'")

        with self._lock:
            self._drops[reason] += value
            self._counters['readings_dropped'] += value

    def get_counter(self, counter_name: str) -> int:
        with self._lock:
            return self._counters[counter_name]

    def get_drop_count(self, reason: str) -> int:
        with self._lock:
            return self._drops[reason]

    def record_histogram(self, histogram_name: str, value: float,
                         max_samples: Optional[int] = None):
        """
        Add a sample; only the most recent max_samples are kept.

        max_samples applies when the histogram is first created.
        """
        with self._lock:
            samples = self._samples.get(histogram_name)
            if samples is None:
                samples = deque(maxlen=max_samples or self.max_samples)
                self._samples[histogram_name] = samples
            samples.append(value)

    def get_histogram_stats(self, histogram_name: str) -> Optional[Dict[str, float]]:
        """
        Summary statistics for a histogram.

        Returns:
            Dict with count, min, max, mean, median and p95, or None if
            nothing was recorded
        """
        with self._lock:
            samples = self._samples.get(histogram_name)
            if not samples:
                return None
            values = np.fromiter(samples, dtype=float, count=len(samples))

        return {
            'count': int(values.size),
            'min': float(values.min()),
            'max': float(values.max()),
            'mean': float(values.mean()),
            'median': float(np.median(values)),
            'p95': float(np.percentile(values, 95)),
        }

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return CounterSnapshot(
                timestamp=time.time(),
                counters=dict(self._counters),
                drop_reasons=dict(self._drops),
                histograms={name: list(s) for name, s in self._samples.items()},
            )

    def print_summary(self):
        """Print what happened to the submitted readings and the sources."""
        snapshot = self.snapshot()
        counters = snapshot.counters
        elapsed = snapshot.timestamp - self._started

        print("\n" + "=" * 70)
        print(f"  METRICS SUMMARY ({elapsed:.1f}s)")
        print("=" * 70)

        print(f"\nreadings: {counters['readings_submitted']} submitted, "
              f"{counters['readings_accepted']} accepted "
              f"({snapshot.acceptance_rate():.1f}%), "
              f"{counters['readings_dropped']} dropped")
        print(f"sources:  {counters['sources_attached']} attached, "
              f"{counters['sources_detached']} detached, "
              f"{counters['live_deliveries']} live deliveries")

        dropped = [(r, n) for r, n in sorted(snapshot.drop_reasons.items()) if n]
        if dropped:
            print("\nDROP REASONS:")
            for reason, count in dropped:
                print(f"  {reason:22s} {count:8d}  {DROP_REASONS.get(reason, '')}")

        if snapshot.histograms:
            print("\nHISTOGRAMS:")
            for name in sorted(snapshot.histograms):
                stats = self.get_histogram_stats(name)
                print(f"  {name:22s} count={stats['count']} mean={stats['mean']:.2f} "
                      f"median={stats['median']:.2f} p95={stats['p95']:.2f}")

        print("=" * 70 + "\n")
