"""In-process metrics collector for the application pipeline."""
import time
from typing import Dict, List
from collections import defaultdict
import structlog

log = structlog.get_logger()


class MetricsCollector:
    """
    Collects and aggregates pipeline metrics.

    Tracks:
    - Items written and failed by bulk apply
    - Configurations matched and applied by item events
    - Apply latency
    """

    def __init__(self):
        """Initialize metrics collector."""
        self._counters: Dict[str, int] = defaultdict(int)
        self._histograms: Dict[str, List[float]] = defaultdict(list)
        self._start_time = time.time()

    def increment(self, metric: str, value: int = 1, labels: Dict[str, str] | None = None):
        """
        Increment a counter metric.

        Args:
            metric: Metric name
            value: Amount to increment by
            labels: Optional labels for the metric
        """
        key = self._make_key(metric, labels)
        self._counters[key] += value

    def histogram(self, metric: str, value: float, labels: Dict[str, str] | None = None):
        """Record a histogram value."""
        key = self._make_key(metric, labels)
        self._histograms[key].append(value)

    def record_latency(self, metric: str, start_time: float, labels: Dict[str, str] | None = None):
        """
        Record latency in milliseconds.

        Args:
            metric: Metric name
            start_time: Start timestamp
            labels: Optional labels for the metric
        """
        latency_ms = (time.time() - start_time) * 1000
        self.histogram(metric, latency_ms, labels)

    def counter(self, metric: str, labels: Dict[str, str] | None = None) -> int:
        return self._counters.get(self._make_key(metric, labels), 0)

    def get_metrics(self) -> Dict:
        """
        Get all collected metrics.

        Returns:
            Dictionary of all metrics
        """
        uptime = time.time() - self._start_time

        histogram_stats = {}
        for key, values in self._histograms.items():
            if values:
                histogram_stats[key] = {
                    "count": len(values),
                    "sum": sum(values),
                    "avg": sum(values) / len(values),
                    "min": min(values),
                    "max": max(values),
                }

        return {
            "uptime_seconds": uptime,
            "counters": dict(self._counters),
            "histograms": histogram_stats,
        }

    def reset(self):
        """Reset all metrics (useful for testing)."""
        self._counters.clear()
        self._histograms.clear()
        self._start_time = time.time()
        log.info("metrics.reset")

    @staticmethod
    def _make_key(metric: str, labels: Dict[str, str] | None) -> str:
        if not labels:
            return metric

        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{metric}{{{label_str}}}"


# Global metrics collector instance
collector = MetricsCollector()


# Common metric names
ITEMS_APPLIED_TOTAL = "items_applied_total"
ITEMS_FAILED_TOTAL = "items_failed_total"
FIELDS_SKIPPED_TOTAL = "fields_skipped_total"
CONFIGURATIONS_MATCHED_TOTAL = "configurations_matched_total"
CONFIGURATIONS_FAILED_TOTAL = "configurations_failed_total"
EVENTS_HANDLED_TOTAL = "events_handled_total"
APPLY_LATENCY_MS = "apply_latency_ms"
MATCH_LATENCY_MS = "match_latency_ms"
