#!/usr/bin/env python3
"""
Metrics collection utilities for CVE Mirror
Provides Prometheus-compatible metrics for monitoring
"""
import time
import threading
from functools import wraps
from typing import Callable, Dict, Any, Optional, List
from collections import defaultdict
import logging

logger = logging.getLogger(__name__)


class _LabelledMetric:
    """Shared label handling for all metric kinds"""

    kind = "untyped"

    def __init__(self, name: str, description: str = "", labels: Optional[List[str]] = None):
        self.name = name
        self.description = description
        self.labels = labels or []
        self._lock = threading.Lock()

    def _make_key(self, label_values: Dict[str, Any]) -> str:
        """Create key from label values"""
        if not self.labels:
            return ""

        for label in self.labels:
            if label not in label_values:
                raise ValueError(f"Missing required label: {label}")

        return ",".join(f'{k}="{label_values[k]}"' for k in sorted(self.labels))


class Counter(_LabelledMetric):
    """Counter metric - only increases"""

    kind = "counter"

    def __init__(self, name: str, description: str = "", labels: Optional[List[str]] = None):
        super().__init__(name, description, labels)
        self._values: Dict[str, float] = defaultdict(float)

    def inc(self, amount: float = 1.0, **label_values):
        """Increment counter by amount"""
        if amount < 0:
            raise ValueError("Counters can only increase")
        with self._lock:
            self._values[self._make_key(label_values)] += amount

    def get(self, **label_values) -> float:
        with self._lock:
            return self._values.get(self._make_key(label_values), 0.0)

    def samples(self) -> List[str]:
        with self._lock:
            return [
                f"{self.name}{{{key}}} {value}" if key else f"{self.name} {value}"
                for key, value in self._values.items()
            ]


class Gauge(Counter):
    """Gauge metric - can increase or decrease"""

    kind = "gauge"

    def inc(self, amount: float = 1.0, **label_values):
        with self._lock:
            self._values[self._make_key(label_values)] += amount

    def set(self, value: float, **label_values):
        """Set gauge value"""
        with self._lock:
            self._values[self._make_key(label_values)] = value


class Histogram(_LabelledMetric):
    """Histogram metric for measuring distributions"""

    kind = "histogram"
    DEFAULT_BUCKETS = [0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]

    def __init__(self, name: str, description: str = "",
                 buckets: Optional[List[float]] = None, labels: Optional[List[str]] = None):
        super().__init__(name, description, labels)
        self.buckets = sorted(buckets or self.DEFAULT_BUCKETS)
        self._counts: Dict[str, List[int]] = {}
        self._sums: Dict[str, float] = defaultdict(float)
        self._totals: Dict[str, int] = defaultdict(int)

    def observe(self, value: float, **label_values):
        """Observe a value in the histogram"""
        with self._lock:
            key = self._make_key(label_values)
            counts = self._counts.setdefault(key, [0] * len(self.buckets))
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    counts[i] += 1
            self._sums[key] += value
            self._totals[key] += 1

    def get(self, **label_values) -> Dict[str, float]:
        with self._lock:
            key = self._make_key(label_values)
            return {'count': self._totals.get(key, 0), 'sum': self._sums.get(key, 0.0)}

    def samples(self) -> List[str]:
        lines = []
        with self._lock:
            for key, counts in self._counts.items():
                prefix = f"{key}," if key else ""
                suffix = f"{{{key}}}" if key else ""
                for bound, count in zip(self.buckets, counts):
                    lines.append(f'{self.name}_bucket{{{prefix}le="{bound}"}} {count}')
                lines.append(f'{self.name}_bucket{{{prefix}le="+Inf"}} {self._totals[key]}')
                lines.append(f"{self.name}_count{suffix} {self._totals[key]}")
                lines.append(f"{self.name}_sum{suffix} {self._sums[key]}")
        return lines


class MetricsRegistry:
    """Centralized metrics registry"""

    def __init__(self):
        self._metrics: Dict[str, _LabelledMetric] = {}
        self._lock = threading.Lock()

    def _register(self, name: str, factory: Callable[[], _LabelledMetric]) -> Any:
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = factory()
            return self._metrics[name]

    def register_counter(self, name: str, description: str = "", labels: Optional[List[str]] = None) -> Counter:
        return self._register(name, lambda: Counter(name, description, labels))

    def register_gauge(self, name: str, description: str = "", labels: Optional[List[str]] = None) -> Gauge:
        return self._register(name, lambda: Gauge(name, description, labels))

    def register_histogram(self, name: str, description: str = "",
                           buckets: Optional[List[float]] = None,
                           labels: Optional[List[str]] = None) -> Histogram:
        return self._register(name, lambda: Histogram(name, description, buckets, labels))

    def get_metric(self, name: str) -> Optional[_LabelledMetric]:
        with self._lock:
            return self._metrics.get(name)

    def get_all_metrics(self) -> Dict[str, _LabelledMetric]:
        with self._lock:
            return self._metrics.copy()

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format"""
        lines = []
        for name, metric in self.get_all_metrics().items():
            if metric.description:
                lines.append(f"# HELP {name} {metric.description}")
            lines.append(f"# TYPE {name} {metric.kind}")
            lines.extend(metric.samples())
        return "\n".join(lines) + "\n"


metrics_registry = MetricsRegistry()


def get_mirror_metrics() -> Dict[str, Any]:
    """Get predefined metrics for the mirror"""
    return {
        'upstream_requests_total': metrics_registry.register_counter(
            "upstream_requests_total",
            "Total number of NVD API page requests",
            ["status"]
        ),
        'upstream_request_duration': metrics_registry.register_histogram(
            "upstream_request_duration_seconds",
            "NVD API page request duration in seconds",
            labels=["status"]
        ),
        'sync_runs_total': metrics_registry.register_counter(
            "sync_runs_total",
            "Total number of sync runs",
            ["mode", "status"]
        ),
        'cves_upserted_total': metrics_registry.register_counter(
            "cves_upserted_total",
            "Total number of CVE records written",
            ["mode"]
        ),
        'cves_skipped_total': metrics_registry.register_counter(
            "cves_skipped_total",
            "Upstream items skipped because they could not be normalized",
            ["mode"]
        ),
        'queries_total': metrics_registry.register_counter(
            "queries_total",
            "Total number of API queries",
            ["endpoint", "status"]
        ),
        'query_duration': metrics_registry.register_histogram(
            "query_duration_seconds",
            "API query duration in seconds",
            buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            labels=["endpoint"]
        ),
        'last_sync_timestamp': metrics_registry.register_gauge(
            "last_sync_success_timestamp_seconds",
            "Unix time of the last successful sync run",
            ["mode"]
        ),
    }


def track_upstream_metrics(func: Callable) -> Callable:
    """Decorator recording count and latency of upstream page requests"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        status = "success"
        try:
            return func(*args, **kwargs)
        except Exception:
            status = "error"
            raise
        finally:
            metrics = get_mirror_metrics()
            metrics['upstream_requests_total'].inc(1, status=status)
            metrics['upstream_request_duration'].observe(time.time() - start_time, status=status)

    return wrapper


def record_query(endpoint: str, status: int, duration: float) -> None:
    metrics = get_mirror_metrics()
    metrics['queries_total'].inc(1, endpoint=endpoint, status=status)
    metrics['query_duration'].observe(duration, endpoint=endpoint)


def export_metrics() -> str:
    """Export all metrics in Prometheus format"""
    get_mirror_metrics()
    return metrics_registry.export_prometheus()
