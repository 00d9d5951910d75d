"""In-process metrics for the dashboard resilience layer.

Rendered in Prometheus text format by render_metrics():
- Request metrics: request_attempts_total, request_failures_total, request_latency_seconds
- Probe metrics: probe_results_total, consecutive_probe_failures
- Transition metrics: cluster_transitions_total, cluster_transitioning
"""

import threading
from typing import Optional


class _Metric:
    """Shared storage and text rendering for labelled metrics."""

    metric_type = "untyped"

    def __init__(self, name: str, description: str, labels: Optional[list[str]] = None):
        self.name = name
        self.description = description
        self._label_names = labels or []
        self._values: dict[tuple, float] = {}
        self._lock = threading.Lock()

    def _key(self, **kwargs) -> tuple:
        return tuple(str(kwargs.get(l, "")) for l in self._label_names)

    def _add(self, key: tuple, value: float) -> None:
        with self._lock:
            self._values[key] = self._values.get(key, 0) + value

    def _set(self, key: tuple, value: float) -> None:
        with self._lock:
            self._values[key] = value

    def get(self, **kwargs) -> float:
        """Get the current value for a label set (0 if never touched)."""
        with self._lock:
            return self._values.get(self._key(**kwargs), 0)

    def get_all(self) -> dict[tuple, float]:
        """Get all values."""
        with self._lock:
            return self._values.copy()

    def reset(self) -> None:
        with self._lock:
            self._values.clear()

    def _format_labels(self, label_values: tuple, extra: str = "") -> str:
        parts = [f'{l}="{v}"' for l, v in zip(self._label_names, label_values)]
        if extra:
            parts.append(extra)
        return "{" + ",".join(parts) + "}" if parts else ""

    def to_prometheus(self) -> str:
        """Format as Prometheus text."""
        lines = [
            f"# HELP {self.name} {self.description}",
            f"# TYPE {self.name} {self.metric_type}",
        ]
        for label_values, value in sorted(self.get_all().items()):
            lines.append(f"{self.name}{self._format_labels(label_values)} {value}")
        return "\n".join(lines)


class Counter(_Metric):
    """A counter metric that can only increase."""

    metric_type = "counter"

    def labels(self, **kwargs) -> "_Bound":
        return _Bound(self, self._key(**kwargs))

    def inc(self, value: float = 1.0) -> None:
        if value < 0:
            raise ValueError("Counters can only increase")
        self._add((), value)


class Gauge(_Metric):
    """A gauge metric that can increase or decrease."""

    metric_type = "gauge"

    def labels(self, **kwargs) -> "_Bound":
        return _Bound(self, self._key(**kwargs))

    def set(self, value: float) -> None:
        self._set((), value)

    def inc(self, value: float = 1.0) -> None:
        self._add((), value)

    def dec(self, value: float = 1.0) -> None:
        self._add((), -value)


class _Bound:
    """Metric with specific label values."""

    def __init__(self, parent: _Metric, label_values: tuple):
        self._parent = parent
        self._label_values = label_values

    def inc(self, value: float = 1.0) -> None:
        if isinstance(self._parent, Counter) and value < 0:
            raise ValueError("Counters can only increase")
        self._parent._add(self._label_values, value)

    def set(self, value: float) -> None:
        if isinstance(self._parent, Counter):
            raise TypeError("Counters cannot be set")
        self._parent._set(self._label_values, value)


class Histogram:
    """A histogram metric for tracking latency distributions.

    Keeps a running count per bucket plus sum and count per label set, so
    storage does not grow with the number of observations.
    """

    DEFAULT_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0)

    def __init__(
        self,
        name: str,
        description: str,
        labels: Optional[list[str]] = None,
        buckets: Optional[tuple] = None,
    ):
        self.name = name
        self.description = description
        self._label_names = labels or []
        self.buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        self._series: dict[tuple, dict] = {}
        self._lock = threading.Lock()

    def labels(self, **kwargs) -> "HistogramWithLabels":
        """Return a histogram with specific labels."""
        label_values = tuple(str(kwargs.get(l, "")) for l in self._label_names)
        return HistogramWithLabels(self, label_values)

    def observe(self, value: float) -> None:
        """Record an observation."""
        self._observe_labels((), value)

    def _observe_labels(self, label_values: tuple, value: float) -> None:
        with self._lock:
            series = self._series.get(label_values)
            if series is None:
                series = {"buckets": [0] * len(self.buckets), "sum": 0.0, "count": 0}
                self._series[label_values] = series
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    series["buckets"][i] += 1
            series["sum"] += value
            series["count"] += 1

    def get_all(self) -> dict[tuple, dict]:
        """Get cumulative bucket counts, sum and count per label set."""
        with self._lock:
            return {
                k: {"buckets": list(v["buckets"]), "sum": v["sum"], "count": v["count"]}
                for k, v in self._series.items()
            }

    def reset(self) -> None:
        with self._lock:
            self._series.clear()

    def to_prometheus(self) -> str:
        """Format as Prometheus text."""
        lines = [
            f"# HELP {self.name} {self.description}",
            f"# TYPE {self.name} histogram",
        ]
        for label_values, series in sorted(self.get_all().items()):
            prefix = ",".join(f'{l}="{v}"' for l, v in zip(self._label_names, label_values))
            sep = "," if prefix else ""
            for bound, count in zip(self.buckets, series["buckets"]):
                lines.append(f'{self.name}_bucket{{{prefix}{sep}le="{bound}"}} {count}')
            lines.append(f'{self.name}_bucket{{{prefix}{sep}le="+Inf"}} {series["count"]}')
            suffix = f"{{{prefix}}}" if prefix else ""
            lines.append(f"{self.name}_sum{suffix} {series['sum']}")
            lines.append(f"{self.name}_count{suffix} {series['count']}")
        return "\n".join(lines)


class HistogramWithLabels:
    """Histogram with specific label values."""

    def __init__(self, parent: Histogram, label_values: tuple):
        self._parent = parent
        self._label_values = label_values

    def observe(self, value: float) -> None:
        """Record an observation."""
        self._parent._observe_labels(self._label_values, value)


# =============================================================================
# Request Metrics
# =============================================================================

request_attempts_total = Counter(
    name="trafficwatch_request_attempts_total",
    description="Total number of request attempts by outcome",
    labels=["outcome"],
)

request_failures_total = Counter(
    name="trafficwatch_request_failures_total",
    description="Total number of requests that failed after retries",
    labels=["kind"],
)

request_latency_seconds = Histogram(
    name="trafficwatch_request_latency_seconds",
    description="Latency of individual request attempts in seconds",
    labels=["outcome"],
)


# =============================================================================
# Probe and Transition Metrics
# =============================================================================

probe_results_total = Counter(
    name="trafficwatch_probe_results_total",
    description="Health probe results",
    labels=["result"],
)

consecutive_probe_failures = Gauge(
    name="trafficwatch_consecutive_probe_failures",
    description="Current run of failed health probes",
)

cluster_transitions_total = Counter(
    name="trafficwatch_cluster_transitions_total",
    description="Number of cluster transitions started",
    labels=["source"],
)

cluster_transitioning = Gauge(
    name="trafficwatch_cluster_transitioning",
    description="1 while a cluster transition is in progress",
)


_ALL_METRICS = [
    request_attempts_total,
    request_failures_total,
    request_latency_seconds,
    probe_results_total,
    consecutive_probe_failures,
    cluster_transitions_total,
    cluster_transitioning,
]


def render_metrics() -> str:
    """Render all metrics in Prometheus text format."""
    return "\n\n".join(metric.to_prometheus() for metric in _ALL_METRICS)


def reset_metrics() -> None:
    """Clear every metric value."""
    for metric in _ALL_METRICS:
        metric.reset()
