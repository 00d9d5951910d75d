"""Monitoring module for the dashboard resilience layer.

This module provides:
- Counters and gauges for request attempts, probes and transitions
- Prometheus text rendering
"""

from . import metrics
from .metrics import (
    cluster_transitioning,
    cluster_transitions_total,
    consecutive_probe_failures,
    probe_results_total,
    render_metrics,
    request_attempts_total,
    request_failures_total,
    request_latency_seconds,
    reset_metrics,
)

__all__ = [
    "metrics",
    "request_attempts_total",
    "request_failures_total",
    "request_latency_seconds",
    "probe_results_total",
    "consecutive_probe_failures",
    "cluster_transitions_total",
    "cluster_transitioning",
    "render_metrics",
    "reset_metrics",
]
