"""Cluster health layer for the traffic dashboard.

This module provides:
- Shared transition state with set/clear ownership rules
- Periodic liveness probing with consecutive-failure tracking
- The transition indicator capability
"""

from .indicator import LogIndicator, TransitionIndicator
from .monitor import ClusterHealthMonitor, ProbeResult
from .state import HealthState, TransitionContext, TransitionReporter

__all__ = [
    "ClusterHealthMonitor",
    "ProbeResult",
    "HealthState",
    "TransitionContext",
    "TransitionReporter",
    "TransitionIndicator",
    "LogIndicator",
]
