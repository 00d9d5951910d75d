"""trafficwatch: client-side resilience for the multi-cluster traffic dashboard."""

__version__ = "0.1.0"

from .health import ClusterHealthMonitor, TransitionContext
from .resilience import RequestExecutor, RetryConfig
from .session import DashboardSession

__all__ = [
    "RequestExecutor",
    "RetryConfig",
    "ClusterHealthMonitor",
    "TransitionContext",
    "DashboardSession",
]
