"""Shared cluster health state and its coordination rules.

A single TransitionContext is created per dashboard session and handed to
both the request executor and the health monitor. Setting the transitioning
flag is open to anyone through request_transition(); clearing it happens only
through record_probe_success(), which the monitor calls after a healthy probe.
A stale successful data fetch can therefore never hide the notification while
the probe still fails.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from ..monitoring import metrics

logger = logging.getLogger(__name__)

TransitionListener = Callable[[bool], None]


@dataclass
class HealthState:
    """Probe accounting and transition flag."""

    failure_threshold: int = 2
    consecutive_failures: int = 0
    transitioning: bool = False
    checking: bool = False  # A probe is in flight
    transition_started: Optional[datetime] = None
    transition_reason: Optional[str] = None


class TransitionReporter(Protocol):
    """The narrow view of the context that request callers receive."""

    def request_transition(self, reason: str = "") -> bool: ...

    @property
    def is_transitioning(self) -> bool: ...


class TransitionContext:
    """Owner of the process-wide HealthState.

    Usage:
        context = TransitionContext(failure_threshold=2)
        unsubscribe = context.subscribe(lambda active: print(active))

        context.request_transition("HTTP 503")  # from the executor
        context.record_probe_success()          # from the monitor only
    """

    def __init__(self, failure_threshold: int = 2):
        """Initialize context.

        Args:
            failure_threshold: Consecutive probe failures before transitioning
        """
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        self._state = HealthState(failure_threshold=failure_threshold)
        self._listeners: list[TransitionListener] = []

    @property
    def is_transitioning(self) -> bool:
        """Check if a cluster transition is in progress."""
        return self._state.transitioning

    @property
    def checking(self) -> bool:
        return self._state.checking

    @property
    def consecutive_failures(self) -> int:
        return self._state.consecutive_failures

    @property
    def failure_threshold(self) -> int:
        return self._state.failure_threshold

    def snapshot(self) -> HealthState:
        """Return a copy of the current state."""
        return replace(self._state)

    def subscribe(self, listener: TransitionListener) -> Callable[[], None]:
        """Register a listener called with the new flag on every change.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def request_transition(self, reason: str = "") -> bool:
        """Mark the cluster as transitioning.

        Idempotent. Leaves probe accounting untouched.

        Returns:
            True if this call changed the state
        """
        if self._state.transitioning:
            return False
        logger.warning(f"Cluster transition requested: {reason or 'request failure'}")
        metrics.cluster_transitions_total.labels(source="request").inc()
        self._set_transitioning(True, reason)
        return True

    # Probe accounting. Called by ClusterHealthMonitor only.

    def begin_check(self) -> bool:
        """Claim the probe slot.

        Returns:
            False if another probe is already in flight
        """
        if self._state.checking:
            return False
        self._state.checking = True
        return True

    def end_check(self) -> None:
        """Release the probe slot."""
        self._state.checking = False

    def record_probe_success(self) -> bool:
        """Record a healthy probe and clear any transition.

        Returns:
            True if a transition was cleared
        """
        self._state.consecutive_failures = 0
        metrics.consecutive_probe_failures.set(0)
        if not self._state.transitioning:
            return False
        self._set_transitioning(False)
        return True

    def record_probe_failure(self) -> bool:
        """Record a failed probe.

        Returns:
            True if this failure started a transition
        """
        self._state.consecutive_failures += 1
        metrics.consecutive_probe_failures.set(self._state.consecutive_failures)
        if (
            self._state.consecutive_failures >= self._state.failure_threshold
            and not self._state.transitioning
        ):
            metrics.cluster_transitions_total.labels(source="probe").inc()
            self._set_transitioning(
                True,
                f"{self._state.consecutive_failures} consecutive probe failures",
            )
            return True
        return False

    def _set_transitioning(self, active: bool, reason: Optional[str] = None) -> None:
        self._state.transitioning = active
        if active:
            self._state.transition_started = datetime.now(timezone.utc)
            self._state.transition_reason = reason
        else:
            self._state.transition_started = None
            self._state.transition_reason = None
        metrics.cluster_transitioning.set(1 if active else 0)

        for listener in list(self._listeners):
            try:
                listener(active)
            except Exception as e:
                logger.error(f"Transition listener failed: {e}")

    def get_status(self) -> dict:
        """Get health state as a dictionary."""
        state = self._state
        return {
            "transitioning": state.transitioning,
            "consecutive_failures": state.consecutive_failures,
            "failure_threshold": state.failure_threshold,
            "checking": state.checking,
            "transition_started": (
                state.transition_started.isoformat() if state.transition_started else None
            ),
            "transition_reason": state.transition_reason,
        }
