"""Tests for the shared transition context."""

import logging
import pytest
from unittest.mock import Mock

from trafficwatch.health.state import HealthState, TransitionContext
from trafficwatch.monitoring import metrics


class TestHealthState:
    """Test HealthState defaults."""

    def test_initial_state(self):
        """Test a fresh state is healthy and idle."""
        state = HealthState()
        assert state.consecutive_failures == 0
        assert state.failure_threshold == 2
        assert state.transitioning is False
        assert state.checking is False


class TestTransitionContext:
    """Test transition ownership rules."""

    def test_invalid_threshold(self):
        """Test threshold must be positive."""
        with pytest.raises(ValueError):
            TransitionContext(failure_threshold=0)

    def test_request_transition_is_idempotent(self, context):
        """Test only the first request changes state."""
        assert context.request_transition("HTTP 503") is True
        assert context.request_transition("HTTP 503") is False
        assert context.is_transitioning is True

    def test_request_transition_leaves_counter(self, context):
        """Test request-side transitions never count as probe failures."""
        context.request_transition("timeout")
        context.request_transition("timeout")
        assert context.consecutive_failures == 0

    def test_threshold_sequence(self, context):
        """Test fail, fail, succeed with threshold 2."""
        observed = [context.is_transitioning]

        context.record_probe_failure()
        observed.append(context.is_transitioning)
        context.record_probe_failure()
        observed.append(context.is_transitioning)
        context.record_probe_success()
        observed.append(context.is_transitioning)

        assert observed == [False, False, True, False]
        assert context.consecutive_failures == 0

    def test_failure_below_threshold(self):
        """Test failures below the threshold do not transition."""
        context = TransitionContext(failure_threshold=3)
        assert context.record_probe_failure() is False
        assert context.record_probe_failure() is False
        assert context.is_transitioning is False
        assert context.record_probe_failure() is True
        assert context.is_transitioning is True

    def test_failures_after_transition_do_not_restart_it(self, context):
        """Test further failures keep counting without a second transition."""
        context.record_probe_failure()
        assert context.record_probe_failure() is True
        assert context.record_probe_failure() is False
        assert context.consecutive_failures == 3

    def test_probe_failure_after_request_transition(self, context):
        """Test a request-started transition is not started twice by probes."""
        listener = Mock()
        context.subscribe(listener)
        context.request_transition("HTTP 502")

        context.record_probe_failure()
        context.record_probe_failure()

        listener.assert_called_once_with(True)

    def test_success_resets_counter_without_transition(self, context):
        """Test a healthy probe resets the failure run."""
        context.record_probe_failure()
        assert context.record_probe_success() is False
        assert context.consecutive_failures == 0

    def test_success_clears_request_transition(self, context):
        """Test a healthy probe clears a request-started transition."""
        context.request_transition("HTTP 503")
        assert context.record_probe_success() is True
        assert context.is_transitioning is False

    def test_check_guard(self, context):
        """Test only one probe may hold the check slot."""
        assert context.begin_check() is True
        assert context.begin_check() is False
        assert context.checking is True
        context.end_check()
        assert context.begin_check() is True

    def test_snapshot_is_a_copy(self, context):
        """Test snapshots cannot mutate shared state."""
        snapshot = context.snapshot()
        snapshot.transitioning = True
        assert context.is_transitioning is False

    def test_transition_metadata(self, context):
        """Test status reports when and why the transition started."""
        context.request_transition("HTTP 503")
        status = context.get_status()

        assert status["transitioning"] is True
        assert status["transition_reason"] == "HTTP 503"
        assert status["transition_started"] is not None

        context.record_probe_success()
        assert context.get_status()["transition_started"] is None

    def test_metrics_updated(self, context):
        """Test transition metrics follow the flag."""
        context.request_transition("HTTP 503")
        assert metrics.cluster_transitioning.get() == 1
        assert metrics.cluster_transitions_total.get(source="request") == 1

        context.record_probe_success()
        assert metrics.cluster_transitioning.get() == 0


class TestSubscriptions:
    """Test subscribe/notify."""

    def test_listener_called_on_changes_only(self, context):
        """Test listeners see each real change once."""
        listener = Mock()
        context.subscribe(listener)

        context.request_transition()
        context.request_transition()
        context.record_probe_success()
        context.record_probe_success()

        assert [c.args[0] for c in listener.call_args_list] == [True, False]

    def test_unsubscribe(self, context):
        """Test unsubscribed listeners are not called."""
        listener = Mock()
        unsubscribe = context.subscribe(listener)
        unsubscribe()
        unsubscribe()  # Second call is harmless

        context.request_transition()

        listener.assert_not_called()

    def test_failing_listener_isolated(self, context, caplog):
        """Test a raising listener does not block others."""
        bad = Mock(side_effect=RuntimeError("render failed"))
        good = Mock()
        context.subscribe(bad)
        context.subscribe(good)

        with caplog.at_level(logging.ERROR):
            context.request_transition()

        good.assert_called_once_with(True)
        assert context.is_transitioning is True
        assert any("render failed" in r.message for r in caplog.records)
