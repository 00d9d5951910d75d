"""Tests for DashboardSession wiring."""

import asyncio
import pytest
import httpx
from unittest.mock import Mock

from trafficwatch.config import Settings
from trafficwatch.feeds import FeedSpec
from trafficwatch.resilience.retry import RetryConfig
from trafficwatch.session import DashboardSession


@pytest.fixture
def fast_settings():
    """Settings with millisecond schedules."""
    return Settings(
        api_gateway_url="http://gateway.test",
        health_check_interval=0.01,
        health_initial_delay=0.0,
        health_probe_timeout=1.0,
        health_failure_threshold=2,
        poll_interval=0.01,
        request_timeout=1.0,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        retry_max_attempts=2,
    )


def gateway(health_status=200, data_status=200):
    """Handler for a gateway whose health and data status can be changed."""
    state = {"health": health_status, "data": data_status}

    def handler(request):
        if request.url.path == "/health":
            return httpx.Response(state["health"], text="OK")
        return httpx.Response(state["data"], json=[{"path": request.url.path}])

    handler.state = state
    return handler


@pytest.mark.unit
class TestDashboardSession:
    """Test DashboardSession."""

    def test_shared_context(self, fast_settings, make_client):
        """Test executor and monitor share one transition context."""
        session = DashboardSession(fast_settings, client=make_client(gateway()))

        assert session.executor.transitions is session.context
        assert session.monitor.context is session.context
        assert session.context.failure_threshold == 2
        assert session.executor.default_config.max_attempts == 2

    def test_duplicate_feed_fails(self, fast_settings, make_client):
        """Test adding a feed twice raises error."""
        session = DashboardSession(fast_settings, client=make_client(gateway()))
        session.add_feed(FeedSpec(name="stats", path="/api/accidents/stats"))

        with pytest.raises(ValueError, match="already exists"):
            session.add_feed(FeedSpec(name="stats", path="/api/accidents/stats"))

    def test_default_feeds_use_poll_interval(self, fast_settings, make_client):
        """Test default feeds adopt the configured interval."""
        session = DashboardSession(fast_settings, client=make_client(gateway()))
        session.add_default_feeds()

        assert set(session.pollers) == {"accidents", "accident_stats", "tollgate_traffic", "road_summary"}
        assert all(p.spec.interval == 0.01 for p in session.pollers.values())

    @pytest.mark.asyncio
    async def test_start_and_stop(self, fast_settings, make_client):
        """Test feeds are polled while running and stop cleanly."""
        session = DashboardSession(fast_settings, client=make_client(gateway()))
        on_data = Mock()
        session.add_default_feeds(on_data=on_data)

        await session.start()
        await asyncio.sleep(0.1)
        await session.stop()
        await session.stop()  # Idempotent

        fed = {c.args[0] for c in on_data.call_args_list}
        assert fed == {"accidents", "accident_stats", "tollgate_traffic", "road_summary"}
        assert session.running is False
        assert session.monitor.is_running is False

    @pytest.mark.asyncio
    async def test_failover_suppresses_errors(self, fast_settings, make_client):
        """Test errors stay hidden from the UI while the cluster fails over."""
        handler = gateway(health_status=503, data_status=503)
        indicator = Mock()
        session = DashboardSession(fast_settings, indicator=indicator, client=make_client(handler))
        on_error = Mock()
        session.add_feed(
            FeedSpec(
                name="road_summary",
                path="/api/road/summary",
                interval=0.01,
                retry=RetryConfig(timeout=1.0, base_delay=0.0, max_delay=0.0, max_attempts=1),
                initial_retry=RetryConfig(timeout=1.0, base_delay=0.0, max_delay=0.0, max_attempts=1),
            ),
            on_error=on_error,
        )

        async with session:
            await asyncio.sleep(0.1)
            assert session.is_transitioning is True
            indicator.show.assert_called_once()

            # Healthy cluster behind GSLB again
            handler.state.update(health=200, data=200)
            await asyncio.sleep(0.1)
            assert session.is_transitioning is False

        on_error.assert_not_called()
        indicator.hide.assert_called_once()

    @pytest.mark.asyncio
    async def test_get_status(self, fast_settings, make_client):
        """Test status covers health and every feed."""
        session = DashboardSession(fast_settings, client=make_client(gateway()))
        session.add_feed(FeedSpec(name="stats", path="/api/accidents/stats"))

        status = session.get_status()

        assert status["running"] is False
        assert status["health"]["transitioning"] is False
        assert status["feeds"]["stats"]["polls"] == 0
