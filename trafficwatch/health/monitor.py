"""Cluster health monitor for GSLB failover.

Probes the liveness endpoint on a fixed period and tracks consecutive
failures. When the threshold is crossed it marks the cluster as
transitioning so the UI can suppress error noise while GSLB redirects
traffic to the healthy cluster; the next healthy probe clears it.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional

import httpx

from ..monitoring import metrics
from ..resilience.timeout import (
    CancellationToken,
    DeadlineExceededError,
    OperationCancelledError,
    cancellable_sleep,
    race_with_timeout,
)
from .indicator import LogIndicator, TransitionIndicator
from .state import TransitionContext

logger = logging.getLogger(__name__)


class ProbeResult(str, Enum):
    """Outcome of a single probe tick."""

    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    SKIPPED = "SKIPPED"  # Previous probe still in flight


class ClusterHealthMonitor:
    """Periodic liveness prober that owns the transition indicator.

    Usage:
        monitor = ClusterHealthMonitor(context, base_url="https://traffic.example")
        monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        context: TransitionContext,
        *,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        indicator: Optional[TransitionIndicator] = None,
        health_path: str = "/health",
        check_interval: float = 5.0,
        initial_delay: float = 5.0,
        probe_timeout: float = 3.0,
    ):
        """Initialize monitor.

        Args:
            context: Shared transition context
            base_url: Base URL of the cluster currently serving the client
            client: Shared HTTP client (the monitor will not close it)
            indicator: Notification driven by the transitioning flag
            health_path: Liveness endpoint
            check_interval: Seconds between probe ticks
            initial_delay: Grace period before the first probe
            probe_timeout: Per-probe deadline in seconds
        """
        self.context = context
        self.indicator = indicator or LogIndicator()
        self.health_path = health_path
        self.check_interval = check_interval
        self.initial_delay = initial_delay
        self.probe_timeout = probe_timeout

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url or "", timeout=None)
        self._token: Optional[CancellationToken] = None
        self._schedule: Optional[asyncio.Task] = None
        self._probes: set[asyncio.Task] = set()
        self._unsubscribe = context.subscribe(self._on_transition_change)

    @property
    def is_running(self) -> bool:
        """Check if the probe schedule is active."""
        return self._schedule is not None and not self._schedule.done()

    def start(self) -> None:
        """Schedule the initial probe and the periodic probes.

        Must be called from a running event loop.
        """
        if self.is_running:
            logger.warning("[HealthCheck] Health monitor already running")
            return

        logger.info("[HealthCheck] Starting health monitor...")
        self._token = CancellationToken()
        self._schedule = asyncio.get_running_loop().create_task(self._run(self._token))

    async def stop(self) -> None:
        """Cancel the schedule and any in-flight probe.

        Idempotent and safe to call without start().
        """
        if self._token is None:
            return

        self._token.cancel("monitor stopped")
        pending = [t for t in [self._schedule, *self._probes] if t is not None]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        self._token = None
        self._schedule = None
        self._probes.clear()
        logger.info("[HealthCheck] Health monitor stopped")

    async def aclose(self) -> None:
        """Stop probing and release resources."""
        await self.stop()
        self._unsubscribe()
        if self._owns_client:
            await self._client.aclose()

    async def _run(self, token: CancellationToken) -> None:
        try:
            await cancellable_sleep(self.initial_delay, token)
            while True:
                self._tick()
                await cancellable_sleep(self.check_interval, token)
        except OperationCancelledError:
            return

    def _tick(self) -> None:
        """Fire one probe tick without waiting for it.

        Ticks are not buffered: a tick that lands while a probe is in flight
        is dropped by the checking guard.
        """
        task = asyncio.get_running_loop().create_task(self.probe_once())
        self._probes.add(task)
        task.add_done_callback(self._probes.discard)

    async def probe_once(self) -> ProbeResult:
        """Run a single probe and update the shared state.

        Returns:
            Probe result
        """
        if not self.context.begin_check():
            logger.debug("[HealthCheck] Previous probe still in flight, skipping tick")
            metrics.probe_results_total.labels(result="skipped").inc()
            return ProbeResult.SKIPPED

        try:
            healthy = await self._check()
            if healthy:
                if self.context.record_probe_success():
                    logger.info("[HealthCheck] Cluster transition completed - service restored")
                else:
                    logger.debug("[HealthCheck] Cluster healthy")
                result = ProbeResult.HEALTHY
            else:
                self._handle_failure()
                result = ProbeResult.DEGRADED
        finally:
            self.context.end_check()

        metrics.probe_results_total.labels(result=result.value.lower()).inc()
        return result

    async def _check(self) -> bool:
        """Call the liveness endpoint.

        Returns:
            True on a 2xx within the probe deadline
        """
        try:
            response = await race_with_timeout(
                self._client.get(self.health_path, headers={"Cache-Control": "no-cache"}),
                self.probe_timeout,
                self._token,
                error_message="Health probe timed out",
            )
        except DeadlineExceededError as e:
            logger.debug(f"[HealthCheck] {e}")
            return False
        except httpx.HTTPError as e:
            logger.debug(f"[HealthCheck] Probe request failed: {e}")
            return False

        return response.is_success

    def _handle_failure(self) -> None:
        started = self.context.record_probe_failure()
        logger.warning(
            f"[HealthCheck] Health check failed "
            f"({self.context.consecutive_failures}/{self.context.failure_threshold})"
        )
        if started:
            logger.warning("[HealthCheck] Cluster transition detected - showing notification")

    def _on_transition_change(self, active: bool) -> None:
        try:
            if active:
                self.indicator.show()
            else:
                self.indicator.hide()
        except Exception as e:
            logger.error(f"[HealthCheck] Transition indicator failed: {e}")

    def get_status(self) -> dict[str, Any]:
        """Get monitor status.

        Returns:
            Status dictionary
        """
        status = self.context.get_status()
        status.update(
            {
                "running": self.is_running,
                "health_path": self.health_path,
                "check_interval": self.check_interval,
                "probe_timeout": self.probe_timeout,
            }
        )
        return status
