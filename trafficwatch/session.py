"""Dashboard session wiring the executor, the health monitor and the feed pollers."""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from .config import Settings, settings as default_settings
from .feeds import DEFAULT_FEEDS, DataHandler, ErrorHandler, FeedPoller, FeedSpec
from .health.indicator import TransitionIndicator
from .health.monitor import ClusterHealthMonitor
from .health.state import TransitionContext
from .resilience.executor import RequestExecutor
from .resilience.timeout import CancellationToken

logger = logging.getLogger(__name__)


class DashboardSession:
    """Lifetime of one dashboard page: shared state, monitor and pollers."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        indicator: Optional[TransitionIndicator] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize session.

        Args:
            settings: Settings to use (defaults to environment settings)
            indicator: Transition notification (defaults to logging)
            client: Shared HTTP client, e.g. with a mock transport in tests
        """
        self.settings = settings or default_settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=self.settings.api_gateway_url,
            timeout=None,
            follow_redirects=True,
        )
        self.context = TransitionContext(
            failure_threshold=self.settings.health_failure_threshold,
        )
        self.executor = RequestExecutor(
            client=self.client,
            transitions=self.context,
            default_config=self.settings.default_retry_config(),
        )
        self.monitor = ClusterHealthMonitor(
            self.context,
            client=self.client,
            indicator=indicator,
            health_path=self.settings.health_path,
            check_interval=self.settings.health_check_interval,
            initial_delay=self.settings.health_initial_delay,
            probe_timeout=self.settings.health_probe_timeout,
        )
        self.pollers: Dict[str, FeedPoller] = {}
        self.running = False
        self._token: Optional[CancellationToken] = None
        self._tasks: list[asyncio.Task] = []

    @property
    def is_transitioning(self) -> bool:
        """Whether callers should suppress error display right now."""
        return self.context.is_transitioning

    def add_feed(
        self,
        spec: FeedSpec,
        on_data: Optional[DataHandler] = None,
        on_error: Optional[ErrorHandler] = None,
    ) -> FeedPoller:
        """Register a feed to poll.

        Args:
            spec: Feed definition
            on_data: Called with (feed name, payload) on every successful poll
            on_error: Called with (feed name, error) outside cluster transitions

        Returns:
            Created poller
        """
        if spec.name in self.pollers:
            raise ValueError(f"Feed {spec.name} already exists")

        poller = FeedPoller(spec, self.executor, self.context, on_data, on_error)
        self.pollers[spec.name] = poller
        logger.info(f"Added feed: {spec.name} ({spec.path})")
        return poller

    def add_default_feeds(
        self,
        on_data: Optional[DataHandler] = None,
        on_error: Optional[ErrorHandler] = None,
        feeds: Iterable[FeedSpec] = DEFAULT_FEEDS,
    ) -> None:
        """Register the standard dashboard feeds at the configured poll interval."""
        for spec in feeds:
            if spec.interval != self.settings.poll_interval:
                spec = FeedSpec(
                    name=spec.name,
                    path=spec.path,
                    interval=self.settings.poll_interval,
                    params=spec.params,
                    retry=spec.retry,
                    initial_params=spec.initial_params,
                    initial_retry=spec.initial_retry,
                )
            self.add_feed(spec, on_data, on_error)

    async def start(self) -> None:
        """Start health monitoring and every registered poller."""
        if self.running:
            logger.warning("Dashboard session already running")
            return

        self.running = True
        self._token = CancellationToken()
        self.monitor.start()
        self._tasks = [
            asyncio.create_task(poller.run(self._token), name=f"feed:{name}")
            for name, poller in self.pollers.items()
        ]
        logger.info(f"Dashboard session started with {len(self._tasks)} feeds")

    async def stop(self) -> None:
        """Cancel pollers and the monitor. Idempotent."""
        if not self.running:
            return

        self.running = False
        if self._token is not None:
            self._token.cancel("session stopped")
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._token = None
        await self.monitor.stop()
        logger.info("Dashboard session stopped")

    async def aclose(self) -> None:
        """Stop the session and release the HTTP client."""
        await self.stop()
        await self.monitor.aclose()
        await self.executor.aclose()
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "DashboardSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def get_status(self) -> Dict[str, Any]:
        """Get status of the monitor and all feeds."""
        return {
            "running": self.running,
            "health": self.monitor.get_status(),
            "feeds": {name: poller.get_status() for name, poller in self.pollers.items()},
        }
