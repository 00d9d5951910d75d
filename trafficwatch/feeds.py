"""Polling loops for the dashboard's data feeds."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .health.state import TransitionReporter
from .resilience.executor import RequestExecutor, RequestSpec
from .resilience.retry import INITIAL_LOAD_RETRY, POLLING_RETRY, RequestFailure, RetryConfig
from .resilience.timeout import CancellationToken, OperationCancelledError, cancellable_sleep

logger = logging.getLogger(__name__)

DataHandler = Callable[[str, Any], None]
ErrorHandler = Callable[[str, Exception], None]
MergeStrategy = Callable[[Any, Any], Any]


def merge_newest_first(previous: Any, payload: Any, key: str = "id") -> Any:
    """Put unseen items from payload in front of the previous list.

    Items whose key is already present are skipped, so a feed that polls the
    latest record keeps the history loaded at startup.
    """
    if not isinstance(previous, list) or not isinstance(payload, list):
        return payload

    seen = {item.get(key) for item in previous if isinstance(item, dict)}
    fresh = []
    for item in payload:
        item_key = item.get(key) if isinstance(item, dict) else None
        if item_key is not None and item_key in seen:
            continue
        seen.add(item_key)
        fresh.append(item)
    return fresh + previous


@dataclass(frozen=True)
class FeedSpec:
    """A polled data endpoint."""

    name: str
    path: str
    interval: float = 10.0
    params: dict[str, Any] = field(default_factory=dict)
    retry: RetryConfig = POLLING_RETRY
    initial_params: Optional[dict[str, Any]] = None  # Defaults to params
    initial_retry: RetryConfig = INITIAL_LOAD_RETRY
    merge: Optional[MergeStrategy] = None  # Combines (last_data, payload); None replaces


DEFAULT_FEEDS = [
    FeedSpec(
        name="accidents",
        path="/api/accidents/latest",
        params={"limit": 1},
        initial_params={"limit": 100},
        merge=merge_newest_first,
    ),
    FeedSpec(name="accident_stats", path="/api/accidents/stats"),
    FeedSpec(name="tollgate_traffic", path="/api/tollgate/traffic"),
    FeedSpec(name="road_summary", path="/api/road/summary"),
]


class FeedPoller:
    """Polls one feed through the executor.

    Errors raised while the cluster is transitioning are logged but not
    passed to on_error, so the UI keeps showing the last good data instead
    of an error banner.
    """

    def __init__(
        self,
        spec: FeedSpec,
        executor: RequestExecutor,
        transitions: TransitionReporter,
        on_data: Optional[DataHandler] = None,
        on_error: Optional[ErrorHandler] = None,
    ):
        self.spec = spec
        self.executor = executor
        self.transitions = transitions
        self.on_data = on_data
        self.on_error = on_error
        self.last_data: Any = None
        self.last_error: Optional[Exception] = None
        self.last_update: Optional[datetime] = None
        self.polls = 0
        self.suppressed_errors = 0

    @property
    def name(self) -> str:
        return self.spec.name

    async def poll_once(self, token: Optional[CancellationToken] = None) -> Optional[Any]:
        """Fetch the feed once.

        The first poll uses the initial-load parameters and retry budget.
        Later payloads go through the feed's merge strategy. An empty payload
        during a cluster transition leaves the last data in place.

        Returns:
            Current feed data, or None if the fetch failed
        """
        initial = self.polls == 0
        self.polls += 1
        params = self.spec.initial_params if initial and self.spec.initial_params else self.spec.params
        config = self.spec.initial_retry if initial else self.spec.retry

        try:
            response = await self.executor.execute(
                RequestSpec(url=self.spec.path, params=params or None),
                config,
                token,
            )
            data = response.json()
        except (RequestFailure, ValueError) as e:
            self._handle_error(e)
            return None

        if not data and self.last_data is not None and self.transitions.is_transitioning:
            logger.info(f"Keeping last {self.name} data, empty payload during cluster transition")
            return self.last_data

        if self.spec.merge is not None and self.last_data is not None:
            data = self.spec.merge(self.last_data, data)

        self.last_data = data
        self.last_error = None
        self.last_update = datetime.now(timezone.utc)
        if self.on_data:
            self.on_data(self.name, data)
        return data

    def _handle_error(self, error: Exception) -> None:
        self.last_error = error
        if self.transitions.is_transitioning:
            self.suppressed_errors += 1
            logger.info(f"Suppressed {self.name} error during cluster transition: {error}")
            return

        logger.error(f"Error fetching {self.name}: {error}")
        if self.on_error:
            self.on_error(self.name, error)

    async def run(self, token: CancellationToken) -> None:
        """Poll until the token is cancelled."""
        logger.info(f"Polling {self.name} every {self.spec.interval}s")
        try:
            while True:
                try:
                    await self.poll_once(token)
                except OperationCancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Error processing {self.name}: {e}", exc_info=True)

                await cancellable_sleep(self.spec.interval, token)
        except OperationCancelledError:
            logger.info(f"Stopped polling {self.name}")

    def get_status(self) -> dict[str, Any]:
        return {
            "path": self.spec.path,
            "polls": self.polls,
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "last_error": str(self.last_error) if self.last_error else None,
            "suppressed_errors": self.suppressed_errors,
        }
