"""Resilient request executor for dashboard data endpoints.

Wraps one logical request with:
- A per-attempt deadline raced against the HTTP call
- Status classification (2xx success, 4xx fatal, everything else retryable)
- Capped exponential backoff between attempts
- A single transition report on the first retryable failure of each call
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

import httpx

from ..health.state import TransitionReporter
from ..monitoring import metrics
from .retry import (
    DEFAULT_RETRY,
    AttemptOutcome,
    FatalFailure,
    OutcomeKind,
    RetryableFailure,
    RetryConfig,
    calculate_backoff,
    classify_response,
)
from .timeout import (
    CancellationToken,
    DeadlineExceededError,
    cancellable_sleep,
    race_with_timeout,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestSpec:
    """Descriptor of a single logical request."""

    url: str
    method: str = "GET"
    headers: Optional[Mapping[str, str]] = None
    params: Optional[Mapping[str, Any]] = None
    json: Any = None
    content: Optional[bytes] = None

    def describe(self) -> str:
        return f"{self.method} {self.url}"


class RequestExecutor:
    """Executes requests with timeout racing and bounded retry.

    Usage:
        context = TransitionContext()
        async with RequestExecutor(base_url="https://traffic.example", transitions=context) as ex:
            response = await ex.execute("/api/accidents/stats", POLLING_RETRY)
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        transitions: Optional[TransitionReporter] = None,
        default_config: Optional[RetryConfig] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Initialize executor.

        Args:
            base_url: Base URL for relative request paths
            client: Shared HTTP client (the executor will not close it)
            transitions: Context notified on the first retryable failure of a call
            default_config: Retry policy used when execute() gets none
            headers: Default headers for an owned client
        """
        self._owns_client = client is None
        # Deadlines are enforced per attempt by race_with_timeout.
        self._client = client or httpx.AsyncClient(
            base_url=base_url or "",
            headers=dict(headers or {}),
            timeout=None,
            follow_redirects=True,
        )
        self.transitions = transitions
        self.default_config = default_config or DEFAULT_RETRY

    async def __aenter__(self) -> "RequestExecutor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def execute(
        self,
        request: Union[RequestSpec, str],
        config: Optional[RetryConfig] = None,
        token: Optional[CancellationToken] = None,
    ) -> httpx.Response:
        """Execute a request until it succeeds, fails fatally or runs out of attempts.

        Args:
            request: Request descriptor or URL
            config: Retry configuration
            token: Cancellation token honored at every wait

        Returns:
            The first 2xx response

        Raises:
            FatalFailure: On a 4xx response
            RetryableFailure: When every attempt failed with a retryable error
            OperationCancelledError: If the token is cancelled
        """
        if isinstance(request, str):
            request = RequestSpec(url=request)
        config = config or self.default_config
        transition_reported = False

        for attempt in range(config.max_attempts):
            if token is not None:
                token.raise_if_cancelled()

            outcome = await self._attempt(request, config, token)

            if outcome.is_success:
                if attempt > 0:
                    logger.info(
                        f"{request.describe()} succeeded on attempt "
                        f"{attempt + 1}/{config.max_attempts}"
                    )
                return outcome.response

            if outcome.kind == OutcomeKind.FATAL:
                logger.warning(f"Non-retryable error for {request.describe()}: {outcome.reason}")
                metrics.request_failures_total.labels(kind="fatal").inc()
                raise FatalFailure(
                    outcome.reason,
                    status_code=outcome.status_code,
                    attempts=attempt + 1,
                    url=request.url,
                )

            if not transition_reported and self.transitions is not None:
                transition_reported = True
                self.transitions.request_transition(
                    f"{request.describe()} failed: {outcome.reason}"
                )

            if attempt == config.max_attempts - 1:
                logger.error(
                    f"All {config.max_attempts} attempts failed for "
                    f"{request.describe()}: {outcome.reason}"
                )
                metrics.request_failures_total.labels(kind="retryable").inc()
                raise RetryableFailure(
                    outcome.reason,
                    status_code=outcome.status_code,
                    attempts=config.max_attempts,
                    url=request.url,
                )

            delay = calculate_backoff(attempt, config)
            logger.warning(
                f"Attempt {attempt + 1}/{config.max_attempts} failed for "
                f"{request.describe()}: {outcome.reason}. Retrying in {delay:.1f}s"
            )
            await cancellable_sleep(delay, token)

        # range(max_attempts) is never empty, RetryConfig enforces max_attempts >= 1
        raise AssertionError("unreachable")

    async def _attempt(
        self,
        request: RequestSpec,
        config: RetryConfig,
        token: Optional[CancellationToken],
    ) -> AttemptOutcome:
        """Run one attempt and classify it."""
        started = time.monotonic()
        try:
            response = await race_with_timeout(
                self._client.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    params=request.params,
                    json=request.json,
                    content=request.content,
                ),
                config.timeout,
                token,
                error_message=f"{request.describe()} timed out",
            )
        except DeadlineExceededError:
            outcome = AttemptOutcome.retryable("timeout")
        except httpx.TimeoutException as e:
            outcome = AttemptOutcome.retryable(f"timeout: {e}")
        except httpx.HTTPError as e:
            outcome = AttemptOutcome.retryable(f"network error: {e}")
        else:
            outcome = classify_response(response)

        elapsed = time.monotonic() - started
        outcome_label = outcome.kind.value.lower()
        metrics.request_attempts_total.labels(outcome=outcome_label).inc()
        metrics.request_latency_seconds.labels(outcome=outcome_label).observe(elapsed)
        return outcome

    async def get_json(
        self,
        url: str,
        config: Optional[RetryConfig] = None,
        token: Optional[CancellationToken] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """GET a data endpoint and decode its JSON body.

        Raises:
            ValueError: If the body is not valid JSON
        """
        response = await self.execute(RequestSpec(url=url, params=params), config, token)
        return response.json()
