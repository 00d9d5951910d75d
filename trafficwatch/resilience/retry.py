"""Retry policy and failure classification for dashboard requests.

Provides:
- Immutable per-call retry configuration
- Capped exponential backoff
- Classification of attempt outcomes into success, retryable and fatal
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    timeout: float = 20.0  # Per-attempt deadline in seconds
    base_delay: float = 3.0  # First backoff in seconds
    max_delay: float = 30.0  # Backoff ceiling in seconds
    max_attempts: int = 10  # Total tries including the first
    jitter: float = 0.0  # Random jitter factor (0-1)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.base_delay > self.max_delay:
            raise ValueError(
                f"base_delay ({self.base_delay}) must not exceed max_delay ({self.max_delay})"
            )
        if not 0 <= self.jitter <= 1:
            raise ValueError(f"jitter must be between 0 and 1, got {self.jitter}")


# Budgets by call criticality. Initial page load tolerates a full cluster
# failover (3s, 6s, 12s, 24s, 30s, ...); steady-state polling gives up sooner
# because the next poll will try again anyway.
DEFAULT_RETRY = RetryConfig(timeout=20.0, base_delay=3.0, max_delay=30.0, max_attempts=10)
INITIAL_LOAD_RETRY = RetryConfig(timeout=20.0, base_delay=3.0, max_delay=30.0, max_attempts=8)
POLLING_RETRY = RetryConfig(timeout=15.0, base_delay=2.0, max_delay=30.0, max_attempts=5)


def calculate_backoff(
    attempt: int,
    config: RetryConfig,
) -> float:
    """Calculate backoff delay after a failed attempt.

    Args:
        attempt: Failed attempt number (0-indexed)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = config.base_delay * (2**attempt)

    if config.jitter:
        jitter_range = delay * config.jitter
        delay += random.uniform(-jitter_range, jitter_range)

    return min(max(delay, 0.0), config.max_delay)


class OutcomeKind(str, Enum):
    """Classification of a single attempt."""

    SUCCESS = "SUCCESS"
    RETRYABLE = "RETRYABLE"  # Timeout, network error or 5xx
    FATAL = "FATAL"  # 4xx, retrying will not help


@dataclass
class AttemptOutcome:
    """Result of one attempt of a request."""

    kind: OutcomeKind
    response: Optional[httpx.Response] = None
    reason: str = ""
    status_code: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @property
    def is_retryable(self) -> bool:
        return self.kind == OutcomeKind.RETRYABLE

    @classmethod
    def retryable(cls, reason: str, status_code: Optional[int] = None) -> "AttemptOutcome":
        return cls(kind=OutcomeKind.RETRYABLE, reason=reason, status_code=status_code)


def classify_response(response: httpx.Response) -> AttemptOutcome:
    """Classify an HTTP response.

    2xx succeeds, 4xx is fatal and everything else is retried.
    """
    status = response.status_code
    if 200 <= status < 300:
        return AttemptOutcome(kind=OutcomeKind.SUCCESS, response=response, status_code=status)

    reason = f"HTTP {status}: {response.reason_phrase}"
    if 400 <= status < 500:
        return AttemptOutcome(
            kind=OutcomeKind.FATAL,
            response=response,
            reason=reason,
            status_code=status,
        )
    return AttemptOutcome(
        kind=OutcomeKind.RETRYABLE,
        response=response,
        reason=reason,
        status_code=status,
    )


class RequestFailure(Exception):
    """Base class for a request that did not produce a successful response."""

    def __init__(
        self,
        reason: str,
        status_code: Optional[int] = None,
        attempts: int = 0,
        url: str = "",
    ):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
        self.attempts = attempts
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "reason": self.reason,
            "status_code": self.status_code,
            "attempts": self.attempts,
            "url": self.url,
        }


class RetryableFailure(RequestFailure):
    """Timeout, network or server error that exhausted the retry budget."""

    pass


class FatalFailure(RequestFailure):
    """Client error (4xx) - should NOT be retried."""

    pass
