"""Resilience layer for dashboard requests.

This module provides:
- Retry with capped exponential backoff
- Per-attempt deadlines and cancellation tokens
- The resilient request executor
"""

from .executor import RequestExecutor, RequestSpec
from .retry import (
    DEFAULT_RETRY,
    INITIAL_LOAD_RETRY,
    POLLING_RETRY,
    AttemptOutcome,
    FatalFailure,
    OutcomeKind,
    RequestFailure,
    RetryableFailure,
    RetryConfig,
    calculate_backoff,
    classify_response,
)
from .timeout import (
    CancellationToken,
    DeadlineExceededError,
    OperationCancelledError,
    cancellable_sleep,
    race_with_timeout,
)

__all__ = [
    "RequestExecutor",
    "RequestSpec",
    "RetryConfig",
    "DEFAULT_RETRY",
    "INITIAL_LOAD_RETRY",
    "POLLING_RETRY",
    "AttemptOutcome",
    "OutcomeKind",
    "calculate_backoff",
    "classify_response",
    "RequestFailure",
    "RetryableFailure",
    "FatalFailure",
    "CancellationToken",
    "DeadlineExceededError",
    "OperationCancelledError",
    "cancellable_sleep",
    "race_with_timeout",
]
