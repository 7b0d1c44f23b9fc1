"""GitHub feed client and ingestion worker primitives."""

from __future__ import annotations

from .errors import (
    FeedFetchError,
    FetchFailureReason,
)
from .fetcher import (
    BudgetPolicy,
    ConditionalFetcher,
    Failed,
    FetchResult,
    Fresh,
    NotModified,
    RateLimited,
    build_http_client,
)
from .ingestion import (
    AbortReason,
    CycleOutcome,
    FeedIngestionWorker,
    IngestionCycleResult,
)
from .observability import (
    ErrorCategory,
    IngestionEventLogger,
    IngestionEventType,
    IngestionRunContext,
    categorize_error,
)
from .ratelimit import BudgetDecision, RateLimiter, RateLimitState

__all__ = [
    "AbortReason",
    "BudgetDecision",
    "BudgetPolicy",
    "ConditionalFetcher",
    "CycleOutcome",
    "ErrorCategory",
    "Failed",
    "FeedFetchError",
    "FeedIngestionWorker",
    "FetchFailureReason",
    "FetchResult",
    "Fresh",
    "IngestionCycleResult",
    "IngestionEventLogger",
    "IngestionEventType",
    "IngestionRunContext",
    "NotModified",
    "RateLimitState",
    "RateLimited",
    "RateLimiter",
    "build_http_client",
    "categorize_error",
]
