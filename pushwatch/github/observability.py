"""Structured observability events for feed ingestion.

Every event is a single pre-formatted line ``[event.type] key=value ...``
emitted through femtologging, so log aggregators can parse throughput,
aborts and the rate-limit budget without a metrics backend.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)

from pushwatch.bronze.objectstore import ObjectStorageError
from pushwatch.config import ConfigError
from pushwatch.logging import get_logger, log_error, log_info, log_warning

from .errors import FeedFetchError, FetchFailureReason

if typ.TYPE_CHECKING:
    import datetime as dt

    from .ingestion import IngestionCycleResult
    from .ratelimit import RateLimitState

logger = get_logger(__name__)


class IngestionEventType(enum.StrEnum):
    """Structured log event types for ingestion observability."""

    CYCLE_STARTED = "ingestion.cycle.started"
    CYCLE_COMPLETED = "ingestion.cycle.completed"
    CYCLE_ABORTED = "ingestion.cycle.aborted"
    CYCLE_FAILED = "ingestion.cycle.failed"
    EXTRACTION_FAILED = "ingestion.event.extraction_failed"
    ENVELOPE_REJECTED = "ingestion.event.envelope_rejected"
    PAYLOAD_FALLBACK = "ingestion.event.payload_fallback"
    RATE_LIMIT_UPDATED = "ratelimit.updated"
    FETCH_RETRY = "fetch.retry"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    CLIENT_ERROR = "client_error"
    SCHEMA_DRIFT = "schema_drift"
    CONFIGURATION = "configuration"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATA_INTEGRITY = "data_integrity"
    DATABASE_ERROR = "database_error"
    OBJECT_STORAGE = "object_storage"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True, slots=True)
class IngestionRunContext:
    """Shared context for a single ingestion cycle."""

    feed_url: str
    started_at: dt.datetime


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (ConfigError, ErrorCategory.CONFIGURATION),
    (ObjectStorageError, ErrorCategory.OBJECT_STORAGE),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (IntegrityError, ErrorCategory.DATA_INTEGRITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)

_TRANSIENT_REASONS = frozenset(
    {FetchFailureReason.TRANSIENT_NETWORK, FetchFailureReason.SERVER_ERROR}
)
_SCHEMA_REASONS = frozenset(
    {FetchFailureReason.INVALID_JSON, FetchFailureReason.UNEXPECTED_SHAPE}
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alerting purposes.

    Fetch failures (including unavailable enrichment sources) are split by
    their reason; everything else is matched by type.
    """
    if isinstance(exc, FeedFetchError):
        if exc.reason == FetchFailureReason.RATE_LIMITED:
            return ErrorCategory.RATE_LIMITED
        if exc.reason in _TRANSIENT_REASONS:
            return ErrorCategory.TRANSIENT
        if exc.reason in _SCHEMA_REASONS:
            return ErrorCategory.SCHEMA_DRIFT
        return ErrorCategory.CLIENT_ERROR

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class IngestionEventLogger:
    """Emit structured ingestion events via femtologging.

    Success is logged at INFO, aborts and per-event rejections at WARNING,
    and cycle failures at ERROR with the exception attached.
    """

    def log_cycle_started(self, context: IngestionRunContext) -> None:
        """Log the start of a polling cycle."""
        log_info(
            logger,
            "[%s] feed_url=%s started_at=%s",
            IngestionEventType.CYCLE_STARTED,
            context.feed_url,
            context.started_at.isoformat(),
        )

    def log_cycle_completed(
        self,
        context: IngestionRunContext,
        result: IngestionCycleResult,
        duration: dt.timedelta,
    ) -> None:
        """Log the cycle summary (fetched/created/errors and budget)."""
        log_info(
            logger,
            "[%s] feed_url=%s outcome=%s duration_seconds=%.3f fetched=%d "
            "raw_created=%d created=%d duplicates=%d errors=%d "
            "rate_limit_remaining=%s",
            IngestionEventType.CYCLE_COMPLETED,
            context.feed_url,
            result.outcome,
            duration.total_seconds(),
            result.fetched,
            result.raw_created,
            result.created,
            result.duplicates,
            result.errors,
            result.rate_limit_remaining,
        )

    def log_cycle_aborted(
        self,
        context: IngestionRunContext,
        result: IngestionCycleResult,
        duration: dt.timedelta,
    ) -> None:
        """Log a cycle abandoned before any write (fetch-level failure)."""
        log_warning(
            logger,
            "[%s] feed_url=%s duration_seconds=%.3f abort_reason=%s errors=%d "
            "rate_limit_remaining=%s",
            IngestionEventType.CYCLE_ABORTED,
            context.feed_url,
            duration.total_seconds(),
            result.abort_reason,
            result.errors,
            result.rate_limit_remaining,
        )

    def log_cycle_failed(
        self,
        context: IngestionRunContext,
        error: BaseException,
        duration: dt.timedelta,
    ) -> None:
        """Log a cycle that raised, with error categorisation."""
        log_error(
            logger,
            "[%s] feed_url=%s duration_seconds=%.3f error_type=%s "
            "error_category=%s error_message=%s",
            IngestionEventType.CYCLE_FAILED,
            context.feed_url,
            duration.total_seconds(),
            type(error).__name__,
            categorize_error(error),
            str(error),
            exc_info=error,
        )

    def log_extraction_failed(
        self, event_id: str, event_type: str, reason: str
    ) -> None:
        """Log a raw event whose payload could not be extracted."""
        log_warning(
            logger,
            "[%s] event_id=%s event_type=%s reason=%s",
            IngestionEventType.EXTRACTION_FAILED,
            event_id,
            event_type,
            reason,
        )

    def log_envelope_rejected(self, index: int, reason: str) -> None:
        """Log a feed envelope that lacked an identifier or type."""
        log_warning(
            logger,
            "[%s] index=%d reason=%s",
            IngestionEventType.ENVELOPE_REJECTED,
            index,
            reason,
        )

    def log_payload_fallback(self, event_id: str, reason: str) -> None:
        """Log a stored payload that could not be read back."""
        log_warning(
            logger,
            "[%s] event_id=%s reason=%s",
            IngestionEventType.PAYLOAD_FALLBACK,
            event_id,
            reason,
        )

    def log_rate_limit_updated(self, state: RateLimitState) -> None:
        """Log the budget observed on a response."""
        log_info(
            logger,
            "[%s] remaining=%s limit=%s reset_at=%s",
            IngestionEventType.RATE_LIMIT_UPDATED,
            state.remaining,
            state.limit,
            state.reset_at.isoformat() if state.reset_at is not None else None,
        )

    def log_fetch_retry(
        self, url: str, attempt: int, reason: str, delay_s: float
    ) -> None:
        """Log a retryable fetch failure before backing off."""
        log_warning(
            logger,
            "[%s] url=%s attempt=%d reason=%s delay_seconds=%.3f",
            IngestionEventType.FETCH_RETRY,
            url,
            attempt,
            reason,
            delay_s,
        )
