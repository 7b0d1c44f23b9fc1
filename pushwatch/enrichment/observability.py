"""Structured observability events for the enrichment stage."""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from pushwatch.github.observability import categorize_error
from pushwatch.logging import get_logger, log_debug, log_info, log_warning

if typ.TYPE_CHECKING:
    import datetime as dt

logger = get_logger(__name__)


class EnrichmentEventType(enum.StrEnum):
    """Structured log event types for enrichment observability."""

    BATCH_STARTED = "enrichment.batch.started"
    BATCH_COMPLETED = "enrichment.batch.completed"
    ITEM_FAILED = "enrichment.item.failed"
    CACHE_HIT = "enrichment.cache.hit"
    CACHE_REFRESHED = "enrichment.cache.refreshed"
    CACHE_NOT_MODIFIED = "enrichment.cache.not_modified"
    STALE_FALLBACK = "enrichment.cache.stale_fallback"
    REQUEUED = "enrichment.requeued"


@dataclasses.dataclass(frozen=True, slots=True)
class BatchSummary:
    """Counters reported when a batch finishes."""

    succeeded: int
    failed: int
    requeued: int
    skipped: int
    duration: dt.timedelta


class EnrichmentEventLogger:
    """Emit structured enrichment events via femtologging."""

    def log_batch_started(self, limit: int, concurrency: int) -> None:
        """Log the start of an enrichment batch."""
        log_info(
            logger,
            "[%s] limit=%d concurrency=%d",
            EnrichmentEventType.BATCH_STARTED,
            limit,
            concurrency,
        )

    def log_batch_completed(self, summary: BatchSummary) -> None:
        """Log the outcome counters of a batch."""
        log_info(
            logger,
            "[%s] succeeded=%d failed=%d requeued=%d skipped=%d "
            "duration_seconds=%.3f",
            EnrichmentEventType.BATCH_COMPLETED,
            summary.succeeded,
            summary.failed,
            summary.requeued,
            summary.skipped,
            summary.duration.total_seconds(),
        )

    def log_item_failed(self, push_id: str, error: BaseException) -> None:
        """Log a push record that moved to ``failed``."""
        log_warning(
            logger,
            "[%s] push_id=%s error_type=%s error_category=%s error_message=%s",
            EnrichmentEventType.ITEM_FAILED,
            push_id,
            type(error).__name__,
            categorize_error(error),
            str(error),
        )

    def log_cache_hit(self, kind: str, key: str) -> None:
        """Log a lookup served from a fresh cached row."""
        log_debug(logger, "[%s] kind=%s key=%s", EnrichmentEventType.CACHE_HIT, kind, key)

    def log_cache_refreshed(self, kind: str, key: str, external_id: int) -> None:
        """Log a cached row written from a fresh response."""
        log_info(
            logger,
            "[%s] kind=%s key=%s external_id=%d",
            EnrichmentEventType.CACHE_REFRESHED,
            kind,
            key,
            external_id,
        )

    def log_cache_not_modified(self, kind: str, key: str) -> None:
        """Log a stale row revalidated by a ``304``."""
        log_debug(
            logger,
            "[%s] kind=%s key=%s",
            EnrichmentEventType.CACHE_NOT_MODIFIED,
            kind,
            key,
        )

    def log_stale_fallback(self, kind: str, key: str, error: BaseException) -> None:
        """Log a stale row served because the refresh failed."""
        log_warning(
            logger,
            "[%s] kind=%s key=%s error_category=%s error_message=%s",
            EnrichmentEventType.STALE_FALLBACK,
            kind,
            key,
            categorize_error(error),
            str(error),
        )

    def log_requeued(self, from_status: str, count: int) -> None:
        """Log push records moved back to ``pending``."""
        log_info(
            logger,
            "[%s] from_status=%s count=%d",
            EnrichmentEventType.REQUEUED,
            from_status,
            count,
        )
