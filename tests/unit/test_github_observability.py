"""Unit tests for ingestion error categorisation and structured events."""

from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from pushwatch.bronze.objectstore import ObjectStorageError
from pushwatch.config import ConfigError
from pushwatch.enrichment.errors import EnrichmentSourceUnavailableError
from pushwatch.github import observability
from pushwatch.github.errors import FeedFetchError, FetchFailureReason
from pushwatch.github.ingestion import CycleOutcome, IngestionCycleResult
from pushwatch.github.observability import (
    ErrorCategory,
    IngestionEventLogger,
    IngestionEventType,
    IngestionRunContext,
    categorize_error,
)
from pushwatch.github.ratelimit import RateLimitState
from tests.helpers.logs import capture_module_logs

_URL = "https://api.github.com/events"


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (FeedFetchError.rate_limited(_URL), ErrorCategory.RATE_LIMITED),
        (
            FeedFetchError.failed(_URL, FetchFailureReason.SERVER_ERROR, 502),
            ErrorCategory.TRANSIENT,
        ),
        (
            FeedFetchError.failed(_URL, FetchFailureReason.TRANSIENT_NETWORK, None),
            ErrorCategory.TRANSIENT,
        ),
        (
            FeedFetchError.failed(_URL, FetchFailureReason.INVALID_JSON, 200),
            ErrorCategory.SCHEMA_DRIFT,
        ),
        (FeedFetchError.unexpected_shape(_URL, "object"), ErrorCategory.SCHEMA_DRIFT),
        (
            FeedFetchError.failed(_URL, FetchFailureReason.CLIENT_ERROR, 401),
            ErrorCategory.CLIENT_ERROR,
        ),
        (ConfigError.missing("PUSHWATCH_DATABASE_URL"), ErrorCategory.CONFIGURATION),
        (ObjectStorageError.invalid_key("../x"), ErrorCategory.OBJECT_STORAGE),
        (
            OperationalError("SELECT 1", {}, Exception("down")),
            ErrorCategory.DATABASE_CONNECTIVITY,
        ),
        (
            InterfaceError("SELECT 1", {}, Exception("closed")),
            ErrorCategory.DATABASE_CONNECTIVITY,
        ),
        (
            IntegrityError("INSERT", {}, Exception("dup")),
            ErrorCategory.DATA_INTEGRITY,
        ),
        (RuntimeError("surprise"), ErrorCategory.UNKNOWN),
    ],
)
def test_categorize_error(exc: BaseException, expected: ErrorCategory) -> None:
    """Exceptions map onto stable alerting categories."""
    assert categorize_error(exc) == expected


def test_unavailable_enrichment_source_is_categorised_by_reason() -> None:
    """Enrichment source failures reuse the fetch categorisation."""
    exc = EnrichmentSourceUnavailableError(
        "users/octocat unavailable", reason=FetchFailureReason.SERVER_ERROR
    )

    assert categorize_error(exc) == ErrorCategory.TRANSIENT


def test_cycle_events_render_key_value_lines(monkeypatch: pytest.MonkeyPatch) -> None:
    """Cycle summaries are single parseable lines."""
    logs = capture_module_logs(monkeypatch, observability)
    events = IngestionEventLogger()
    context = IngestionRunContext(
        feed_url=_URL, started_at=dt.datetime(2024, 7, 8, 12, tzinfo=dt.UTC)
    )
    result = IngestionCycleResult(
        outcome=CycleOutcome.COMPLETED,
        fetched=3,
        created=2,
        raw_created=3,
        rate_limit_remaining=41,
    )

    events.log_cycle_started(context)
    events.log_cycle_completed(context, result, dt.timedelta(milliseconds=250))

    (started,) = logs.events(IngestionEventType.CYCLE_STARTED)
    assert started.message == (
        f"[ingestion.cycle.started] feed_url={_URL} "
        "started_at=2024-07-08T12:00:00+00:00"
    )
    (completed,) = logs.events(IngestionEventType.CYCLE_COMPLETED)
    assert completed.level == "INFO"
    assert "outcome=completed duration_seconds=0.250 fetched=3" in completed.message
    assert "created=2 duplicates=0 errors=0 rate_limit_remaining=41" in (
        completed.message
    )


def test_cycle_failure_carries_category_and_exception(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Failures are logged at ERROR with the exception attached."""
    logs = capture_module_logs(monkeypatch, observability)
    context = IngestionRunContext(
        feed_url=_URL, started_at=dt.datetime(2024, 7, 8, 12, tzinfo=dt.UTC)
    )
    error = OperationalError("SELECT 1", {}, Exception("down"))

    IngestionEventLogger().log_cycle_failed(context, error, dt.timedelta(seconds=1))

    (failed,) = logs.events(IngestionEventType.CYCLE_FAILED)
    assert failed.level == "ERROR"
    assert failed.exc_info is error
    assert "error_type=OperationalError" in failed.message
    assert "error_category=database_connectivity" in failed.message


def test_rate_limit_event_handles_missing_reset(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A budget without a reset time renders ``reset_at=None``."""
    logs = capture_module_logs(monkeypatch, observability)

    IngestionEventLogger().log_rate_limit_updated(
        RateLimitState(remaining=10, limit=60)
    )

    (updated,) = logs.events(IngestionEventType.RATE_LIMIT_UPDATED)
    assert updated.message == "[ratelimit.updated] remaining=10 limit=60 reset_at=None"
