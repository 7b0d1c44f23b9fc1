"""Polling ingestion of the public GitHub events feed.

Each cycle issues one conditional request for the feed, appends every
envelope to the bronze ``raw_events`` store and runs the registered
extractor for envelopes not yet processed. The feed ETag is persisted only
after the whole response has been handled, so a crash mid-cycle re-fetches
the same page instead of being hidden behind a ``304``.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

import msgspec

from pushwatch.bronze import (
    FeedCursorStore,
    ObjectStorageError,
    RawEventEnvelope,
    RawEventWriter,
)
from pushwatch.common.time import utcnow
from pushwatch.silver.errors import ExtractionError
from pushwatch.silver.extractors import get_extractor
from pushwatch.silver.services import PushRecordWriter

from .fetcher import Failed, Fresh, NotModified, RateLimited
from .models import FeedEnvelope
from .observability import IngestionEventLogger, IngestionRunContext

if typ.TYPE_CHECKING:
    import asyncio
    import collections.abc as cabc
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from pushwatch.bronze import RawEvent

    from .fetcher import ConditionalFetcher

    type SessionFactory = async_sessionmaker[AsyncSession]


class CycleOutcome(enum.StrEnum):
    """Terminal state of an ingestion cycle."""

    COMPLETED = "completed"
    NOT_MODIFIED = "not_modified"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


class AbortReason(enum.StrEnum):
    """Why a cycle stopped before writing anything."""

    RATE_LIMITED = "rate_limited"
    MALFORMED_FEED = "malformed_feed"


@dataclasses.dataclass(frozen=True, slots=True)
class IngestionCycleResult:
    """Summary of one polling cycle.

    ``created`` counts push records created in this cycle; ``raw_created``
    and ``duplicates`` split the envelopes by whether bronze already held
    them.
    """

    outcome: CycleOutcome
    fetched: int = 0
    created: int = 0
    errors: int = 0
    raw_created: int = 0
    duplicates: int = 0
    rate_limit_remaining: int | None = None
    abort_reason: str | None = None


@dataclasses.dataclass(slots=True)
class _CycleCounters:
    fetched: int = 0
    created: int = 0
    errors: int = 0
    raw_created: int = 0
    duplicates: int = 0


class FeedIngestionWorker:
    """Poll the events feed and write bronze and silver rows."""

    def __init__(  # noqa: PLR0913
        self,
        session_factory: SessionFactory,
        fetcher: ConditionalFetcher,
        *,
        feed_url: str,
        raw_writer: RawEventWriter | None = None,
        event_logger: IngestionEventLogger | None = None,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Create a worker bound to a session factory and feed fetcher."""
        self._fetcher = fetcher
        self._feed_url = feed_url
        self._raw_writer = raw_writer or RawEventWriter(session_factory)
        self._record_writer = PushRecordWriter(session_factory)
        self._cursors = FeedCursorStore(session_factory, clock=clock)
        self._event_logger = event_logger or IngestionEventLogger()
        self._clock = clock

    async def run_cycle(self, stop: asyncio.Event | None = None) -> IngestionCycleResult:
        """Run one fetch-store-extract cycle.

        Parameters
        ----------
        stop : asyncio.Event | None, optional
            Checked between envelopes. When set, the envelope in flight
            completes, the remaining ones are left for the next cycle and the
            ETag is not advanced.

        Returns
        -------
        IngestionCycleResult
            Counters and terminal outcome for the cycle.

        """
        started_at = self._clock()
        context = IngestionRunContext(feed_url=self._feed_url, started_at=started_at)
        self._event_logger.log_cycle_started(context)

        try:
            result = await self._run_cycle_inner(stop)
        except BaseException as exc:
            self._event_logger.log_cycle_failed(
                context, exc, self._clock() - started_at
            )
            raise

        duration = self._clock() - started_at
        if result.outcome is CycleOutcome.ABORTED:
            self._event_logger.log_cycle_aborted(context, result, duration)
        else:
            self._event_logger.log_cycle_completed(context, result, duration)
        return result

    async def _run_cycle_inner(
        self, stop: asyncio.Event | None
    ) -> IngestionCycleResult:
        prior_etag = await self._cursors.load_etag(self._feed_url)
        match await self._fetcher.fetch(self._feed_url, prior_etag=prior_etag):
            case NotModified(etag=etag):
                await self._cursors.save(self._feed_url, etag=etag)
                return self._result(CycleOutcome.NOT_MODIFIED, _CycleCounters())
            case RateLimited():
                return self._aborted(AbortReason.RATE_LIMITED)
            case Failed(reason=reason):
                return self._aborted(reason)
            case Fresh(body=body, etag=etag):
                return await self._ingest_body(body, etag, stop)

    async def _ingest_body(
        self, body: object, etag: str | None, stop: asyncio.Event | None
    ) -> IngestionCycleResult:
        if not isinstance(body, list):
            return self._aborted(AbortReason.MALFORMED_FEED)

        counters = _CycleCounters(fetched=len(body))
        for index, item in enumerate(body):
            if stop is not None and stop.is_set():
                return self._result(CycleOutcome.CANCELLED, counters)
            await self._handle_envelope(index, item, counters)

        await self._cursors.save(self._feed_url, etag=etag)
        return self._result(CycleOutcome.COMPLETED, counters)

    async def _handle_envelope(
        self, index: int, item: object, counters: _CycleCounters
    ) -> None:
        try:
            envelope = msgspec.convert(item, type=FeedEnvelope)
        except msgspec.ValidationError as exc:
            counters.errors += 1
            self._event_logger.log_envelope_rejected(index, str(exc))
            return

        payload = typ.cast("dict[str, typ.Any]", item)
        outcome = await self._raw_writer.ingest(
            RawEventEnvelope(
                event_id=envelope.id, event_type=envelope.type, payload=payload
            )
        )
        if outcome.created:
            counters.raw_created += 1
        else:
            counters.duplicates += 1

        raw_event = outcome.raw_event
        if raw_event.is_processed:
            return
        if not outcome.created:
            payload = await self._stored_payload(raw_event, payload)
        await self._extract(raw_event, payload, counters)

    async def _stored_payload(
        self, raw_event: RawEvent, feed_payload: dict[str, typ.Any]
    ) -> dict[str, typ.Any]:
        try:
            return await self._raw_writer.load_payload(raw_event)
        except ObjectStorageError as exc:
            # The feed still carries the envelope for this event id.
            self._event_logger.log_payload_fallback(raw_event.event_id, str(exc))
            return feed_payload

    async def _extract(
        self,
        raw_event: RawEvent,
        payload: dict[str, typ.Any],
        counters: _CycleCounters,
    ) -> None:
        extractor = get_extractor(raw_event.event_type)
        if extractor is None:
            await self._raw_writer.mark_processed(raw_event.id)
            return

        try:
            draft = extractor(payload)
        except ExtractionError as exc:
            counters.errors += 1
            self._event_logger.log_extraction_failed(
                raw_event.event_id, raw_event.event_type, str(exc)
            )
            await self._raw_writer.mark_processed(raw_event.id, error=str(exc))
            return

        record_outcome = await self._record_writer.create_if_absent(raw_event.id, draft)
        if record_outcome.created:
            counters.created += 1
        await self._raw_writer.mark_processed(raw_event.id)

    def _aborted(self, reason: str) -> IngestionCycleResult:
        return IngestionCycleResult(
            outcome=CycleOutcome.ABORTED,
            errors=1,
            rate_limit_remaining=self._fetcher.rate_limiter.remaining_budget(),
            abort_reason=str(reason),
        )

    def _result(
        self, outcome: CycleOutcome, counters: _CycleCounters
    ) -> IngestionCycleResult:
        return IngestionCycleResult(
            outcome=outcome,
            fetched=counters.fetched,
            created=counters.created,
            errors=counters.errors,
            raw_created=counters.raw_created,
            duplicates=counters.duplicates,
            rate_limit_remaining=self._fetcher.rate_limiter.remaining_budget(),
        )
