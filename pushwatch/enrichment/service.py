"""Batch enrichment of pending push records.

A push record moves ``pending → in_progress → completed | failed``. The
claim is committed before any network call, and the final transition links
both the actor and the repository or neither. Rows stranded in
``in_progress`` by a crashed worker return to ``pending`` once they are older
than the configured stale window.
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import enum
import typing as typ

from sqlalchemy import select, update

from pushwatch.common.time import utcnow
from pushwatch.config import EnrichmentConfig
from pushwatch.silver.storage import EnrichmentStatus, PushRecord

from .errors import EnrichmentSourceUnavailableError, MissingEnrichmentKeyError
from .observability import BatchSummary, EnrichmentEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from pushwatch.github.ratelimit import RateLimiter

    from .cache import EnrichmentCache

# Each item may cost one actor and one repository request.
_REQUESTS_PER_ITEM = 2


class _ItemOutcome(enum.Enum):
    SUCCEEDED = enum.auto()
    FAILED = enum.auto()
    SKIPPED = enum.auto()


@dc.dataclass(frozen=True, slots=True)
class EnrichmentBatchResult:
    """Counters for a single :meth:`EnrichmentWorker.run_batch` call.

    ``skipped`` counts rows claimed by another worker or left untouched
    because the batch was cancelled.
    """

    succeeded: int = 0
    failed: int = 0
    requeued: int = 0
    skipped: int = 0


@dc.dataclass(frozen=True, slots=True)
class _ClaimedItem:
    id: int
    push_id: str
    actor_login: str | None
    actor_url: str | None
    repository_id: int


class EnrichmentWorker:
    """Resolve actor and repository metadata for pending push records."""

    def __init__(  # noqa: PLR0913
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: EnrichmentCache,
        *,
        config: EnrichmentConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        event_logger: EnrichmentEventLogger | None = None,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Create a worker bound to storage and an enrichment cache."""
        self._session_factory = session_factory
        self._cache = cache
        self._config = config or EnrichmentConfig()
        self._rate_limiter = rate_limiter
        self._event_logger = event_logger or EnrichmentEventLogger()
        self._clock = clock

    async def run_batch(
        self, limit: int | None = None, *, stop: asyncio.Event | None = None
    ) -> EnrichmentBatchResult:
        """Enrich up to ``limit`` pending records, oldest first.

        Parameters
        ----------
        limit : int | None, optional
            Maximum rows to claim; defaults to the configured batch size.
        stop : asyncio.Event | None, optional
            Checked between items; unstarted items stay ``pending``.

        Returns
        -------
        EnrichmentBatchResult
            Per-outcome counters, including stale rows requeued first.

        """
        started_at = self._clock()
        batch_limit = limit if limit is not None else self._config.batch_size
        concurrency = self._effective_concurrency()
        self._event_logger.log_batch_started(batch_limit, concurrency)

        requeued = await self.requeue_stale()
        record_ids = await self._select_pending(batch_limit)
        outcomes = await self._process(record_ids, concurrency, stop)

        result = EnrichmentBatchResult(
            succeeded=outcomes.count(_ItemOutcome.SUCCEEDED),
            failed=outcomes.count(_ItemOutcome.FAILED),
            requeued=requeued,
            skipped=outcomes.count(_ItemOutcome.SKIPPED)
            + len(record_ids)
            - len(outcomes),
        )
        self._event_logger.log_batch_completed(
            BatchSummary(
                succeeded=result.succeeded,
                failed=result.failed,
                requeued=result.requeued,
                skipped=result.skipped,
                duration=self._clock() - started_at,
            )
        )
        return result

    async def requeue_stale(self) -> int:
        """Return stranded ``in_progress`` rows to ``pending``."""
        cutoff = self._clock() - self._config.stale_after
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(PushRecord)
                .where(
                    PushRecord.enrichment_status == EnrichmentStatus.IN_PROGRESS.value,
                    (PushRecord.enrichment_started_at < cutoff)
                    | PushRecord.enrichment_started_at.is_(None),
                )
                .values(
                    enrichment_status=EnrichmentStatus.PENDING.value,
                    enrichment_started_at=None,
                )
                .execution_options(synchronize_session=False)
            )
        count = result.rowcount or 0
        if count:
            self._event_logger.log_requeued(EnrichmentStatus.IN_PROGRESS, count)
        return count

    async def requeue_failed(self, limit: int | None = None) -> int:
        """Move ``failed`` rows (oldest first, up to ``limit``) back to ``pending``."""
        async with self._session_factory() as session, session.begin():
            stmt = (
                select(PushRecord.id)
                .where(PushRecord.enrichment_status == EnrichmentStatus.FAILED.value)
                .order_by(PushRecord.created_at, PushRecord.id)
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            record_ids = list((await session.scalars(stmt)).all())
            if not record_ids:
                return 0
            result = await session.execute(
                update(PushRecord)
                .where(
                    PushRecord.id.in_(record_ids),
                    PushRecord.enrichment_status == EnrichmentStatus.FAILED.value,
                )
                .values(
                    enrichment_status=EnrichmentStatus.PENDING.value,
                    enrichment_error=None,
                    enrichment_started_at=None,
                )
                .execution_options(synchronize_session=False)
            )
        count = result.rowcount or 0
        self._event_logger.log_requeued(EnrichmentStatus.FAILED, count)
        return count

    def _effective_concurrency(self) -> int:
        concurrency = max(1, self._config.max_concurrency)
        if self._rate_limiter is None:
            return concurrency
        remaining = self._rate_limiter.remaining_budget()
        if remaining is None:
            return concurrency
        return max(1, min(concurrency, remaining // _REQUESTS_PER_ITEM))

    async def _select_pending(self, limit: int) -> list[int]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(PushRecord.id)
                .where(PushRecord.enrichment_status == EnrichmentStatus.PENDING.value)
                .order_by(PushRecord.created_at, PushRecord.id)
                .limit(limit)
            )
            return list(result.all())

    async def _process(
        self,
        record_ids: list[int],
        concurrency: int,
        stop: asyncio.Event | None,
    ) -> list[_ItemOutcome]:
        if concurrency <= 1:
            outcomes: list[_ItemOutcome] = []
            for record_id in record_ids:
                if stop is not None and stop.is_set():
                    break
                outcomes.append(await self._process_one(record_id))
            return outcomes

        semaphore = asyncio.Semaphore(concurrency)

        async def bounded(record_id: int) -> _ItemOutcome:
            async with semaphore:
                if stop is not None and stop.is_set():
                    return _ItemOutcome.SKIPPED
                return await self._process_one(record_id)

        gathered = await asyncio.gather(
            *(bounded(record_id) for record_id in record_ids),
            return_exceptions=True,
        )
        return _collect_outcomes(gathered)

    async def _process_one(self, record_id: int) -> _ItemOutcome:
        item = await self._claim(record_id)
        if item is None:
            return _ItemOutcome.SKIPPED

        allow_stale = self._config.allow_stale_fallback
        try:
            actor_key = item.actor_login or item.actor_url
            if actor_key is None:
                raise MissingEnrichmentKeyError(item.push_id, "actor")
            actor = await self._cache.resolve_actor(actor_key, allow_stale=allow_stale)
            repository = await self._cache.resolve_repository(
                item.repository_id, allow_stale=allow_stale
            )
        except (EnrichmentSourceUnavailableError, MissingEnrichmentKeyError) as exc:
            self._event_logger.log_item_failed(item.push_id, exc)
            await self._finish(
                item.id,
                status=EnrichmentStatus.FAILED,
                values={
                    "enrichment_error": str(exc),
                    "actor_id": None,
                    "repository_snapshot_id": None,
                    "enriched_at": None,
                },
            )
            return _ItemOutcome.FAILED

        finished = await self._finish(
            item.id,
            status=EnrichmentStatus.COMPLETED,
            values={
                "enrichment_error": None,
                "actor_id": actor.id,
                "repository_snapshot_id": repository.id,
                "enriched_at": self._clock(),
            },
        )
        return _ItemOutcome.SUCCEEDED if finished else _ItemOutcome.SKIPPED

    async def _claim(self, record_id: int) -> _ClaimedItem | None:
        """Commit ``pending → in_progress``; ``None`` if another worker won."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(PushRecord)
                .where(
                    PushRecord.id == record_id,
                    PushRecord.enrichment_status == EnrichmentStatus.PENDING.value,
                )
                .values(
                    enrichment_status=EnrichmentStatus.IN_PROGRESS.value,
                    enrichment_started_at=self._clock(),
                    enrichment_error=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            record = await session.get(PushRecord, record_id)
            if record is None:
                return None
            return _ClaimedItem(
                id=record.id,
                push_id=record.push_id,
                actor_login=record.actor_login,
                actor_url=record.actor_url,
                repository_id=record.repository_id,
            )

    async def _finish(
        self,
        record_id: int,
        *,
        status: EnrichmentStatus,
        values: dict[str, typ.Any],
    ) -> bool:
        """Apply the terminal transition in one transaction."""
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(PushRecord)
                .where(
                    PushRecord.id == record_id,
                    PushRecord.enrichment_status
                    == EnrichmentStatus.IN_PROGRESS.value,
                )
                .values(enrichment_status=status.value, **values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1


def _collect_outcomes(
    gathered: list[_ItemOutcome | BaseException],
) -> list[_ItemOutcome]:
    """Return item outcomes, re-raising the first error once all items settle."""
    outcomes: list[_ItemOutcome] = []
    errors: list[BaseException] = []
    for result in gathered:
        if isinstance(result, BaseException):
            errors.append(result)
        else:
            outcomes.append(result)
    if errors:
        raise errors[0]
    return outcomes


__all__ = ["EnrichmentBatchResult", "EnrichmentWorker"]
