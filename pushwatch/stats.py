"""Aggregate counters describing the state of the pipeline."""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from sqlalchemy import func, select

from pushwatch.bronze.storage import RawEvent
from pushwatch.common.time import utcnow
from pushwatch.silver.storage import (
    Actor,
    EnrichmentStatus,
    PushRecord,
    RepositorySnapshot,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@dc.dataclass(frozen=True, slots=True)
class PipelineStats:
    """Point-in-time counts for bronze, silver and the enrichment cache."""

    raw_events_by_type: dict[str, int]
    raw_events_processed: int
    raw_events_unprocessed: int
    push_records_by_status: dict[str, int]
    actors_cached: int
    repositories_cached: int
    generated_at: dt.datetime

    @property
    def raw_events_total(self) -> int:
        """Return the number of stored raw events."""
        return self.raw_events_processed + self.raw_events_unprocessed

    @property
    def push_records_total(self) -> int:
        """Return the number of push records."""
        return sum(self.push_records_by_status.values())

    def to_dict(self) -> dict[str, typ.Any]:
        """Return a JSON-compatible representation."""
        return {
            "generated_at": self.generated_at.isoformat(),
            "raw_events": {
                "total": self.raw_events_total,
                "processed": self.raw_events_processed,
                "unprocessed": self.raw_events_unprocessed,
                "by_type": dict(sorted(self.raw_events_by_type.items())),
            },
            "push_records": {
                "total": self.push_records_total,
                "by_status": self.push_records_by_status,
            },
            "cache": {
                "actors": self.actors_cached,
                "repositories": self.repositories_cached,
            },
        }


class PipelineStatsService:
    """Compute :class:`PipelineStats` with aggregate queries."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Store the session factory used for read-only queries."""
        self._session_factory = session_factory
        self._clock = clock

    async def snapshot(self) -> PipelineStats:
        """Return current counts; every status appears, zero when empty."""
        async with self._session_factory() as session:
            by_type_rows = (
                await session.execute(
                    select(RawEvent.event_type, func.count(RawEvent.id)).group_by(
                        RawEvent.event_type
                    )
                )
            ).all()
            processed = await session.scalar(
                select(func.count(RawEvent.id)).where(RawEvent.processed_at.is_not(None))
            )
            unprocessed = await session.scalar(
                select(func.count(RawEvent.id)).where(RawEvent.processed_at.is_(None))
            )
            by_status_rows = (
                await session.execute(
                    select(
                        PushRecord.enrichment_status, func.count(PushRecord.id)
                    ).group_by(PushRecord.enrichment_status)
                )
            ).all()
            actors = await session.scalar(select(func.count(Actor.id)))
            repositories = await session.scalar(
                select(func.count(RepositorySnapshot.id))
            )

        by_status = {status.value: 0 for status in EnrichmentStatus}
        by_status.update({status: count for status, count in by_status_rows})
        return PipelineStats(
            raw_events_by_type={event_type: count for event_type, count in by_type_rows},
            raw_events_processed=processed or 0,
            raw_events_unprocessed=unprocessed or 0,
            push_records_by_status=by_status,
            actors_cached=actors or 0,
            repositories_cached=repositories or 0,
            generated_at=self._clock(),
        )


__all__ = ["PipelineStats", "PipelineStatsService"]
