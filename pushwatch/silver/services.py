"""Idempotent writer for silver push records."""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError

from pushwatch.silver.errors import ExtractionError
from pushwatch.silver.storage import EnrichmentStatus, PushRecord

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from pushwatch.silver.extractors import PushRecordDraft


@dc.dataclass(frozen=True, slots=True)
class PushRecordOutcome:
    """Result of :meth:`PushRecordWriter.create_if_absent`."""

    record: PushRecord
    created: bool


class PushRecordWriter:
    """Insert push records at most once per ``push_id`` and raw event.

    The protocol is explicit: look for an existing row, insert inside a
    SAVEPOINT, and on a unique violation roll back to the savepoint and
    re-read the row that won.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Store the session factory used for inserts."""
        self._session_factory = session_factory

    async def create_if_absent(
        self, raw_event_id: int, draft: PushRecordDraft
    ) -> PushRecordOutcome:
        """Insert a pending push record unless one already exists."""
        async with self._session_factory() as session:
            existing = await self._load_existing(session, raw_event_id, draft.push_id)
            if existing is not None:
                return PushRecordOutcome(record=existing, created=False)

            record = PushRecord(
                raw_event_id=raw_event_id,
                push_id=draft.push_id,
                repository_id=draft.repository_id,
                ref=draft.ref,
                before_sha=draft.before_sha,
                head_sha=draft.head_sha,
                actor_login=draft.actor_login,
                actor_url=draft.actor_url,
                repo_name=draft.repo_name,
                repo_url=draft.repo_url,
                enrichment_status=EnrichmentStatus.PENDING.value,
            )
            try:
                async with session.begin_nested():
                    session.add(record)
                    await session.flush()
            except IntegrityError as exc:
                with session.no_autoflush:
                    existing = await self._load_existing(
                        session, raw_event_id, draft.push_id
                    )
                if existing is None:
                    raise ExtractionError.concurrent_insert(draft.push_id) from exc
                await session.commit()
                return PushRecordOutcome(record=existing, created=False)

            await session.commit()
            return PushRecordOutcome(record=record, created=True)

    @staticmethod
    async def _load_existing(
        session: AsyncSession, raw_event_id: int, push_id: str
    ) -> PushRecord | None:
        return await session.scalar(
            select(PushRecord).where(
                or_(
                    PushRecord.push_id == push_id,
                    PushRecord.raw_event_id == raw_event_id,
                )
            )
        )
