"""Unit tests for idempotent push record creation."""

from __future__ import annotations

import typing as typ

import pytest
from sqlalchemy import func, select

from pushwatch.bronze import RawEventEnvelope, RawEventWriter
from pushwatch.silver import EnrichmentStatus, PushRecord, PushRecordWriter
from pushwatch.silver.extractors import extract_push_event
from tests.helpers.github_events import make_push_event

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


async def _raw_event_id(
    session_factory: async_sessionmaker[AsyncSession], event_id: str
) -> int:
    outcome = await RawEventWriter(session_factory).ingest(
        RawEventEnvelope(
            event_id=event_id,
            event_type="PushEvent",
            payload=make_push_event(event_id),
        )
    )
    return outcome.raw_event.id


@pytest.mark.asyncio
async def test_create_if_absent_inserts_pending_record(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A new push becomes a pending record linked to its raw event."""
    raw_event_id = await _raw_event_id(session_factory, "e1")
    draft = extract_push_event(make_push_event("e1", push_id=9001))

    outcome = await PushRecordWriter(session_factory).create_if_absent(
        raw_event_id, draft
    )

    assert outcome.created is True
    record = outcome.record
    assert record.push_id == "9001"
    assert record.raw_event_id == raw_event_id
    assert record.enrichment_status == EnrichmentStatus.PENDING
    assert record.actor_id is None
    assert record.repository_snapshot_id is None


@pytest.mark.asyncio
async def test_create_if_absent_is_idempotent(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Repeating the insert returns the existing record."""
    raw_event_id = await _raw_event_id(session_factory, "e1")
    draft = extract_push_event(make_push_event("e1", push_id=9001))
    writer = PushRecordWriter(session_factory)

    first = await writer.create_if_absent(raw_event_id, draft)
    second = await writer.create_if_absent(raw_event_id, draft)

    assert second.created is False
    assert second.record.id == first.record.id
    async with session_factory() as session:
        assert await session.scalar(select(func.count(PushRecord.id))) == 1


@pytest.mark.asyncio
async def test_same_push_from_another_raw_event_is_not_duplicated(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """``push_id`` uniqueness holds even across distinct raw events."""
    writer = PushRecordWriter(session_factory)
    first_raw = await _raw_event_id(session_factory, "e1")
    second_raw = await _raw_event_id(session_factory, "e2")
    draft = extract_push_event(make_push_event("e1", push_id=55))

    await writer.create_if_absent(first_raw, draft)
    outcome = await writer.create_if_absent(second_raw, draft)

    assert outcome.created is False
    assert outcome.record.raw_event_id == first_raw


@pytest.mark.asyncio
async def test_lost_race_returns_winning_row(
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A unique violation is rescued by re-reading the winner."""
    writer = PushRecordWriter(session_factory)
    raw_event_id = await _raw_event_id(session_factory, "e1")
    draft = extract_push_event(make_push_event("e1", push_id=31))
    winner = await writer.create_if_absent(raw_event_id, draft)

    original = PushRecordWriter._load_existing
    calls = 0

    async def _miss_first_lookup(
        session: AsyncSession, raw_id: int, push_id: str
    ) -> PushRecord | None:
        nonlocal calls
        calls += 1
        if calls == 1:
            return None
        return await original(session, raw_id, push_id)

    monkeypatch.setattr(
        PushRecordWriter, "_load_existing", staticmethod(_miss_first_lookup)
    )

    outcome = await writer.create_if_absent(raw_event_id, draft)

    assert outcome.created is False
    assert outcome.record.id == winner.record.id
