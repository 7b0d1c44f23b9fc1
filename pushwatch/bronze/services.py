"""Services for persisting bronze raw events and feed cursors."""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import msgspec
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from pushwatch.bronze.errors import RawEventPayloadMissingError, RawEventPersistError
from pushwatch.bronze.objectstore import ObjectStorageError, build_event_key
from pushwatch.bronze.storage import FeedCursor, RawEvent
from pushwatch.common.time import utcnow
from pushwatch.logging import get_logger, log_warning

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from pushwatch.bronze.objectstore import ObjectStore

type Payload = dict[str, typ.Any]

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class RawEventEnvelope:
    """Structured input for bronze ingestion."""

    event_id: str
    event_type: str
    payload: Payload


@dc.dataclass(frozen=True, slots=True)
class IngestOutcome:
    """Result of :meth:`RawEventWriter.ingest`.

    ``created`` is ``False`` when the event id was already stored; the
    returned row is then the existing one.
    """

    raw_event: RawEvent
    created: bool


class RawEventWriter:
    """Append-only writer that records bronze events.

    Idempotency rests on the unique ``event_id`` column: overlapping pollers
    or a restarted cycle can only ever find the existing row, never add a
    second one.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        object_store: ObjectStore | None = None,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Store the session factory and optional external payload store."""
        self._session_factory = session_factory
        self._object_store = object_store
        self._clock = clock

    async def ingest(self, envelope: RawEventEnvelope) -> IngestOutcome:
        """Persist a raw event unless its ``event_id`` is already stored."""
        async with self._session_factory() as session:
            existing = await self._load_existing(session, envelope.event_id)
            if existing is not None:
                return IngestOutcome(raw_event=existing, created=False)

            ingested_at = self._clock()
            storage_key = await self._offload(envelope, ingested_at)
            raw_event = RawEvent(
                event_id=envelope.event_id,
                event_type=envelope.event_type,
                payload=None if storage_key else envelope.payload,
                storage_key=storage_key,
                ingested_at=ingested_at,
            )
            session.add(raw_event)

            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                existing = await self._load_existing(session, envelope.event_id)
                if existing is None:
                    raise RawEventPersistError(envelope.event_id) from exc
                await self._discard_orphan(storage_key, existing)
                return IngestOutcome(raw_event=existing, created=False)

            await session.refresh(raw_event)
            return IngestOutcome(raw_event=raw_event, created=True)

    async def mark_processed(
        self, raw_event_id: int, *, error: str | None = None
    ) -> None:
        """Stamp ``processed_at`` and record the last extraction error, if any."""
        async with self._session_factory() as session, session.begin():
            await session.execute(
                update(RawEvent)
                .where(RawEvent.id == raw_event_id)
                .values(processed_at=self._clock(), processing_error=error)
            )

    async def load_payload(self, raw_event: RawEvent) -> Payload:
        """Return the payload from the row or from object storage."""
        if raw_event.payload is not None:
            return raw_event.payload
        if raw_event.storage_key is None:
            raise RawEventPayloadMissingError(raw_event.event_id)
        if self._object_store is None:
            msg = (
                f"raw_event {raw_event.event_id!r} is stored at "
                f"{raw_event.storage_key!r} but object storage is disabled"
            )
            raise ObjectStorageError(msg, key=raw_event.storage_key)
        data = await self._object_store.get(raw_event.storage_key)
        try:
            return msgspec.json.decode(data, type=dict[str, typ.Any])
        except msgspec.DecodeError as exc:
            msg = f"stored payload at {raw_event.storage_key!r} is not a JSON object"
            raise ObjectStorageError(msg, key=raw_event.storage_key) from exc

    async def _offload(
        self, envelope: RawEventEnvelope, ingested_at: dt.datetime
    ) -> str | None:
        if self._object_store is None:
            return None
        key = build_event_key(envelope.event_id, ingested_at)
        return await self._object_store.put(key, msgspec.json.encode(envelope.payload))

    async def _discard_orphan(self, storage_key: str | None, existing: RawEvent) -> None:
        if (
            storage_key is None
            or self._object_store is None
            or storage_key == existing.storage_key
        ):
            return
        try:
            await self._object_store.delete(storage_key)
        except ObjectStorageError as exc:
            log_warning(
                logger,
                "Failed to delete orphaned payload %s for event %s: %s",
                storage_key,
                existing.event_id,
                exc,
            )

    @staticmethod
    async def _load_existing(session: AsyncSession, event_id: str) -> RawEvent | None:
        return await session.scalar(select(RawEvent).where(RawEvent.event_id == event_id))


class FeedCursorStore:
    """Load and save the ETag remembered for each polled endpoint."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
    ) -> None:
        """Store the session factory used for cursor reads and writes."""
        self._session_factory = session_factory
        self._clock = clock

    async def load_etag(self, endpoint: str) -> str | None:
        """Return the ETag saved by the last successful cycle, if any."""
        async with self._session_factory() as session:
            return await session.scalar(
                select(FeedCursor.etag).where(FeedCursor.endpoint == endpoint)
            )

    async def save(self, endpoint: str, *, etag: str | None) -> None:
        """Record a completed poll; ``etag=None`` keeps the stored value."""
        async with self._session_factory() as session, session.begin():
            cursor = await session.scalar(
                select(FeedCursor).where(FeedCursor.endpoint == endpoint)
            )
            if cursor is None:
                cursor = FeedCursor(endpoint=endpoint)
                session.add(cursor)
            if etag is not None:
                cursor.etag = etag
            cursor.last_polled_at = self._clock()
