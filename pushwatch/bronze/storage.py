"""Persistence models for the bronze raw event store."""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine

from pushwatch.bronze.errors import TimezoneAwareRequiredError
from pushwatch.common.time import utcnow


class Base(DeclarativeBase):
    """Base declarative class for pushwatch models."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_column()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class RawEvent(Base):
    """Immutable copy of one feed envelope, keyed by GitHub's event id.

    The payload lives either inline in ``payload`` or in object storage under
    ``storage_key``; never both and never neither.
    """

    __tablename__ = "raw_events"
    __table_args__ = (
        CheckConstraint(
            "(payload IS NULL) <> (storage_key IS NULL)",
            name="ck_raw_events_payload_location",
        ),
        Index("ix_raw_events_event_type", "event_type"),
        Index("ix_raw_events_processed_at", "processed_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(64), unique=True)
    event_type: Mapped[str] = mapped_column(String(64))
    payload: Mapped[dict[str, typ.Any] | None] = mapped_column(
        JSON(none_as_null=True), default=None
    )
    storage_key: Mapped[str | None] = mapped_column(
        String(512), default=None, index=True
    )
    ingested_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    processed_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    processing_error: Mapped[str | None] = mapped_column(Text(), default=None)

    @property
    def is_processed(self) -> bool:
        """Return whether extraction has already handled this event."""
        return self.processed_at is not None


class FeedCursor(Base):
    """Conditional-request state for a polled endpoint."""

    __tablename__ = "feed_cursors"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    endpoint: Mapped[str] = mapped_column(String(512), unique=True)
    etag: Mapped[str | None] = mapped_column(String(255), default=None)
    last_polled_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


async def init_bronze_storage(engine: AsyncEngine) -> None:
    """Create all tables registered with Base if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
