"""Silver push records and the enrichment entities they link to."""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import enum
import typing as typ

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, backref, mapped_column, relationship

from pushwatch.bronze.storage import Base, RawEvent, UTCDateTime
from pushwatch.common.time import utcnow

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


class EnrichmentStatus(enum.StrEnum):
    """Lifecycle of a push record through enrichment."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Actor(Base):
    """Cached GitHub user profile keyed by GitHub's numeric id."""

    __tablename__ = "actors"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    external_id: Mapped[int] = mapped_column(BigInteger, unique=True)
    login: Mapped[str] = mapped_column(String(255), index=True)
    name: Mapped[str | None] = mapped_column(String(255), default=None)
    avatar_url: Mapped[str | None] = mapped_column(String(512), default=None)
    html_url: Mapped[str | None] = mapped_column(String(512), default=None)
    api_url: Mapped[str | None] = mapped_column(String(512), default=None, index=True)
    etag: Mapped[str | None] = mapped_column(String(255), default=None)
    last_refreshed_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow
    )

    def is_fresh(self, now: dt.datetime, ttl: dt.timedelta) -> bool:
        """Return whether the cached profile is younger than ``ttl``."""
        return now - self.last_refreshed_at < ttl


class RepositorySnapshot(Base):
    """Cached GitHub repository metadata keyed by GitHub's numeric id."""

    __tablename__ = "repository_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    external_id: Mapped[int] = mapped_column(BigInteger, unique=True)
    full_name: Mapped[str] = mapped_column(String(255), index=True)
    description: Mapped[str | None] = mapped_column(Text(), default=None)
    html_url: Mapped[str | None] = mapped_column(String(512), default=None)
    default_branch: Mapped[str | None] = mapped_column(String(255), default=None)
    stargazers_count: Mapped[int | None] = mapped_column(Integer, default=None)
    language: Mapped[str | None] = mapped_column(String(64), default=None)
    api_url: Mapped[str | None] = mapped_column(String(512), default=None, index=True)
    etag: Mapped[str | None] = mapped_column(String(255), default=None)
    last_refreshed_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow
    )

    def is_fresh(self, now: dt.datetime, ttl: dt.timedelta) -> bool:
        """Return whether the cached metadata is younger than ``ttl``."""
        return now - self.last_refreshed_at < ttl


class PushRecord(Base):
    """Structured projection of one ``PushEvent`` raw event."""

    __tablename__ = "push_records"
    __table_args__ = (
        Index(
            "ix_push_records_status_created",
            "enrichment_status",
            "created_at",
            "id",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    raw_event_id: Mapped[int] = mapped_column(
        ForeignKey("raw_events.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    push_id: Mapped[str] = mapped_column(String(64), unique=True)
    repository_id: Mapped[int] = mapped_column(BigInteger)
    ref: Mapped[str] = mapped_column(String(255))
    before_sha: Mapped[str] = mapped_column(String(64))
    head_sha: Mapped[str] = mapped_column(String(64))
    actor_login: Mapped[str | None] = mapped_column(String(255), default=None)
    actor_url: Mapped[str | None] = mapped_column(String(512), default=None)
    repo_name: Mapped[str | None] = mapped_column(String(255), default=None)
    repo_url: Mapped[str | None] = mapped_column(String(512), default=None)
    enrichment_status: Mapped[str] = mapped_column(
        String(16), default=EnrichmentStatus.PENDING.value
    )
    enrichment_error: Mapped[str | None] = mapped_column(Text(), default=None)
    enrichment_started_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    enriched_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), default=None)
    actor_id: Mapped[int | None] = mapped_column(
        ForeignKey("actors.id", ondelete="SET NULL"), default=None
    )
    repository_snapshot_id: Mapped[int | None] = mapped_column(
        ForeignKey("repository_snapshots.id", ondelete="SET NULL"), default=None
    )
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    raw_event: Mapped[RawEvent] = relationship(
        backref=backref("push_record", uselist=False, cascade="all, delete-orphan")
    )
    actor: Mapped[Actor | None] = relationship()
    repository_snapshot: Mapped[RepositorySnapshot | None] = relationship()


async def init_silver_storage(engine: AsyncEngine) -> None:
    """Create Silver tables (and Bronze dependencies) if absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
