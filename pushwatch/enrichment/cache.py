"""TTL cache for actor and repository metadata.

Cached rows live in the ``actors`` and ``repository_snapshots`` tables. A row
younger than the TTL is served without touching the network. Older or absent
rows are revalidated with a conditional request carrying the stored ETag, so
an unchanged resource costs a ``304`` rather than a full response.

Usage
-----
>>> cache = EnrichmentCache(session_factory, fetcher, api_base_url=API)
>>> actor = await cache.resolve_actor("octocat")
>>> repo = await cache.resolve_repository(1296269)

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import typing as typ

import msgspec
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from pushwatch.common.time import utcnow
from pushwatch.github.fetcher import Failed, Fresh, NotModified, RateLimited
from pushwatch.github.models import ActorProfile, RepositoryProfile
from pushwatch.silver.storage import Actor, RepositorySnapshot

from .errors import EnrichmentSourceUnavailableError
from .observability import EnrichmentEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from pushwatch.github.fetcher import ConditionalFetcher, FetchResult

type CachedEntity = Actor | RepositorySnapshot
type Profile = ActorProfile | RepositoryProfile


def _apply_actor(row: Actor, profile: ActorProfile) -> None:
    row.login = profile.login
    row.name = profile.name
    row.avatar_url = profile.avatar_url
    row.html_url = profile.html_url


def _apply_repository(row: RepositorySnapshot, profile: RepositoryProfile) -> None:
    row.full_name = profile.full_name
    row.description = profile.description
    row.html_url = profile.html_url
    row.default_branch = profile.default_branch
    row.stargazers_count = profile.stargazers_count
    row.language = profile.language


@dc.dataclass(frozen=True, slots=True)
class _EntityKind[RowT: CachedEntity, ProfileT: Profile]:
    name: str
    model: type[RowT]
    profile: type[ProfileT]
    apply: cabc.Callable[[RowT, ProfileT], None]


_ACTOR = _EntityKind("actor", Actor, ActorProfile, _apply_actor)
_REPOSITORY = _EntityKind(
    "repository", RepositorySnapshot, RepositoryProfile, _apply_repository
)


@dc.dataclass(frozen=True, slots=True)
class _Lookup:
    key: str
    url: str
    clause: ColumnElement[bool]


def _is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


class EnrichmentCache:
    """Resolve actors and repositories through a database-backed TTL cache."""

    def __init__(  # noqa: PLR0913
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fetcher: ConditionalFetcher,
        *,
        api_base_url: str,
        ttl: dt.timedelta = dt.timedelta(hours=24),
        clock: cabc.Callable[[], dt.datetime] = utcnow,
        event_logger: EnrichmentEventLogger | None = None,
    ) -> None:
        """Bind the cache to storage and a (usually waiting) fetcher."""
        self._session_factory = session_factory
        self._fetcher = fetcher
        self._api_base_url = api_base_url.rstrip("/")
        self._ttl = ttl
        self._clock = clock
        self._event_logger = event_logger or EnrichmentEventLogger()

    async def resolve_actor(
        self, login_or_url: str, *, allow_stale: bool = False
    ) -> Actor:
        """Return the cached or freshly fetched actor for a login or API URL."""
        if _is_url(login_or_url):
            lookup = _Lookup(
                key=login_or_url,
                url=login_or_url,
                clause=Actor.api_url == login_or_url,
            )
        else:
            lookup = _Lookup(
                key=login_or_url,
                url=f"{self._api_base_url}/users/{login_or_url}",
                clause=Actor.login == login_or_url,
            )
        return await self._resolve(_ACTOR, lookup, allow_stale=allow_stale)

    async def resolve_repository(
        self, id_or_url: int | str, *, allow_stale: bool = False
    ) -> RepositorySnapshot:
        """Return the cached or freshly fetched repository for an id or API URL."""
        if isinstance(id_or_url, str) and _is_url(id_or_url):
            lookup = _Lookup(
                key=id_or_url,
                url=id_or_url,
                clause=RepositorySnapshot.api_url == id_or_url,
            )
        else:
            external_id = int(id_or_url)
            lookup = _Lookup(
                key=str(external_id),
                url=f"{self._api_base_url}/repositories/{external_id}",
                clause=RepositorySnapshot.external_id == external_id,
            )
        return await self._resolve(_REPOSITORY, lookup, allow_stale=allow_stale)

    async def _resolve[RowT: CachedEntity, ProfileT: Profile](
        self,
        kind: _EntityKind[RowT, ProfileT],
        lookup: _Lookup,
        *,
        allow_stale: bool,
    ) -> RowT:
        now = self._clock()
        async with self._session_factory() as session:
            cached = await session.scalar(select(kind.model).where(lookup.clause))

        if cached is not None and cached.is_fresh(now, self._ttl):
            self._event_logger.log_cache_hit(kind.name, lookup.key)
            return cached

        prior_etag = cached.etag if cached is not None else None
        result = await self._fetcher.fetch(lookup.url, prior_etag=prior_etag)
        try:
            return await self._apply_result(kind, lookup, cached, result)
        except EnrichmentSourceUnavailableError as exc:
            if allow_stale and cached is not None:
                self._event_logger.log_stale_fallback(kind.name, lookup.key, exc)
                return cached
            raise

    async def _apply_result[RowT: CachedEntity, ProfileT: Profile](
        self,
        kind: _EntityKind[RowT, ProfileT],
        lookup: _Lookup,
        cached: RowT | None,
        result: FetchResult,
    ) -> RowT:
        match result:
            case Fresh(body=body, etag=etag):
                try:
                    profile = msgspec.convert(body, type=kind.profile)
                except msgspec.ValidationError as exc:
                    raise EnrichmentSourceUnavailableError.unexpected_shape(
                        lookup.url, str(exc)
                    ) from exc
                row = await self._upsert(kind, profile, lookup.url, etag)
                self._event_logger.log_cache_refreshed(
                    kind.name, lookup.key, row.external_id
                )
                return row
            case NotModified(etag=etag) if cached is not None:
                row = await self._touch(kind, cached.id, etag)
                self._event_logger.log_cache_not_modified(kind.name, lookup.key)
                return row
            case NotModified():
                raise EnrichmentSourceUnavailableError.unexpected_shape(
                    lookup.url, "304 without a cached row"
                )
            case RateLimited():
                raise EnrichmentSourceUnavailableError.rate_limited(lookup.url)
            case Failed(reason=reason, status_code=status_code):
                raise EnrichmentSourceUnavailableError.failed(
                    lookup.url, reason, status_code
                )

    async def _upsert[RowT: CachedEntity, ProfileT: Profile](
        self,
        kind: _EntityKind[RowT, ProfileT],
        profile: ProfileT,
        url: str,
        etag: str | None,
    ) -> RowT:
        """Insert or update the row keyed by ``profile.id``."""
        async with self._session_factory() as session:
            row = await self._by_external_id(session, kind, profile.id)
            if row is None:
                row = kind.model(external_id=profile.id)
                self._fill(kind, row, profile, url, etag)
                try:
                    async with session.begin_nested():
                        session.add(row)
                        await session.flush()
                except IntegrityError:
                    with session.no_autoflush:
                        row = await self._by_external_id(session, kind, profile.id)
                    if row is None:
                        raise
                    self._fill(kind, row, profile, url, etag)
            else:
                self._fill(kind, row, profile, url, etag)
            await session.commit()
            return row

    def _fill[RowT: CachedEntity, ProfileT: Profile](
        self,
        kind: _EntityKind[RowT, ProfileT],
        row: RowT,
        profile: ProfileT,
        url: str,
        etag: str | None,
    ) -> None:
        kind.apply(row, profile)
        row.api_url = profile.url or url
        row.etag = etag
        row.last_refreshed_at = self._clock()

    async def _touch[RowT: CachedEntity, ProfileT: Profile](
        self, kind: _EntityKind[RowT, ProfileT], row_id: int, etag: str | None
    ) -> RowT:
        """Mark a revalidated row as fresh without changing its content."""
        async with self._session_factory() as session:
            row = await session.get(kind.model, row_id)
            if row is None:
                msg = f"cached {kind.name} {row_id} disappeared during refresh"
                raise LookupError(msg)
            if etag is not None:
                row.etag = etag
            row.last_refreshed_at = self._clock()
            await session.commit()
            return row

    @staticmethod
    async def _by_external_id[RowT: CachedEntity, ProfileT: Profile](
        session: AsyncSession, kind: _EntityKind[RowT, ProfileT], external_id: int
    ) -> RowT | None:
        return await session.scalar(
            select(kind.model).where(kind.model.external_id == external_id)
        )


__all__ = ["EnrichmentCache"]
