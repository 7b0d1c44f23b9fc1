"""Assembly of the pushwatch object graph from configuration.

``build_pipeline`` wires one shared :class:`RateLimiter` and HTTP client into
the ingestion worker (aborting on an exhausted budget) and the enrichment
cache (waiting for the reset). ``open_pipeline`` additionally owns the
database engine, for callers that start from a URL such as the CLI and the
Dramatiq actors.

Usage
-----
>>> async with open_pipeline("sqlite+aiosqlite:///pushwatch.db") as pipeline:
...     await pipeline.ingestion.run_cycle()
...     await pipeline.enrichment.run_batch()

"""

from __future__ import annotations

import contextlib
import dataclasses as dc
import typing as typ

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from pushwatch.bronze import FilesystemObjectStore, RawEventWriter
from pushwatch.config import (
    ConfigError,
    EnrichmentConfig,
    FeedClientConfig,
    ObjectStorageBackend,
    ObjectStorageConfig,
)
from pushwatch.enrichment import EnrichmentCache, EnrichmentWorker
from pushwatch.github import (
    BudgetPolicy,
    ConditionalFetcher,
    FeedIngestionWorker,
    RateLimiter,
)
from pushwatch.silver import init_silver_storage
from pushwatch.stats import PipelineStatsService

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    import httpx
    from sqlalchemy.ext.asyncio import AsyncSession

    from pushwatch.bronze import ObjectStore

__all__ = ["Pipeline", "PipelineSettings", "build_pipeline", "open_pipeline"]


@dc.dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Configuration bundle for every pipeline component."""

    feed: FeedClientConfig = dc.field(default_factory=FeedClientConfig)
    enrichment: EnrichmentConfig = dc.field(default_factory=EnrichmentConfig)
    object_storage: ObjectStorageConfig = dc.field(
        default_factory=ObjectStorageConfig
    )

    @classmethod
    def from_env(cls) -> PipelineSettings:
        """Build every section from ``PUSHWATCH_*`` variables."""
        return cls(
            feed=FeedClientConfig.from_env(),
            enrichment=EnrichmentConfig.from_env(),
            object_storage=ObjectStorageConfig.from_env(),
        )


@dc.dataclass(frozen=True, slots=True)
class Pipeline:
    """Ready-to-run services sharing one rate limiter and HTTP client."""

    session_factory: async_sessionmaker[AsyncSession]
    rate_limiter: RateLimiter
    fetcher: ConditionalFetcher
    ingestion: FeedIngestionWorker
    enrichment: EnrichmentWorker
    stats: PipelineStatsService

    async def aclose(self) -> None:
        """Release the HTTP client."""
        await self.fetcher.aclose()


def _object_store(config: ObjectStorageConfig) -> ObjectStore | None:
    if not config.enabled:
        return None
    if config.backend == ObjectStorageBackend.S3:
        from pushwatch.bronze.s3 import S3ObjectStore, build_s3_client

        if config.bucket is None:
            raise ConfigError.missing("PUSHWATCH_S3_BUCKET")
        return S3ObjectStore(build_s3_client(config), bucket=config.bucket)
    return FilesystemObjectStore(config.base_path)


def build_pipeline(
    session_factory: async_sessionmaker[AsyncSession],
    settings: PipelineSettings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> Pipeline:
    """Wire fetchers, workers and the stats service around ``session_factory``."""
    resolved = settings or PipelineSettings()
    rate_limiter = RateLimiter()
    fetcher = ConditionalFetcher(
        resolved.feed,
        rate_limiter,
        http_client=http_client,
        policy=BudgetPolicy.ABORT,
    )
    raw_writer = RawEventWriter(
        session_factory, object_store=_object_store(resolved.object_storage)
    )
    ingestion = FeedIngestionWorker(
        session_factory,
        fetcher,
        feed_url=resolved.feed.feed_url,
        raw_writer=raw_writer,
    )
    cache = EnrichmentCache(
        session_factory,
        fetcher.with_policy(BudgetPolicy.WAIT),
        api_base_url=resolved.feed.api_base_url,
        ttl=resolved.enrichment.cache_ttl,
    )
    enrichment = EnrichmentWorker(
        session_factory,
        cache,
        config=resolved.enrichment,
        rate_limiter=rate_limiter,
    )
    return Pipeline(
        session_factory=session_factory,
        rate_limiter=rate_limiter,
        fetcher=fetcher,
        ingestion=ingestion,
        enrichment=enrichment,
        stats=PipelineStatsService(session_factory),
    )


@contextlib.asynccontextmanager
async def open_pipeline(
    database_url: str,
    settings: PipelineSettings | None = None,
    *,
    create_tables: bool = True,
) -> cabc.AsyncIterator[Pipeline]:
    """Yield a pipeline bound to a fresh engine, disposing it afterwards."""
    engine = create_async_engine(database_url)
    try:
        if create_tables:
            await init_silver_storage(engine)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        pipeline = build_pipeline(session_factory, settings)
        try:
            yield pipeline
        finally:
            await pipeline.aclose()
    finally:
        await engine.dispose()
