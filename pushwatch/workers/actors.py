"""Dramatiq actors for scheduled ingestion and enrichment.

Each message runs one unit of work in a fresh event loop with its own engine,
so actors can be spread over any number of Dramatiq worker threads.

Usage
-----
Queue one ingestion cycle and one enrichment batch:

>>> run_ingestion_cycle_job.send(database_url="postgresql+asyncpg://...")
>>> run_enrichment_batch_job.send(
...     database_url="postgresql+asyncpg://...",
...     limit=50,
... )

"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

import dramatiq

from pushwatch.factory import PipelineSettings, open_pipeline
from pushwatch.workers._broker import ensure_broker_configured

if typ.TYPE_CHECKING:
    from pushwatch.enrichment import EnrichmentBatchResult
    from pushwatch.github import IngestionCycleResult

# Actors bind to the broker when declared.
ensure_broker_configured()


async def _run_ingestion_cycle(
    database_url: str, settings: PipelineSettings | None = None
) -> IngestionCycleResult:
    """Run one ingestion cycle against ``database_url``."""
    async with open_pipeline(database_url, settings) as pipeline:
        return await pipeline.ingestion.run_cycle()


async def _run_enrichment_batch(
    database_url: str,
    limit: int | None,
    settings: PipelineSettings | None = None,
) -> EnrichmentBatchResult:
    """Run one enrichment batch against ``database_url``."""
    async with open_pipeline(database_url, settings) as pipeline:
        return await pipeline.enrichment.run_batch(limit)


@dramatiq.actor
def run_ingestion_cycle_job(database_url: str) -> dict[str, typ.Any]:
    """Dramatiq actor polling the events feed once.

    Parameters
    ----------
    database_url
        SQLAlchemy URL for the database.

    Returns
    -------
    dict[str, Any]
        The cycle counters and outcome.

    """
    settings = PipelineSettings.from_env()
    result = asyncio.run(_run_ingestion_cycle(database_url, settings))
    return dataclasses.asdict(result)


@dramatiq.actor
def run_enrichment_batch_job(
    database_url: str, limit: int | None = None
) -> dict[str, typ.Any]:
    """Dramatiq actor enriching up to ``limit`` pending push records.

    Parameters
    ----------
    database_url
        SQLAlchemy URL for the database.
    limit
        Maximum records to claim; ``None`` uses the configured batch size.

    Returns
    -------
    dict[str, Any]
        The batch counters.

    """
    settings = PipelineSettings.from_env()
    result = asyncio.run(_run_enrichment_batch(database_url, limit, settings))
    return dataclasses.asdict(result)


__all__ = ["run_enrichment_batch_job", "run_ingestion_cycle_job"]
