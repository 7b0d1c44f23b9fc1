"""Cooperative in-process scheduler for ingestion and enrichment.

Both stages run in one event loop on independent cadences. A shared
``asyncio.Event`` stops them: each stage finishes the item in flight, then
the loops exit without waiting out their interval.
"""

from __future__ import annotations

import asyncio
import typing as typ

from pushwatch.logging import get_logger, log_exception, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from pushwatch.config import SchedulerConfig
    from pushwatch.enrichment import EnrichmentWorker
    from pushwatch.github import FeedIngestionWorker

    type Job = cabc.Callable[[asyncio.Event], cabc.Awaitable[object]]

logger = get_logger(__name__)


class PollingScheduler:
    """Run ingestion cycles and enrichment batches until stopped."""

    def __init__(
        self,
        ingestion: FeedIngestionWorker,
        enrichment: EnrichmentWorker,
        config: SchedulerConfig,
    ) -> None:
        """Bind the scheduler to both workers and their intervals."""
        self._ingestion = ingestion
        self._enrichment = enrichment
        self._config = config

    async def run(self, stop: asyncio.Event) -> None:
        """Run both loops until ``stop`` is set."""
        log_info(
            logger,
            "Scheduler started (ingestion_interval=%ss enrichment_interval=%ss)",
            self._config.ingestion_interval.total_seconds(),
            self._config.enrichment_interval.total_seconds(),
        )
        async with asyncio.TaskGroup() as group:
            group.create_task(
                self._loop(
                    "ingestion",
                    self._config.ingestion_interval,
                    self._run_ingestion,
                    stop,
                )
            )
            group.create_task(
                self._loop(
                    "enrichment",
                    self._config.enrichment_interval,
                    self._run_enrichment,
                    stop,
                )
            )
        log_info(logger, "Scheduler stopped")

    async def _run_ingestion(self, stop: asyncio.Event) -> object:
        return await self._ingestion.run_cycle(stop)

    async def _run_enrichment(self, stop: asyncio.Event) -> object:
        return await self._enrichment.run_batch(stop=stop)

    @staticmethod
    async def _loop(
        name: str,
        interval: dt.timedelta,
        job: Job,
        stop: asyncio.Event,
    ) -> None:
        while not stop.is_set():
            try:
                await job(stop)
            except Exception as exc:  # noqa: BLE001
                # The failing run has already logged its own failure event.
                log_exception(logger, f"Scheduled {name} run failed", exc)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval.total_seconds())
            except TimeoutError:
                continue


__all__ = ["PollingScheduler"]
