"""Unit tests for the cooperative polling scheduler."""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

import pytest

from pushwatch.config import SchedulerConfig
from pushwatch.workers import PollingScheduler
from pushwatch.workers import scheduler as scheduler_module
from tests.helpers.logs import capture_module_logs

if typ.TYPE_CHECKING:
    from pushwatch.enrichment import EnrichmentWorker
    from pushwatch.github import FeedIngestionWorker


class _CountingIngestion:
    def __init__(self, stop_after: int, *, fail_first: bool = False) -> None:
        self.calls = 0
        self._stop_after = stop_after
        self._fail_first = fail_first

    async def run_cycle(self, stop: asyncio.Event | None = None) -> None:
        self.calls += 1
        if self.calls >= self._stop_after and stop is not None:
            stop.set()
        if self._fail_first and self.calls == 1:
            msg = "feed unavailable"
            raise RuntimeError(msg)


class _CountingEnrichment:
    def __init__(self) -> None:
        self.calls = 0

    async def run_batch(
        self, limit: int | None = None, *, stop: asyncio.Event | None = None
    ) -> None:
        self.calls += 1


def _config(ingestion_s: float, enrichment_s: float) -> SchedulerConfig:
    return SchedulerConfig(
        database_url="sqlite+aiosqlite://",
        ingestion_interval=dt.timedelta(seconds=ingestion_s),
        enrichment_interval=dt.timedelta(seconds=enrichment_s),
    )


def _scheduler(
    ingestion: _CountingIngestion,
    enrichment: _CountingEnrichment,
    config: SchedulerConfig,
) -> PollingScheduler:
    return PollingScheduler(
        typ.cast("FeedIngestionWorker", ingestion),
        typ.cast("EnrichmentWorker", enrichment),
        config,
    )


@pytest.mark.asyncio
async def test_scheduler_runs_both_stages_until_stopped() -> None:
    """Each stage runs on its own cadence until the stop event fires."""
    ingestion = _CountingIngestion(stop_after=3)
    enrichment = _CountingEnrichment()
    stop = asyncio.Event()

    await asyncio.wait_for(
        _scheduler(ingestion, enrichment, _config(0.01, 0.01)).run(stop), timeout=5
    )

    assert ingestion.calls == 3
    assert enrichment.calls >= 1


@pytest.mark.asyncio
async def test_stop_interrupts_long_interval() -> None:
    """Setting the event wakes loops without waiting out the interval."""
    ingestion = _CountingIngestion(stop_after=1)
    enrichment = _CountingEnrichment()
    stop = asyncio.Event()

    await asyncio.wait_for(
        _scheduler(ingestion, enrichment, _config(3600, 3600)).run(stop), timeout=5
    )

    assert ingestion.calls == 1


@pytest.mark.asyncio
async def test_failed_run_is_logged_and_loop_continues(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """An exception from one run does not end the loop."""
    logs = capture_module_logs(monkeypatch, scheduler_module)
    ingestion = _CountingIngestion(stop_after=2, fail_first=True)
    enrichment = _CountingEnrichment()
    stop = asyncio.Event()

    await asyncio.wait_for(
        _scheduler(ingestion, enrichment, _config(0.01, 0.01)).run(stop), timeout=5
    )

    assert ingestion.calls == 2
    failures = [
        call for call in logs.calls if call.message == "Scheduled ingestion run failed"
    ]
    assert len(failures) == 1
    assert isinstance(failures[0].exc_info, RuntimeError)
