"""Command-line entrypoint for operating the pushwatch pipeline.

Every subcommand except ``serve`` opens its own engine from
``PUSHWATCH_DATABASE_URL`` (or ``--database-url``), runs one unit of work and
prints a JSON summary.

Usage
-----
::

    pushwatch ingest
    pushwatch enrich --limit 20
    pushwatch requeue --failed
    pushwatch stats
    pushwatch run
    pushwatch serve

"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import os
import signal
import sys
import typing as typ

import msgspec

from pushwatch.config import ConfigError, SchedulerConfig
from pushwatch.factory import PipelineSettings, open_pipeline
from pushwatch.logging import configure_logging, get_logger, log_info, log_warning
from pushwatch.workers.scheduler import PollingScheduler

if typ.TYPE_CHECKING:
    from pushwatch.factory import Pipeline

logger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pushwatch", description=__doc__)
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL; defaults to PUSHWATCH_DATABASE_URL",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level; defaults to PUSHWATCH_LOG_LEVEL or INFO",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("ingest", help="Run one ingestion cycle")

    enrich = commands.add_parser("enrich", help="Run one enrichment batch")
    enrich.add_argument(
        "--limit", type=int, default=None, help="Maximum push records to claim"
    )

    requeue = commands.add_parser(
        "requeue", help="Return push records to the pending state"
    )
    which = requeue.add_mutually_exclusive_group()
    which.add_argument(
        "--failed",
        dest="mode",
        action="store_const",
        const="failed",
        help="Requeue failed records (default)",
    )
    which.add_argument(
        "--stale",
        dest="mode",
        action="store_const",
        const="stale",
        help="Requeue records stranded in progress",
    )
    requeue.add_argument(
        "--limit", type=int, default=None, help="Maximum failed records to requeue"
    )
    requeue.set_defaults(mode="failed")

    commands.add_parser("stats", help="Print pipeline statistics")
    commands.add_parser("run", help="Run the polling scheduler until interrupted")
    commands.add_parser("serve", help="Serve GET /stats over HTTP")
    return parser


def _print_json(payload: object) -> None:
    sys.stdout.write(msgspec.json.format(msgspec.json.encode(payload)).decode())
    sys.stdout.write("\n")


def _resolve_database_url(explicit: str | None) -> str:
    database_url = explicit or os.environ.get("PUSHWATCH_DATABASE_URL", "").strip()
    if not database_url:
        raise ConfigError.missing("PUSHWATCH_DATABASE_URL")
    return database_url


async def _run_scheduler(pipeline: Pipeline, config: SchedulerConfig) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop.set)
    scheduler = PollingScheduler(pipeline.ingestion, pipeline.enrichment, config)
    await scheduler.run(stop)


async def _dispatch(args: argparse.Namespace, database_url: str) -> object:
    settings = PipelineSettings.from_env()
    async with open_pipeline(database_url, settings) as pipeline:
        match args.command:
            case "ingest":
                return dataclasses.asdict(await pipeline.ingestion.run_cycle())
            case "enrich":
                return dataclasses.asdict(await pipeline.enrichment.run_batch(args.limit))
            case "requeue" if args.mode == "stale":
                return {"requeued": await pipeline.enrichment.requeue_stale()}
            case "requeue":
                return {
                    "requeued": await pipeline.enrichment.requeue_failed(args.limit)
                }
            case "stats":
                return (await pipeline.stats.snapshot()).to_dict()
            case "run":
                config = SchedulerConfig.from_env(database_url)
                await _run_scheduler(pipeline, config)
                return None
            case _:
                msg = f"unknown command: {args.command}"
                raise ValueError(msg)


def main(argv: list[str] | None = None) -> int:
    """Run a pushwatch subcommand.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.

    Returns
    -------
    int
        Exit code: 0 on success, 2 on a configuration error.

    """
    args = _build_parser().parse_args(argv)
    raw_level = args.log_level or os.environ.get("PUSHWATCH_LOG_LEVEL", "INFO")
    applied, invalid = configure_logging(raw_level)
    if invalid:
        log_warning(
            logger, "Invalid log level %r, falling back to %s", raw_level, applied
        )

    if args.command == "serve":
        from pushwatch.runtime import main as serve

        serve()
        return 0

    try:
        database_url = _resolve_database_url(args.database_url)
        result = asyncio.run(_dispatch(args, database_url))
    except ConfigError as exc:
        sys.stderr.write(f"pushwatch: {exc}\n")
        return 2
    except KeyboardInterrupt:
        log_info(logger, "Interrupted")
        return 130

    if result is not None:
        _print_json(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
