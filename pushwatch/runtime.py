"""pushwatch runtime entrypoint for the statistics HTTP service.

This module provides the ASGI application factory used by Granian. It
delegates to :func:`pushwatch.api.app.create_app` for application
construction while keeping the ``pushwatch.runtime:create_app`` entrypoint
stable.

Configuration is driven by environment variables:

- ``PUSHWATCH_HOST``: Bind address (default ``0.0.0.0``)
- ``PUSHWATCH_PORT``: Listen port (default ``8080``)
- ``PUSHWATCH_LOG_LEVEL``: Log level (default ``INFO``)
- ``PUSHWATCH_DATABASE_URL``: Database connection URL (required)

Run the service directly with ``python -m pushwatch.runtime`` or
``pushwatch serve``.
"""

from __future__ import annotations

import os
import typing as typ

from pushwatch.config import ConfigError
from pushwatch.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["create_app", "main"]

logger = get_logger(__name__)

# TCP port number range limits
_MIN_PORT = 1
_MAX_PORT = 65535


def _parse_port(port_str: str) -> int:
    """Parse and validate a port number string.

    Raises
    ------
    SystemExit
        If port_str is not a valid integer in range 1-65535.

    """
    try:
        port = int(port_str)
        if not (_MIN_PORT <= port <= _MAX_PORT):
            msg = f"port {port} outside valid range {_MIN_PORT}-{_MAX_PORT}"
            raise ValueError(msg)  # noqa: TRY301 - unify conversion and range errors
    except ValueError as exc:
        log_error(
            logger,
            "Invalid PUSHWATCH_PORT value: %r (must be %d-%d): %s",
            port_str,
            _MIN_PORT,
            _MAX_PORT,
            exc,
        )
        raise SystemExit(1) from exc
    return port


def create_app() -> falcon.asgi.App:
    """Create the Falcon ASGI application from the environment.

    Raises
    ------
    ConfigError
        If ``PUSHWATCH_DATABASE_URL`` is unset.

    """
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from pushwatch.api.app import AppDependencies
    from pushwatch.api.app import create_app as _create_api_app
    from pushwatch.stats import PipelineStatsService

    database_url = os.environ.get("PUSHWATCH_DATABASE_URL", "").strip()
    if not database_url:
        raise ConfigError.missing("PUSHWATCH_DATABASE_URL")

    engine = create_async_engine(database_url)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    deps = AppDependencies(stats_service=PipelineStatsService(session_factory))
    return _create_api_app(deps)


def main() -> None:
    """Start the pushwatch statistics server using Granian.

    Reads ``PUSHWATCH_HOST``, ``PUSHWATCH_PORT``, and ``PUSHWATCH_LOG_LEVEL``
    from the environment and starts the ASGI server.
    """
    from granian import Granian
    from granian.constants import Interfaces

    host = os.environ.get("PUSHWATCH_HOST", "0.0.0.0")  # noqa: S104 - bind all interfaces for container
    port_str = os.environ.get("PUSHWATCH_PORT", "8080")
    port = _parse_port(port_str)
    log_level_str = os.environ.get("PUSHWATCH_LOG_LEVEL", "INFO")

    normalized_level, invalid_level = configure_logging(log_level_str)
    if invalid_level:
        log_warning(
            logger,
            "Invalid PUSHWATCH_LOG_LEVEL %r, falling back to %s",
            log_level_str,
            normalized_level,
        )

    log_info(
        logger,
        "Starting pushwatch runtime on %s:%d (log_level=%s)",
        host,
        port,
        normalized_level,
    )

    server = Granian(
        "pushwatch.runtime:create_app",
        address=host,
        port=port,
        interface=Interfaces.ASGI,
        factory=True,
    )
    server.serve()


if __name__ == "__main__":
    main()
