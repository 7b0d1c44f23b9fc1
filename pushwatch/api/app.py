"""Application factory for the pushwatch Falcon ASGI application.

Usage
-----
Build the app around a statistics service::

    from pushwatch.api.app import AppDependencies, create_app
    from pushwatch.stats import PipelineStatsService

    deps = AppDependencies(stats_service=PipelineStatsService(session_factory))
    app = create_app(deps)

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon
import falcon.asgi
from sqlalchemy.exc import OperationalError

from pushwatch.api.stats.resources import StatsResource
from pushwatch.logging import get_logger, log_error

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from pushwatch.stats import PipelineStatsService

__all__ = ["AppDependencies", "create_app"]

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Dependencies for the Falcon ASGI application.

    Attributes
    ----------
    stats_service
        Service computing pipeline statistics from the database.

    """

    stats_service: PipelineStatsService


async def handle_database_unavailable(
    _req: Request,
    resp: Response,
    ex: OperationalError,
    _params: dict[str, typ.Any],
) -> None:
    """Map database connectivity failures to an HTTP 503 JSON response."""
    log_error(logger, "Statistics query failed: %s", ex, exc_info=ex)
    resp.status = falcon.HTTP_503
    resp.media = {
        "title": "Database unavailable",
        "description": "Pipeline statistics are temporarily unavailable.",
    }


def create_app(dependencies: AppDependencies) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Parameters
    ----------
    dependencies
        Services backing the registered resources.

    Returns
    -------
    falcon.asgi.App
        App serving ``GET /stats``.

    """
    app = falcon.asgi.App()
    app.add_route("/stats", StatsResource(dependencies.stats_service))
    app.add_error_handler(OperationalError, handle_database_unavailable)
    return app
