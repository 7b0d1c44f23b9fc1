"""Falcon resource serving :class:`~pushwatch.stats.PipelineStats`.

Usage
-----
Register the endpoint on the Falcon app::

    from pushwatch.api.stats.resources import StatsResource

    app.add_route("/stats", StatsResource(stats_service))

"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from pushwatch.stats import PipelineStatsService

__all__ = ["StatsResource"]


class StatsResource:
    """Return aggregate counts for raw events, push records and the cache."""

    def __init__(self, stats_service: PipelineStatsService) -> None:
        """Bind the resource to the statistics service."""
        self._stats_service = stats_service

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /stats requests.

        Parameters
        ----------
        _req
            Falcon request (unused).
        resp
            Falcon response populated with the current snapshot.

        """
        stats = await self._stats_service.snapshot()
        resp.media = stats.to_dict()
        resp.status = HTTPStatus.OK
