"""Scripted HTTP transport and fetcher construction for tests."""

from __future__ import annotations

import collections
import datetime as dt
import typing as typ

import httpx

from pushwatch.common.time import utcnow
from pushwatch.config import FeedClientConfig
from pushwatch.github import BudgetPolicy, ConditionalFetcher, RateLimiter

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    import pytest

    from tests.helpers.clock import FakeClock

type Reply = httpx.Response | Exception | cabc.Callable[[httpx.Request], httpx.Response]

FEED_URL = "https://api.github.com/events"


def json_response(
    body: object,
    *,
    status_code: int = 200,
    etag: str | None = None,
    remaining: int | None = 4999,
    reset: int | None = None,
) -> httpx.Response:
    """Return a JSON response carrying optional ETag and budget headers."""
    headers: dict[str, str] = {}
    if etag is not None:
        headers["ETag"] = etag
    if remaining is not None:
        headers["X-RateLimit-Remaining"] = str(remaining)
        headers["X-RateLimit-Limit"] = "5000"
    if reset is not None:
        headers["X-RateLimit-Reset"] = str(reset)
    return httpx.Response(status_code, json=body, headers=headers)


def status_response(
    status_code: int,
    *,
    etag: str | None = None,
    remaining: int | None = 4999,
    reset: int | None = None,
) -> httpx.Response:
    """Return an empty-bodied response (for example a ``304``)."""
    headers: dict[str, str] = {}
    if etag is not None:
        headers["ETag"] = etag
    if remaining is not None:
        headers["X-RateLimit-Remaining"] = str(remaining)
    if reset is not None:
        headers["X-RateLimit-Reset"] = str(reset)
    return httpx.Response(status_code, headers=headers)


class ScriptedTransport:
    """Serve queued replies per URL and record every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._replies: dict[str, collections.deque[Reply]] = collections.defaultdict(
            collections.deque
        )

    def queue(self, url: str, *replies: Reply) -> None:
        """Append replies served, in order, for ``url``."""
        self._replies[url].extend(replies)

    def calls_to(self, url: str) -> list[httpx.Request]:
        """Return the requests issued for ``url``."""
        return [request for request in self.requests if str(request.url) == url]

    def handler(self, request: httpx.Request) -> httpx.Response:
        """Serve the next reply for the request URL."""
        self.requests.append(request)
        replies = self._replies.get(str(request.url))
        if not replies:
            return httpx.Response(404, json={"message": "Not Found"})
        reply = replies.popleft()
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, delay: float) -> None:
        """Record ``delay`` and advance the fake clock when present."""
        self.delays.append(delay)
        if self._clock is not None:
            self._clock.advance(dt.timedelta(seconds=delay))


def make_fetcher(  # noqa: PLR0913
    transport: ScriptedTransport,
    *,
    config: FeedClientConfig | None = None,
    rate_limiter: RateLimiter | None = None,
    policy: BudgetPolicy = BudgetPolicy.ABORT,
    sleep: SleepRecorder | None = None,
    clock: cabc.Callable[[], dt.datetime] = utcnow,
) -> ConditionalFetcher:
    """Return a fetcher whose HTTP client is served by ``transport``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(transport.handler))
    return ConditionalFetcher(
        config or FeedClientConfig(feed_url=FEED_URL),
        rate_limiter or RateLimiter(clock=clock),
        http_client=client,
        policy=policy,
        sleep=sleep or SleepRecorder(),
        clock=clock,
    )


def route_default_client(
    monkeypatch: pytest.MonkeyPatch, transport: ScriptedTransport
) -> None:
    """Serve every fetcher built without an explicit client from ``transport``."""

    def _build(config: FeedClientConfig) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.MockTransport(transport.handler),
            headers={"User-Agent": config.user_agent},
        )

    monkeypatch.setattr("pushwatch.github.fetcher.build_http_client", _build)
