"""Rate-limit aware conditional GET client for the GitHub REST API.

:class:`ConditionalFetcher` is the only component that talks to GitHub. It
consults the shared :class:`~pushwatch.github.ratelimit.RateLimiter` before
every request, sends ``If-None-Match`` when the caller holds an ETag, records
the budget headers of every response and retries transient failures with a
polynomial backoff. Callers receive one of four result variants and never see
an HTTP exception.

Usage
-----
>>> fetcher = ConditionalFetcher(FeedClientConfig(), RateLimiter())
>>> match await fetcher.fetch("https://api.github.com/events", prior_etag=etag):
...     case Fresh(body=body, etag=new_etag):
...         ...
...     case NotModified():
...         ...

"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import typing as typ

import httpx
import msgspec

from pushwatch.common.time import utcnow

from .errors import FetchFailureReason
from .observability import IngestionEventLogger
from .ratelimit import REMAINING_HEADER

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from pushwatch.config import FeedClientConfig

    from .ratelimit import RateLimiter

_HTTP_NOT_MODIFIED = 304
_HTTP_FORBIDDEN = 403
_HTTP_NOT_FOUND = 404
_HTTP_TOO_MANY_REQUESTS = 429
_HTTP_SERVER_ERROR = 500

type Sleep = cabc.Callable[[float], cabc.Awaitable[None]]


class BudgetPolicy(enum.StrEnum):
    """What a caller does when the rate-limit budget is exhausted."""

    ABORT = "abort"
    WAIT = "wait"


@dataclasses.dataclass(frozen=True, slots=True)
class Fresh:
    """A ``2xx`` response carrying a decoded JSON body."""

    body: typ.Any
    etag: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class NotModified:
    """A ``304`` response; the caller's cached copy is still current."""

    etag: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class RateLimited:
    """The request was withheld because the budget is exhausted."""

    wait_until: dt.datetime | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class Failed:
    """The request failed permanently or exhausted its retries."""

    reason: FetchFailureReason
    status_code: int | None = None


type FetchResult = Fresh | NotModified | RateLimited | Failed


@dataclasses.dataclass(frozen=True, slots=True)
class _Retryable:
    reason: FetchFailureReason
    status_code: int | None = None


def build_http_client(config: FeedClientConfig) -> httpx.AsyncClient:
    """Return an ``httpx.AsyncClient`` with GitHub REST headers applied."""
    headers = {
        "Accept": "application/vnd.github+json",
        "User-Agent": config.user_agent,
    }
    if config.token:
        headers["Authorization"] = f"Bearer {config.token}"
    return httpx.AsyncClient(timeout=config.timeout_s, headers=headers)


class ConditionalFetcher:
    """Issue budget-gated conditional GETs with retry and backoff."""

    def __init__(  # noqa: PLR0913
        self,
        config: FeedClientConfig,
        rate_limiter: RateLimiter,
        *,
        http_client: httpx.AsyncClient | None = None,
        policy: BudgetPolicy = BudgetPolicy.ABORT,
        sleep: Sleep = asyncio.sleep,
        clock: cabc.Callable[[], dt.datetime] = utcnow,
        event_logger: IngestionEventLogger | None = None,
    ) -> None:
        """Bind the fetcher to a limiter and an optional shared HTTP client."""
        self._config = config
        self._rate_limiter = rate_limiter
        self._owns_client = http_client is None
        self._client = http_client or build_http_client(config)
        self._policy = policy
        self._sleep = sleep
        self._clock = clock
        self._event_logger = event_logger or IngestionEventLogger()

    @property
    def rate_limiter(self) -> RateLimiter:
        """Return the limiter shared with other fetchers."""
        return self._rate_limiter

    @property
    def policy(self) -> BudgetPolicy:
        """Return the budget policy applied before each request."""
        return self._policy

    def with_policy(self, policy: BudgetPolicy) -> ConditionalFetcher:
        """Return a fetcher sharing this client and limiter under ``policy``."""
        sibling = ConditionalFetcher(
            self._config,
            self._rate_limiter,
            http_client=self._client,
            policy=policy,
            sleep=self._sleep,
            clock=self._clock,
            event_logger=self._event_logger,
        )
        sibling._owns_client = False
        return sibling

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    def backoff_delay(self, attempt: int) -> float:
        """Return the sleep in seconds before retry number ``attempt`` (1-based)."""
        return float(
            attempt**self._config.backoff_exponent * self._config.backoff_base_s
        )

    async def fetch(self, url: str, prior_etag: str | None = None) -> FetchResult:
        """Fetch ``url``, retrying transient failures.

        Parameters
        ----------
        url : str
            Absolute URL of the REST resource.
        prior_etag : str | None, optional
            ETag from the previous successful fetch; sent as
            ``If-None-Match`` so an unchanged resource costs a ``304``.

        Returns
        -------
        FetchResult
            ``Fresh``, ``NotModified``, ``RateLimited`` or ``Failed``.

        """
        attempt = 0
        while True:
            withheld = await self._await_budget()
            if withheld is not None:
                return withheld

            outcome = await self._attempt(url, prior_etag)
            if not isinstance(outcome, _Retryable):
                return outcome
            if attempt >= self._config.max_retries:
                return Failed(reason=outcome.reason, status_code=outcome.status_code)

            attempt += 1
            if not self._rate_limiter.check_budget().allowed:
                # The next loop iteration waits for or reports the reset.
                continue
            delay = self.backoff_delay(attempt)
            self._event_logger.log_fetch_retry(url, attempt, outcome.reason, delay)
            await self._sleep(delay)

    async def _await_budget(self) -> RateLimited | None:
        decision = self._rate_limiter.check_budget()
        if decision.allowed:
            return None
        if self._policy is BudgetPolicy.WAIT and decision.wait_until is not None:
            wait_s = (decision.wait_until - self._clock()).total_seconds()
            if wait_s <= self._config.max_budget_wait_s:
                await self._sleep(max(wait_s, 0.0))
                return None
        return RateLimited(wait_until=decision.wait_until)

    async def _attempt(
        self, url: str, prior_etag: str | None
    ) -> FetchResult | _Retryable:
        headers = {"If-None-Match": prior_etag} if prior_etag else {}
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.TransportError:
            return _Retryable(FetchFailureReason.TRANSIENT_NETWORK)

        self._rate_limiter.record(response.headers)
        return _classify(response, prior_etag)


def _classify(
    response: httpx.Response, prior_etag: str | None
) -> FetchResult | _Retryable:
    status = response.status_code
    if status == _HTTP_NOT_MODIFIED:
        return NotModified(etag=response.headers.get("ETag") or prior_etag)
    if response.is_success:
        try:
            body = msgspec.json.decode(response.content)
        except msgspec.DecodeError:
            return Failed(reason=FetchFailureReason.INVALID_JSON, status_code=status)
        return Fresh(body=body, etag=response.headers.get("ETag"))
    if status == _HTTP_TOO_MANY_REQUESTS or (
        status == _HTTP_FORBIDDEN
        and response.headers.get(REMAINING_HEADER, "").strip() == "0"
    ):
        return _Retryable(FetchFailureReason.RATE_LIMITED, status)
    if status >= _HTTP_SERVER_ERROR:
        return _Retryable(FetchFailureReason.SERVER_ERROR, status)
    if status == _HTTP_NOT_FOUND:
        return Failed(reason=FetchFailureReason.NOT_FOUND, status_code=status)
    return Failed(reason=FetchFailureReason.CLIENT_ERROR, status_code=status)


__all__ = [
    "BudgetPolicy",
    "ConditionalFetcher",
    "Failed",
    "FetchResult",
    "Fresh",
    "NotModified",
    "RateLimited",
    "build_http_client",
]
