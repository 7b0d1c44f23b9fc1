"""Rate-limit budget tracking for the GitHub REST API.

GitHub reports the remaining request budget and the instant it resets in
every response. :class:`RateLimiter` keeps the most recent pair and answers
one question before each request: may we spend a request now?
"""

from __future__ import annotations

import dataclasses
import threading
import typing as typ

from pushwatch.common.time import from_unix_seconds, utcnow

from .observability import IngestionEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

REMAINING_HEADER = "X-RateLimit-Remaining"
RESET_HEADER = "X-RateLimit-Reset"
LIMIT_HEADER = "X-RateLimit-Limit"

type Clock = cabc.Callable[[], dt.datetime]


@dataclasses.dataclass(frozen=True, slots=True)
class RateLimitState:
    """Snapshot of the budget reported by the most recent response."""

    remaining: int | None = None
    reset_at: dt.datetime | None = None
    limit: int | None = None
    observed_at: dt.datetime | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class BudgetDecision:
    """Outcome of :meth:`RateLimiter.check_budget`."""

    allowed: bool
    wait_until: dt.datetime | None = None


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _parse_reset(raw: str | None) -> dt.datetime | None:
    if raw is None:
        return None
    try:
        return from_unix_seconds(raw.strip())
    except (ValueError, OverflowError, OSError):
        return None


class RateLimiter:
    """Gate outgoing requests on the last observed rate-limit headers.

    State is overwritten by every :meth:`record` call; the latest response
    reflects the server's view, so nothing is merged. A lock keeps the
    read-modify-write of the shared state atomic when one limiter serves
    concurrent enrichment tasks or worker threads.
    """

    def __init__(
        self,
        *,
        clock: Clock = utcnow,
        event_logger: IngestionEventLogger | None = None,
    ) -> None:
        """Create a limiter with unknown budget (requests allowed)."""
        self._clock = clock
        self._event_logger = event_logger or IngestionEventLogger()
        self._lock = threading.Lock()
        self._state = RateLimitState()

    @property
    def state(self) -> RateLimitState:
        """Return the current snapshot."""
        with self._lock:
            return self._state

    def check_budget(self) -> BudgetDecision:
        """Return whether a request may be issued now.

        Requests are refused only when the budget is known to be zero and the
        reset instant is still in the future.
        """
        with self._lock:
            state = self._state
        if state.remaining is None or state.remaining > 0:
            return BudgetDecision(allowed=True)
        if state.reset_at is None or state.reset_at <= self._clock():
            return BudgetDecision(allowed=True)
        return BudgetDecision(allowed=False, wait_until=state.reset_at)

    def record(self, headers: cabc.Mapping[str, str]) -> RateLimitState:
        """Replace the budget with the one reported by ``headers`` and log it.

        Every field is taken from this response, so a header it omits clears
        the stored value. Responses carrying no usable budget header at all
        leave the state untouched.
        """
        remaining = _parse_int(_header(headers, REMAINING_HEADER))
        reset_at = _parse_reset(_header(headers, RESET_HEADER))
        limit = _parse_int(_header(headers, LIMIT_HEADER))
        if remaining is None and reset_at is None and limit is None:
            return self.state

        current = RateLimitState(
            remaining=remaining,
            reset_at=reset_at,
            limit=limit,
            observed_at=self._clock(),
        )
        with self._lock:
            self._state = current
        self._event_logger.log_rate_limit_updated(current)
        return current

    def remaining_budget(self) -> int | None:
        """Return the last known remaining budget, if any."""
        return self.state.remaining


def _header(headers: cabc.Mapping[str, str], name: str) -> str | None:
    # httpx.Headers is case-insensitive; plain dicts used in tests may not be.
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value
