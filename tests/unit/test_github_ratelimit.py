"""Unit tests for the rate-limit budget tracker."""

from __future__ import annotations

import datetime as dt

from pushwatch.github import RateLimiter
from tests.helpers.clock import FakeClock


def _reset_in(clock: FakeClock, seconds: int) -> str:
    return str(int((clock.now + dt.timedelta(seconds=seconds)).timestamp()))


def test_unknown_budget_allows_requests() -> None:
    """A fresh limiter has seen no headers and never blocks."""
    limiter = RateLimiter(clock=FakeClock())

    decision = limiter.check_budget()

    assert decision.allowed is True
    assert decision.wait_until is None
    assert limiter.remaining_budget() is None


def test_exhausted_budget_with_future_reset_is_not_allowed() -> None:
    """Remaining 0 with a reset in the future blocks until the reset."""
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    limiter.record(
        {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": _reset_in(clock, 120)}
    )

    decision = limiter.check_budget()

    assert decision.allowed is False
    assert decision.wait_until == clock.now + dt.timedelta(seconds=120)


def test_exhausted_budget_allows_after_reset() -> None:
    """Once the reset instant passes the budget is assumed replenished."""
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    limiter.record(
        {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": _reset_in(clock, 30)}
    )

    clock.advance(dt.timedelta(seconds=30))

    assert limiter.check_budget().allowed is True


def test_record_overwrites_previous_state() -> None:
    """Each response replaces the stored budget as a whole."""
    clock = FakeClock()
    limiter = RateLimiter(clock=clock)
    limiter.record(
        {
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": _reset_in(clock, 600),
            "X-RateLimit-Limit": "60",
        }
    )
    state = limiter.record({"x-ratelimit-remaining": "9"})

    assert state.remaining == 9
    assert state.reset_at is None
    assert state.limit is None
    assert state.observed_at == clock.now
    assert limiter.remaining_budget() == 9


def test_record_ignores_responses_without_budget_headers() -> None:
    """Responses lacking rate-limit headers leave the state untouched."""
    limiter = RateLimiter(clock=FakeClock())
    limiter.record({"X-RateLimit-Remaining": "5"})

    state = limiter.record({"Content-Type": "application/json"})

    assert state.remaining == 5


def test_unparseable_headers_are_ignored() -> None:
    """Garbage header values do not corrupt the stored budget."""
    limiter = RateLimiter(clock=FakeClock())
    limiter.record({"X-RateLimit-Remaining": "7"})

    state = limiter.record({"X-RateLimit-Remaining": "many"})

    assert state.remaining == 7
