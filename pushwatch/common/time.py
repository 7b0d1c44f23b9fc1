"""Time helpers shared across storage and services."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


def from_unix_seconds(value: str | int | float) -> dt.datetime:
    """Convert a unix timestamp (as sent in rate-limit headers) to aware UTC."""
    return dt.datetime.fromtimestamp(float(value), tz=dt.UTC)

