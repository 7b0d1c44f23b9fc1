"""Unit tests for shared UTC helpers."""

from __future__ import annotations

import datetime as dt

from pushwatch.common.time import from_unix_seconds, utcnow


def test_utcnow_is_timezone_aware() -> None:
    """Timestamps for storage always carry UTC tzinfo."""
    assert utcnow().tzinfo is dt.UTC


def test_from_unix_seconds_accepts_header_strings() -> None:
    """Reset headers arrive as decimal strings of epoch seconds."""
    assert from_unix_seconds("1720440000") == dt.datetime(
        2024, 7, 8, 12, 0, tzinfo=dt.UTC
    )
