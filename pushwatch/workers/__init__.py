"""Background execution: Dramatiq actors and the in-process scheduler."""

from __future__ import annotations

from .scheduler import PollingScheduler

__all__ = ["PollingScheduler"]
