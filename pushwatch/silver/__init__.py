"""Silver layer: push records derived from bronze raw events."""

from __future__ import annotations

from .errors import ExtractionError, ExtractionReason
from .extractors import PushRecordDraft, get_extractor, register
from .services import PushRecordOutcome, PushRecordWriter
from .storage import (
    Actor,
    EnrichmentStatus,
    PushRecord,
    RepositorySnapshot,
    init_silver_storage,
)

__all__ = [
    "Actor",
    "EnrichmentStatus",
    "ExtractionError",
    "ExtractionReason",
    "PushRecord",
    "PushRecordDraft",
    "PushRecordOutcome",
    "PushRecordWriter",
    "RepositorySnapshot",
    "get_extractor",
    "init_silver_storage",
    "register",
]
