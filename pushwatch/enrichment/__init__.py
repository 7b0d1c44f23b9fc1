"""Enrichment of push records with actor and repository metadata."""

from __future__ import annotations

from .cache import EnrichmentCache
from .errors import EnrichmentSourceUnavailableError, MissingEnrichmentKeyError
from .observability import EnrichmentEventLogger, EnrichmentEventType
from .service import EnrichmentBatchResult, EnrichmentWorker

__all__ = [
    "EnrichmentBatchResult",
    "EnrichmentCache",
    "EnrichmentEventLogger",
    "EnrichmentEventType",
    "EnrichmentSourceUnavailableError",
    "EnrichmentWorker",
    "MissingEnrichmentKeyError",
]
