"""Errors raised while enriching push records."""

from __future__ import annotations

from pushwatch.github.errors import FeedFetchError


class EnrichmentSourceUnavailableError(FeedFetchError):
    """Raised when actor or repository metadata cannot be fetched.

    The cached row, if any, is left untouched when this is raised.
    """


class MissingEnrichmentKeyError(ValueError):
    """Raised when a push record carries nothing to look an entity up by."""

    def __init__(self, push_id: str, entity: str) -> None:
        """Name the push record and the entity that cannot be resolved."""
        self.push_id = push_id
        self.entity = entity
        super().__init__(f"push record {push_id!r} has no {entity} login or URL")
