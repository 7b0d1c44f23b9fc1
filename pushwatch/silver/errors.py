"""Shared silver-layer error types."""

from __future__ import annotations

import enum


class ExtractionReason(enum.StrEnum):
    """Machine-readable reasons for extraction failures."""

    MALFORMED_PAYLOAD = "malformed_payload"
    CONCURRENT_INSERT = "concurrent_insert"


class ExtractionError(Exception):
    """Raised when a raw event cannot be turned into a silver record."""

    def __init__(
        self,
        message: str,
        reason: ExtractionReason | str | None = None,
    ) -> None:
        """Store a machine-readable reason for programmatic handling."""
        super().__init__(message)
        self.reason = reason

    @classmethod
    def malformed_payload(cls, message: str) -> ExtractionError:
        """Create an error when a payload lacks required fields or types."""
        return cls(message, reason=ExtractionReason.MALFORMED_PAYLOAD)

    @classmethod
    def not_an_object(cls) -> ExtractionError:
        """Create an error for a payload that is not a JSON object."""
        return cls.malformed_payload("payload must be a JSON object")

    @classmethod
    def concurrent_insert(cls, push_id: str) -> ExtractionError:
        """Create an error when a conflicting insert left no readable row."""
        return cls(
            f"failed to insert push record {push_id!r}; concurrent insert?",
            reason=ExtractionReason.CONCURRENT_INSERT,
        )
