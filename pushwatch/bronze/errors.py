"""Shared bronze-layer error types."""

from __future__ import annotations


class TimezoneAwareRequiredError(ValueError):
    """Raised when datetime inputs lack timezone information."""

    def __init__(self, context: str) -> None:
        """Attach a consistent message for the failing context."""
        super().__init__(f"{context} must be timezone aware")

    @classmethod
    def for_column(cls) -> TimezoneAwareRequiredError:
        """Return an error for a naive value bound to a UTC column."""
        return cls("stored datetime values")


class RawEventPersistError(RuntimeError):
    """Raised when an insert conflicted but no existing row can be found."""

    def __init__(self, event_id: str) -> None:
        """Include the external event id in the message."""
        self.event_id = event_id
        super().__init__(f"expected existing raw_event {event_id!r} after rollback")


class RawEventPayloadMissingError(RuntimeError):
    """Raised when a raw event has neither an inline payload nor a storage key."""

    def __init__(self, event_id: str) -> None:
        """Record the offending event id."""
        self.event_id = event_id
        super().__init__(f"raw_event {event_id!r} has no payload or storage key")
