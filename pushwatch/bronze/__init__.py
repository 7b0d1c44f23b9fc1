"""Bronze layer primitives: raw event storage and ingestion services."""

from __future__ import annotations

from .errors import (
    RawEventPayloadMissingError,
    RawEventPersistError,
    TimezoneAwareRequiredError,
)
from .objectstore import (
    FilesystemObjectStore,
    ObjectNotFoundError,
    ObjectStorageError,
    ObjectStore,
    build_event_key,
)
from .services import FeedCursorStore, IngestOutcome, RawEventEnvelope, RawEventWriter
from .storage import Base, FeedCursor, RawEvent, UTCDateTime, init_bronze_storage

__all__ = [
    "Base",
    "FeedCursor",
    "FeedCursorStore",
    "FilesystemObjectStore",
    "IngestOutcome",
    "ObjectNotFoundError",
    "ObjectStorageError",
    "ObjectStore",
    "RawEvent",
    "RawEventEnvelope",
    "RawEventPayloadMissingError",
    "RawEventPersistError",
    "RawEventWriter",
    "TimezoneAwareRequiredError",
    "UTCDateTime",
    "build_event_key",
    "init_bronze_storage",
]
