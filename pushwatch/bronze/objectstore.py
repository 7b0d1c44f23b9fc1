r"""Object storage for raw event payloads.

When object storage is enabled, the bronze layer keeps only a key in the
``raw_events`` row and writes the JSON payload to an :class:`ObjectStore`.
Keys follow a date-partitioned layout derived from the ingestion instant::

    events/{YYYY}/{MM}/{DD}/{event_id}.json

Usage
-----
>>> import asyncio
>>> from pathlib import Path
>>> store = FilesystemObjectStore(Path("/var/lib/pushwatch/objects"))
>>> key = build_event_key("12345", ingested_at)
>>> asyncio.run(store.put(key, b'{"id": "12345"}'))
'events/2024/07/08/12345.json'

"""

from __future__ import annotations

import asyncio
import typing as typ
from pathlib import PurePosixPath

if typ.TYPE_CHECKING:
    import datetime as dt
    from pathlib import Path


class ObjectStorageError(RuntimeError):
    """Raised when the object store cannot complete an operation."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        """Record the key involved, when known."""
        self.key = key
        super().__init__(message)

    @classmethod
    def invalid_key(cls, key: str) -> ObjectStorageError:
        """Return an error for a key escaping the store root."""
        return cls(f"invalid object key: {key!r}", key=key)

    @classmethod
    def operation_failed(
        cls, operation: str, key: str, exc: BaseException
    ) -> ObjectStorageError:
        """Return an error wrapping an underlying I/O failure."""
        return cls(f"object storage {operation} failed for {key!r}: {exc}", key=key)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when a key does not exist in the store."""

    @classmethod
    def for_key(cls, key: str) -> ObjectNotFoundError:
        """Return an error naming the missing key."""
        return cls(f"object not found: {key!r}", key=key)


def build_event_key(event_id: str, ingested_at: dt.datetime) -> str:
    """Return the storage key for ``event_id`` ingested at ``ingested_at``."""
    return f"events/{ingested_at:%Y/%m/%d}/{event_id}.json"


@typ.runtime_checkable
class ObjectStore(typ.Protocol):
    """Protocol for external payload storage.

    Implementations must treat keys as opaque POSIX-style paths and raise
    :class:`ObjectNotFoundError` from :meth:`get` for absent keys.
    """

    async def put(self, key: str, data: bytes) -> str:
        """Store ``data`` under ``key`` and return the key."""
        ...

    async def get(self, key: str) -> bytes:
        """Return the bytes stored under ``key``."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove ``key``; return ``False`` when it did not exist."""
        ...


class FilesystemObjectStore:
    """Store objects as files beneath a base directory.

    Parameters
    ----------
    base_path
        Root directory. Key segments become subdirectories.

    """

    def __init__(self, base_path: Path) -> None:
        """Initialise the store with a base directory path."""
        self._base_path = base_path

    @property
    def base_path(self) -> Path:
        """Return the root directory."""
        return self._base_path

    def _path_for(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ObjectStorageError.invalid_key(key)
        return self._base_path.joinpath(*relative.parts)

    async def put(self, key: str, data: bytes) -> str:
        """Write ``data`` to the file for ``key``, creating parent directories."""
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as exc:
            raise ObjectStorageError.operation_failed("put", key, exc) from exc
        return key

    async def get(self, key: str) -> bytes:
        """Read the file for ``key``."""
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise ObjectNotFoundError.for_key(key) from exc
        except OSError as exc:
            raise ObjectStorageError.operation_failed("get", key, exc) from exc

    async def delete(self, key: str) -> bool:
        """Remove the file for ``key``."""
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ObjectStorageError.operation_failed("delete", key, exc) from exc
        return True


__all__ = [
    "FilesystemObjectStore",
    "ObjectNotFoundError",
    "ObjectStorageError",
    "ObjectStore",
    "build_event_key",
]
