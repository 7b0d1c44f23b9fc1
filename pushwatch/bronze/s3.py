"""S3-compatible object storage for raw event payloads.

The store wraps a synchronous boto3 S3 client and runs each call in a worker
thread, mirroring :class:`~pushwatch.bronze.objectstore.FilesystemObjectStore`.
Custom endpoints with path-style addressing cover LocalStack and MinIO.

Usage
-----
>>> client = build_s3_client(ObjectStorageConfig(backend="s3", bucket="events"))
>>> store = S3ObjectStore(client, bucket="events")

"""

from __future__ import annotations

import asyncio
import typing as typ

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .objectstore import ObjectNotFoundError, ObjectStorageError

if typ.TYPE_CHECKING:
    from pushwatch.config import ObjectStorageConfig

_MISSING_CODES = frozenset({"NoSuchKey", "NotFound", "404"})
_JSON_CONTENT_TYPE = "application/json"


def _is_missing(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING_CODES


def build_s3_client(config: ObjectStorageConfig) -> typ.Any:  # noqa: ANN401
    """Return a boto3 S3 client for the configured endpoint and credentials.

    Credentials left unset fall through to boto3's default provider chain.
    """
    addressing = "path" if config.force_path_style else "auto"
    return boto3.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        config=Config(s3={"addressing_style": addressing}),
    )


class S3ObjectStore:
    """Store objects in a single S3 bucket."""

    def __init__(self, client: typ.Any, *, bucket: str) -> None:  # noqa: ANN401
        """Bind the store to a boto3 client and bucket name."""
        self._client = client
        self._bucket = bucket

    @property
    def bucket(self) -> str:
        """Return the bucket holding the objects."""
        return self._bucket

    async def put(self, key: str, data: bytes) -> str:
        """Upload ``data`` as a JSON object under ``key``."""
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=_JSON_CONTENT_TYPE,
            )
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStorageError.operation_failed("put", key, exc) from exc
        return key

    async def get(self, key: str) -> bytes:
        """Download the object stored under ``key``."""
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self._bucket, Key=key
            )
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as exc:
            if _is_missing(exc):
                raise ObjectNotFoundError.for_key(key) from exc
            raise ObjectStorageError.operation_failed("get", key, exc) from exc
        except BotoCoreError as exc:
            raise ObjectStorageError.operation_failed("get", key, exc) from exc

    async def delete(self, key: str) -> bool:
        """Delete ``key``; return ``False`` when the bucket did not hold it.

        S3 reports success for deletes of absent keys, so existence is
        checked first.
        """
        try:
            await asyncio.to_thread(
                self._client.head_object, Bucket=self._bucket, Key=key
            )
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise ObjectStorageError.operation_failed("delete", key, exc) from exc
        except BotoCoreError as exc:
            raise ObjectStorageError.operation_failed("delete", key, exc) from exc

        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self._bucket, Key=key
            )
        except (BotoCoreError, ClientError) as exc:
            raise ObjectStorageError.operation_failed("delete", key, exc) from exc
        return True


__all__ = ["S3ObjectStore", "build_s3_client"]
