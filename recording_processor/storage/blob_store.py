"""Object storage for raw audio (S3-compatible) and the storage gateway.

S3BlobStore wraps boto3 against any S3-compatible endpoint. StorageGateway
owns key generation so uploads of same-named files in one project never
collide, even across gateways in separate processes, and exposes async
put/get/delete for the stages.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import secrets
import threading
import time
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from recording_processor.utils.errors import (
    NotFoundError,
    PreconditionError,
    StorageError,
)

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStore(Protocol):
    """Blocking key/bytes store."""

    def put_object(self, key: str, data: bytes, content_type: str = "") -> None: ...

    def fetch_object(self, key: str) -> bytes: ...

    def delete_object(self, key: str) -> None: ...


class S3BlobStore:
    """S3-compatible client for the audio bucket.

    Reads configuration from environment variables:
        S3_ENDPOINT, S3_BUCKET, S3_ACCESS_KEY_ID, S3_SECRET_ACCESS_KEY
    """

    def __init__(
        self,
        endpoint_url: str | None = None,
        bucket: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        region_name: str = "auto",
    ) -> None:
        self.endpoint_url = endpoint_url or os.environ.get("S3_ENDPOINT", "")
        self.bucket = bucket or os.environ.get("S3_BUCKET", "")
        self.access_key_id = access_key_id or os.environ.get(
            "S3_ACCESS_KEY_ID", ""
        )
        self.secret_access_key = secret_access_key or os.environ.get(
            "S3_SECRET_ACCESS_KEY", ""
        )

        if not self.endpoint_url:
            raise StorageError("S3_ENDPOINT is required", operation="init")
        if not self.bucket:
            raise StorageError("S3_BUCKET is required", operation="init")

        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name=region_name,
        )

    def fetch_object(self, key: str) -> bytes:
        """Retrieve an object by key.

        Raises:
            NotFoundError: If no object exists under the key.
            StorageError: If the object cannot be retrieved.
        """
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            if error_code in _MISSING_KEY_CODES:
                raise NotFoundError(
                    f"Audio object '{key}' does not exist",
                    operation="fetch_object",
                    key=key,
                ) from exc
            raise StorageError(
                f"Failed to fetch object '{key}': {error_code}",
                operation="fetch_object",
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(
                f"Failed to fetch object '{key}': {exc}",
                operation="fetch_object",
            ) from exc

    def put_object(self, key: str, data: bytes, content_type: str = "") -> None:
        """Store an object.

        Raises:
            StorageError: If the object cannot be stored.
        """
        try:
            kwargs: dict = {"Bucket": self.bucket, "Key": key, "Body": data}
            if content_type:
                kwargs["ContentType"] = content_type
            self._client.put_object(**kwargs)
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise StorageError(
                f"Failed to put object '{key}': {error_code}",
                operation="put_object",
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(
                f"Failed to put object '{key}': {exc}",
                operation="put_object",
            ) from exc

    def delete_object(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error in S3."""
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            error_code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise StorageError(
                f"Failed to delete object '{key}': {error_code}",
                operation="delete_object",
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(
                f"Failed to delete object '{key}': {exc}",
                operation="delete_object",
            ) from exc


def safe_filename(filename: str) -> str:
    """Reduce an uploaded file name to a single safe key segment."""
    base = filename.replace("\\", "/").rsplit("/", 1)[-1]
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "recording"


class StorageGateway:
    """Async facade over a BlobStore that generates collision-free keys.

    Keys look like ``{project_id}/{timestamp}-{nonce}-{filename}``. The
    timestamp is UTC epoch microseconds, bumped so it strictly increases
    across calls on this gateway; the nonce is 8 random hex characters, so
    gateways in other processes stamping the same microsecond still differ.
    """

    def __init__(self, store: BlobStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._last_stamp = 0

    @property
    def store(self) -> BlobStore:
        return self._store

    def _next_stamp(self) -> int:
        with self._lock:
            stamp = max(time.time_ns() // 1000, self._last_stamp + 1)
            self._last_stamp = stamp
            return stamp

    def make_key(self, project_id: str, filename: str) -> str:
        if not project_id or "/" in project_id:
            raise PreconditionError(f"Invalid project id: {project_id!r}")
        nonce = secrets.token_hex(4)
        return f"{project_id}/{self._next_stamp()}-{nonce}-{safe_filename(filename)}"

    async def put(
        self,
        project_id: str,
        filename: str,
        data: bytes,
        content_type: str = "",
    ) -> str:
        """Store an upload and return its blob ref.

        Raises:
            PreconditionError: If the upload is empty.
            StorageError: If the store rejects the write. Not retried here.
        """
        if not data:
            raise PreconditionError(f"Refusing to store empty upload '{filename}'")
        key = self.make_key(project_id, filename)
        await asyncio.to_thread(self._store.put_object, key, data, content_type)
        logger.info(
            "Stored upload %s (%d bytes)",
            key,
            len(data),
            extra={"project_id": project_id},
        )
        return key

    async def get(self, blob_ref: str) -> bytes:
        """Fetch stored bytes by blob ref."""
        return await asyncio.to_thread(self._store.fetch_object, blob_ref)

    async def delete(self, blob_ref: str) -> None:
        await asyncio.to_thread(self._store.delete_object, blob_ref)
