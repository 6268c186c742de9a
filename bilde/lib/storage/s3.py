"""S3-compatible content store (requires ``pip install bilde[s3]``)."""

from __future__ import annotations

import hashlib
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

try:
    import aioboto3
    from botocore.exceptions import BotoCoreError, ClientError
except ImportError as exc:
    raise ImportError(
        "S3 storage backend requires aioboto3. Install it with: pip install bilde[s3]"
    ) from exc

from bilde.errors import ContentNotFoundError, StoreUnavailableError
from bilde.lib.storage.base import StoredFile
from bilde.naming import Naming

if TYPE_CHECKING:
    from bilde.config import S3Config

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_missing(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING_CODES


class S3StorageBackend:
    """Store files in an S3-compatible bucket under ``{prefix}/{container}/{key}``."""

    def __init__(self, config: S3Config, container: str = "images", naming: Naming | None = None) -> None:
        self._config = config
        self._container = container
        self._naming = naming or Naming()
        self._session = aioboto3.Session()

    def _client_kwargs(self) -> dict:
        kwargs: dict = {
            "region_name": self._config.region,
        }
        if self._config.endpoint_url:
            kwargs["endpoint_url"] = self._config.endpoint_url
        if self._config.access_key_id:
            kwargs["aws_access_key_id"] = self._config.access_key_id
        if self._config.secret_access_key:
            kwargs["aws_secret_access_key"] = self._config.secret_access_key
        return kwargs

    def _full_key(self, key: str) -> str:
        path = self._naming.relative_path(self._container, key)
        if self._config.prefix:
            return f"{self._config.prefix.rstrip('/')}/{path}"
        return path

    async def put(self, key: str, data: bytes, content_type: str) -> StoredFile:
        try:
            async with self._session.client("s3", **self._client_kwargs()) as s3:
                await s3.put_object(
                    Bucket=self._config.bucket,
                    Key=self._full_key(key),
                    Body=data,
                    ContentType=content_type,
                )
        except (BotoCoreError, ClientError) as exc:
            raise StoreUnavailableError(f"Cannot write {key!r}: {exc}") from exc

        return StoredFile(
            key=key,
            content_type=content_type,
            size=len(data),
            content_hash=hashlib.sha256(data).hexdigest(),
        )

    async def get(self, key: str) -> bytes:
        try:
            async with self._session.client("s3", **self._client_kwargs()) as s3:
                response = await s3.get_object(Bucket=self._config.bucket, Key=self._full_key(key))
                return await response["Body"].read()
        except ClientError as exc:
            if _is_missing(exc):
                raise ContentNotFoundError(key) from exc
            raise StoreUnavailableError(f"Cannot read {key!r}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreUnavailableError(f"Cannot read {key!r}: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            async with self._session.client("s3", **self._client_kwargs()) as s3:
                await s3.delete_object(Bucket=self._config.bucket, Key=self._full_key(key))
        except (BotoCoreError, ClientError) as exc:
            raise StoreUnavailableError(f"Cannot delete {key!r}: {exc}") from exc

    async def exists(self, key: str) -> bool:
        try:
            async with self._session.client("s3", **self._client_kwargs()) as s3:
                await s3.head_object(Bucket=self._config.bucket, Key=self._full_key(key))
                return True
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise StoreUnavailableError(f"Cannot stat {key!r}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreUnavailableError(f"Cannot stat {key!r}: {exc}") from exc

    async def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        full_prefix = self._full_key(prefix)
        async with self._session.client("s3", **self._client_kwargs()) as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(
                Bucket=self._config.bucket, Prefix=full_prefix
            ):
                for obj in page.get("Contents", []):
                    # Strip prefix and container to return bare keys
                    yield obj["Key"].rsplit("/", 1)[-1]

    async def close(self) -> None:
        """No persistent resources to clean up."""
