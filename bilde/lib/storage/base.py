"""Content store protocol and common types."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass
class StoredFile:
    """Acknowledgement of a durable content write."""

    key: str
    content_type: str
    size: int
    content_hash: str


@runtime_checkable
class ContentStore(Protocol):
    """Byte blobs addressed by storage keys produced by :class:`~bilde.naming.Naming`.

    A single ``put`` is atomic per key. Implementations raise
    ``ContentNotFoundError`` from ``get`` for missing keys and
    ``StoreUnavailableError`` for any other I/O failure.
    """

    async def put(self, key: str, data: bytes, content_type: str) -> StoredFile:
        """Store data under the given key, replacing any previous content."""
        ...

    async def get(self, key: str) -> bytes:
        """Retrieve the raw bytes for a key."""
        ...

    async def delete(self, key: str) -> None:
        """Remove a key from storage."""
        ...

    async def exists(self, key: str) -> bool:
        """Check whether a key exists in storage."""
        ...

    async def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        """Yield all keys matching the given prefix."""
        ...

    async def close(self) -> None:
        """Release resources held by the store."""
        ...
