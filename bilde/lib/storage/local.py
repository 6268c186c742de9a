"""Local filesystem content store."""

from __future__ import annotations

import asyncio
import hashlib
import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

from bilde.errors import ContentNotFoundError, MalformedKeyError, StoreUnavailableError
from bilde.lib.storage.base import StoredFile
from bilde.naming import Naming


class LocalStorageBackend:
    """Store files under ``{base_path}/{container}/{key}``."""

    def __init__(self, base_path: Path, container: str = "images", naming: Naming | None = None) -> None:
        self._base_path = base_path
        self._container = container
        self._naming = naming or Naming()

    async def put(self, key: str, data: bytes, content_type: str) -> StoredFile:
        path = self._key_to_path(key)
        try:
            await asyncio.to_thread(self._write_file, path, data)
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot write {key!r}: {exc}") from exc
        return StoredFile(
            key=key,
            content_type=content_type,
            size=len(data),
            content_hash=hashlib.sha256(data).hexdigest(),
        )

    async def get(self, key: str) -> bytes:
        path = self._key_to_path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise ContentNotFoundError(key) from exc
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot read {key!r}: {exc}") from exc

    async def delete(self, key: str) -> None:
        path = self._key_to_path(key)
        try:
            await asyncio.to_thread(self._unlink, path)
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot delete {key!r}: {exc}") from exc

    async def exists(self, key: str) -> bool:
        path = self._key_to_path(key)
        return await asyncio.to_thread(path.is_file)

    async def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        root = self._base_path / self._container
        for path in await asyncio.to_thread(self._walk, root):
            key = path.name
            if key.startswith(prefix):
                yield key

    async def close(self) -> None:
        """Nothing to release."""

    # -- internal helpers --

    def _key_to_path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or "\x00" in key or key in (".", ".."):
            raise MalformedKeyError(key, "not a flat file name")
        return self._base_path / self._naming.relative_path(self._container, key)

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        # Write to a sibling temp file and rename so readers never see a partial blob
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    @staticmethod
    def _unlink(path: Path) -> None:
        path.unlink(missing_ok=True)

    @staticmethod
    def _walk(base: Path) -> list[Path]:
        if not base.exists():
            return []
        return [p for p in base.iterdir() if p.is_file() and not p.name.startswith(".tmp-")]
