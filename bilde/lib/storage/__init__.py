"""Pluggable content stores for image bytes."""

from bilde.lib.storage.base import ContentStore, StoredFile
from bilde.lib.storage.local import LocalStorageBackend
from bilde.lib.storage.manager import create_content_store

__all__ = ["ContentStore", "LocalStorageBackend", "StoredFile", "create_content_store"]
