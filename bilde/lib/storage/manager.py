"""Content store factory."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from bilde.lib.loader import load_backend
from bilde.lib.storage.local import LocalStorageBackend

if TYPE_CHECKING:
    from bilde.config import StoreConfig
    from bilde.lib.storage.base import ContentStore
    from bilde.naming import Naming


def create_content_store(config: StoreConfig, naming: Naming | None = None) -> ContentStore:
    """Instantiate a content store from configuration."""
    backend_type = config.backend

    if backend_type == "local":
        return LocalStorageBackend(
            base_path=Path(config.local_path),
            container=config.container,
            naming=naming,
        )

    if backend_type == "s3":
        from bilde.lib.storage.s3 import S3StorageBackend

        return S3StorageBackend(config.s3, container=config.container, naming=naming)

    # Dynamic import: "module:ClassName"
    if ":" in backend_type:
        cls = load_backend(backend_type)
        return cls(config)

    raise ValueError(
        f"Unknown storage backend '{backend_type}'. "
        "Use 'local', 's3', or 'module:ClassName'."
    )
