"""Collaborator bundle and the facade exposing ingest, variant and query calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from bilde.db.index import InMemoryMetadataIndex, MetadataIndex, SQLAlchemyMetadataIndex
from bilde.lib import observability
from bilde.lib.imaging import Codec, ImagingOptions, PillowCodec
from bilde.lib.queue import WorkQueue, create_queue
from bilde.lib.storage import ContentStore, create_content_store
from bilde.naming import Naming
from bilde.services import (
    ImageMetadata,
    ImageVersion,
    IngestResult,
    IngestService,
    QueryService,
    VariantResult,
    VariantService,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from bilde.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImagingContext:
    """Every collaborator the orchestrators use, each independently replaceable."""

    content_store: ContentStore
    metadata_index: MetadataIndex
    queue: WorkQueue
    codec: Codec
    naming: Naming = field(default_factory=Naming)


class Imaging:
    """The full upward surface: ``ingest``, ``get``, ``get_variant`` and ``query``."""

    def __init__(
        self,
        context: ImagingContext,
        versions: tuple[ImageVersion, ...] = (),
        max_upload_size: int | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        self.context = context
        self.ingestor = IngestService(context, versions=versions, max_upload_size=max_upload_size)
        self.variants = VariantService(context)
        self.queries = QueryService(context)
        self._engine = engine

    async def ingest(self, data: bytes, content_type: str, file_name: str) -> IngestResult:
        return await self.ingestor.ingest(data, content_type, file_name)

    async def get(self, key: str) -> VariantResult:
        return await self.variants.get(key)

    async def get_variant(
        self,
        source_key: str,
        width: int,
        height: int = 0,
        format: str | None = None,
        quality: int = 0,
        use_cache: bool = True,
    ) -> VariantResult:
        return await self.variants.get_variant(
            source_key, width, height, format=format, quality=quality, use_cache=use_cache
        )

    async def query(
        self,
        identifier: str | None = None,
        variant: str | None = None,
        file_name: str | None = None,
        limit: int | None = None,
    ) -> list[ImageMetadata]:
        return await self.queries.query(identifier, variant, file_name, limit=limit)

    async def close(self) -> None:
        """Release resources held by the collaborators."""
        await self.context.queue.stop()
        await self.context.metadata_index.close()
        await self.context.content_store.close()
        if self._engine is not None:
            await self._engine.dispose()


def versions_from_settings(settings: Settings) -> tuple[ImageVersion, ...]:
    return tuple(
        ImageVersion(
            name=name,
            width=version.width,
            height=version.height,
            format=version.format,
            quality=version.quality,
        )
        for name, version in settings.imaging.versions.items()
    )


async def create_imaging(settings: Settings) -> Imaging:
    """Build the collaborators named in *settings* and wrap them in :class:`Imaging`."""
    naming = Naming(default_extension=settings.imaging.default_extension)
    codec = PillowCodec(ImagingOptions.from_config(settings.imaging))
    content_store = create_content_store(settings.storage, naming=naming)

    engine = None
    if settings.index.backend == "memory":
        metadata_index: MetadataIndex = InMemoryMetadataIndex()
    elif settings.index.backend == "sqlalchemy":
        from bilde.db.session import create_engine, create_session_maker, create_tables

        engine = create_engine(settings.db)
        observability.instrument_sqlalchemy(engine)
        if settings.index.create_tables:
            await create_tables(engine)
        metadata_index = SQLAlchemyMetadataIndex(create_session_maker(engine))
    else:
        raise ValueError(
            f"Unknown index backend '{settings.index.backend}'. Use 'memory' or 'sqlalchemy'."
        )

    queue = create_queue(settings)
    await queue.start()

    context = ImagingContext(
        content_store=content_store,
        metadata_index=metadata_index,
        queue=queue,
        codec=codec,
        naming=naming,
    )
    logger.debug(
        "Imaging ready: storage=%s index=%s queue=%s",
        settings.storage.backend,
        settings.index.backend,
        settings.queue.backend,
    )
    return Imaging(
        context,
        versions=versions_from_settings(settings),
        max_upload_size=settings.storage.max_upload_size,
        engine=engine,
    )
