"""Upload ingestion: store the original, index it, queue its precomputation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import uuid4

from bilde.db.index import IndexRecord
from bilde.errors import (
    IngestionError,
    IngestStage,
    InvalidInputError,
    TransformFailedError,
    UploadTooLargeError,
)
from bilde.lib import observability
from bilde.lib.queue import ImageJob, JobVariant
from bilde.naming import ORIGINAL
from bilde.services.variant_service import validate_dimensions, validate_quality

if TYPE_CHECKING:
    from bilde.context import ImagingContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageVersion:
    """A named variant generated for every upload."""

    name: str
    width: int = 0
    height: int = 0
    format: str = "jpeg"
    quality: int = 85


@dataclass(frozen=True)
class IngestResult:
    identifier: str
    key: str


def new_identifier() -> str:
    return str(uuid4())


class IngestService:
    """Accept uploads and run them through the content, index and queue stages.

    Stages run strictly in order so that an index row always has content
    behind it and a queued job always has an indexed source. A failed stage
    is reported with :class:`~bilde.errors.IngestionError`; earlier stages are
    not undone. Retrying the whole call is safe since every attempt mints a
    fresh identifier.
    """

    def __init__(
        self,
        context: ImagingContext,
        versions: Iterable[ImageVersion] = (),
        max_upload_size: int | None = None,
        id_factory: Callable[[], str] = new_identifier,
    ) -> None:
        self._ctx = context
        self._versions = tuple(versions)
        self._max_upload_size = max_upload_size
        self._id_factory = id_factory
        for version in self._versions:
            validate_dimensions(version.width, version.height)
            validate_quality(version.quality)

    @property
    def versions(self) -> tuple[ImageVersion, ...]:
        return self._versions

    async def ingest(self, data: bytes, content_type: str, file_name: str) -> IngestResult:
        if not data:
            raise InvalidInputError("content is empty")
        if not content_type or not content_type.strip():
            raise InvalidInputError("content type must be specified")
        if not file_name or not file_name.strip():
            raise InvalidInputError("file name must be specified")
        if self._max_upload_size is not None and len(data) > self._max_upload_size:
            raise UploadTooLargeError(
                f"File size {len(data)} exceeds limit {self._max_upload_size}"
            )

        naming = self._ctx.naming
        identifier = self._id_factory().lower()
        if not identifier or "_" in identifier:
            raise ValueError(f"Identifier factory returned an unusable identifier: {identifier!r}")
        extension = naming.extension_from_key(file_name)
        if not naming.is_valid_extension(extension):
            raise InvalidInputError(f"Unsupported file extension in {file_name!r}")
        key = naming.original_key(identifier, extension)
        width, height = await self._probe(data, file_name)

        record = IndexRecord(
            identifier=identifier,
            variant=ORIGINAL,
            file_name=key,
            content_type=content_type,
            extension=extension,
            file_size=len(data),
            width=width,
            height=height,
            original_file_name=file_name,
        )
        job = ImageJob(
            identifier=identifier,
            original_key=key,
            file_name=file_name,
            content_type=content_type,
            file_size=len(data),
            width=width,
            height=height,
            variants=self.plan_variants(identifier),
        )

        stages: tuple[tuple[IngestStage, Callable[[], Awaitable[object]]], ...] = (
            (IngestStage.CONTENT, lambda: self._ctx.content_store.put(key, data, content_type)),
            (IngestStage.INDEX, lambda: self._ctx.metadata_index.upsert(record)),
            (IngestStage.QUEUE, lambda: self._ctx.queue.publish(job)),
        )

        with observability.span(observability.INGEST_SPAN, key=key, size=len(data)):
            completed: list[IngestStage] = []
            for stage, run in stages:
                try:
                    await run()
                except Exception as exc:
                    logger.error("Ingestion of %s failed at stage %s", key, stage.value)
                    raise IngestionError(stage, identifier, key, completed) from exc
                completed.append(stage)

        logger.info("Ingested %s (%d bytes, %d variants queued)", key, len(data), len(job.variants))
        return IngestResult(identifier=identifier, key=key)

    def plan_variants(self, identifier: str) -> list[JobVariant]:
        """Name every configured version of *identifier* without touching a store."""
        naming = self._ctx.naming
        template = naming.partial_key(identifier)
        planned = []
        for version in self._versions:
            descriptor = self._ctx.codec.resolve_format(version.format, version.quality)
            variant = naming.variant_key(
                descriptor.extension, descriptor.quality, version.width, version.height
            )
            planned.append(
                JobVariant(
                    name=version.name,
                    key=template.format(variant=variant, extension=descriptor.extension),
                    width=version.width,
                    height=version.height,
                    format=descriptor.extension,
                    quality=descriptor.quality,
                )
            )
        return planned

    async def _probe(self, data: bytes, file_name: str) -> tuple[int | None, int | None]:
        """Best-effort pixel dimensions; unknown when the codec cannot read the data."""
        try:
            return await asyncio.to_thread(self._ctx.codec.dimensions, data)
        except TransformFailedError:
            logger.debug("Could not read dimensions of %s", file_name, exc_info=True)
            return None, None
