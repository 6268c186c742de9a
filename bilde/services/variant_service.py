"""Cache-or-compute orchestration for derived image variants."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bilde.db.index import IndexRecord
from bilde.errors import (
    ContentNotFoundError,
    InvalidDimensionsError,
    InvalidInputError,
    SourceNotFoundError,
)
from bilde.lib import observability
from bilde.lib.imaging import MAX_QUALITY, detect_image_content_type

if TYPE_CHECKING:
    from bilde.context import ImagingContext

logger = logging.getLogger(__name__)


@dataclass
class VariantResult:
    """Bytes served for a request and how they were obtained.

    ``cache_error`` is set when the variant was computed but could not be
    written back; the bytes are still valid.
    """

    data: bytes
    content_type: str
    key: str
    cached: bool = False
    cache_error: Exception | None = None


def validate_dimensions(width: int, height: int) -> None:
    if width < 0:
        raise InvalidDimensionsError("width less than 0")
    if height < 0:
        raise InvalidDimensionsError("height less than 0")
    if width == 0 and height == 0:
        raise InvalidDimensionsError("width and height less than or equal to 0")


def validate_quality(quality: int) -> None:
    if quality > MAX_QUALITY:
        raise InvalidInputError(f"quality greater than {MAX_QUALITY}")


class VariantService:
    """Serve stored blobs and derived variants, filling the cache on a miss.

    Two requests for the same variant may both miss and both write. The key
    is a pure function of the parameters and the codec is deterministic, so
    the writes converge on the same content and no locking is done.
    """

    def __init__(self, context: ImagingContext) -> None:
        self._ctx = context

    async def get(self, key: str) -> VariantResult:
        """Return a stored original or variant as-is."""
        if not key or not key.strip():
            raise InvalidInputError("file must be specified")
        try:
            data = await self._ctx.content_store.get(key)
        except ContentNotFoundError as exc:
            raise SourceNotFoundError(key) from exc

        content_type = (
            detect_image_content_type(data)
            or mimetypes.guess_type(key)[0]
            or "application/octet-stream"
        )
        return VariantResult(data=data, content_type=content_type, key=key, cached=True)

    async def get_variant(
        self,
        source_key: str,
        width: int,
        height: int = 0,
        format: str | None = None,
        quality: int = 0,
        use_cache: bool = True,
    ) -> VariantResult:
        """Return *source_key* resized to ``width`` x ``height`` in *format*.

        A zero dimension follows the source aspect ratio. With ``use_cache``
        the target key is read first and a computed variant is written back
        to the content store and the index.
        """
        if not source_key or not source_key.strip():
            raise InvalidInputError("file must be specified")
        validate_dimensions(width, height)
        validate_quality(quality)

        naming = self._ctx.naming
        descriptor = self._ctx.codec.resolve_format(format, quality)
        identifier = naming.identifier_from_key(source_key)
        variant = naming.variant_key(descriptor.extension, descriptor.quality, width, height)
        key = naming.storage_key(identifier, variant, descriptor.extension)

        with observability.span(
            observability.VARIANT_SPAN, key=key, source=source_key, use_cache=use_cache
        ):
            if use_cache:
                try:
                    data = await self._ctx.content_store.get(key)
                except ContentNotFoundError:
                    logger.debug("Cache miss for %s", key)
                else:
                    return VariantResult(
                        data=data, content_type=descriptor.content_type, key=key, cached=True
                    )

            try:
                source = await self._ctx.content_store.get(source_key)
            except ContentNotFoundError as exc:
                raise SourceNotFoundError(source_key) from exc

            resized = await asyncio.to_thread(
                self._ctx.codec.resize, source, width, height, descriptor
            )
            result = VariantResult(data=resized, content_type=descriptor.content_type, key=key)

            if use_cache:
                result.cache_error = await self._write_through(
                    identifier, variant, key, result, width, height
                )

        return result

    async def _write_through(
        self,
        identifier: str,
        variant: str,
        key: str,
        result: VariantResult,
        width: int,
        height: int,
    ) -> Exception | None:
        record = IndexRecord(
            identifier=identifier,
            variant=variant,
            file_name=key,
            content_type=result.content_type,
            extension=self._ctx.naming.extension_from_key(key),
            file_size=len(result.data),
            width=width or None,
            height=height or None,
        )
        try:
            await self._ctx.content_store.put(key, result.data, result.content_type)
            await self._ctx.metadata_index.upsert(record)
        except Exception as exc:
            logger.warning("Failed to cache variant %s", key, exc_info=True)
            observability.warning("Failed to cache variant {key}", key=key)
            return exc
        return None
