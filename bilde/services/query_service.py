"""Projection of raw index records into caller-facing metadata."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from bilde.db.index import IndexFilter

if TYPE_CHECKING:
    from bilde.context import ImagingContext


@dataclass(frozen=True)
class ImageMetadata:
    """Domain view of an index record.

    Carries none of the index's bookkeeping fields (row id, revision,
    update time, sentinel).
    """

    identifier: str
    variant: str
    file_name: str
    content_type: str
    extension: str
    file_size: int
    created_at: datetime | None
    width: int | None = None
    height: int | None = None
    original_file_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def project(raw: dict[str, Any]) -> ImageMetadata:
    """Build an :class:`ImageMetadata` from a raw record, ignoring internal fields."""
    return ImageMetadata(
        identifier=raw["identifier"],
        variant=raw["variant"],
        file_name=raw["file_name"],
        content_type=raw["content_type"],
        extension=raw["extension"],
        file_size=raw["file_size"],
        created_at=raw.get("created_at"),
        width=raw.get("width"),
        height=raw.get("height"),
        original_file_name=raw.get("original_file_name"),
    )


def _normalize(value: str | None) -> str | None:
    # Keys and identifiers are stored lower-cased
    if value is None or not value.strip():
        return None
    return value.strip().lower()


class QueryService:
    def __init__(self, context: ImagingContext) -> None:
        self._ctx = context

    async def query(
        self,
        identifier: str | None = None,
        variant: str | None = None,
        file_name: str | None = None,
        limit: int | None = None,
    ) -> list[ImageMetadata]:
        """Return metadata for every record matching the given filters.

        With no filters every record is returned; bound large indexes with
        ``limit``.
        """
        filter = IndexFilter(
            identifier=_normalize(identifier),
            variant=_normalize(variant),
            file_name=_normalize(file_name),
            limit=limit,
        )
        raw_records = await self._ctx.metadata_index.query(filter)
        return [project(raw) for raw in raw_records]
