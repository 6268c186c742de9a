"""Metadata index backends.

Built-in backends:
- InMemoryMetadataIndex: dict-based, single process (tests, local runs)
- SQLAlchemyMetadataIndex: ``image_records`` table through async SQLAlchemy

Both return raw records: dicts carrying the domain fields together with the
index's own bookkeeping (``INTERNAL_FIELDS``). Only the query projection is
meant to look at raw records.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import uuid4

from sqlalchemy import inspect, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from bilde.db.models.image import ImageRecord
from bilde.errors import StoreUnavailableError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

INTERNAL_FIELDS = frozenset({"id", "revision", "updated_at", "sa_orm_sentinel"})


@dataclass
class IndexRecord:
    """Domain fields written for one stored blob."""

    identifier: str
    variant: str
    file_name: str
    content_type: str
    extension: str
    file_size: int
    width: int | None = None
    height: int | None = None
    original_file_name: str | None = None


@dataclass(frozen=True)
class IndexFilter:
    """Equality filters; ``None`` means unconstrained."""

    identifier: str | None = None
    variant: str | None = None
    file_name: str | None = None
    limit: int | None = None

    def matches(self, raw: dict[str, Any]) -> bool:
        return (
            (self.identifier is None or raw["identifier"] == self.identifier)
            and (self.variant is None or raw["variant"] == self.variant)
            and (self.file_name is None or raw["file_name"] == self.file_name)
        )


RECORD_FIELDS = tuple(f.name for f in fields(IndexRecord))
DOMAIN_FIELDS = RECORD_FIELDS + ("created_at",)


@runtime_checkable
class MetadataIndex(Protocol):
    """Structured records keyed by ``(identifier, variant)``."""

    async def upsert(self, record: IndexRecord) -> None: ...
    async def query(self, filter: IndexFilter) -> list[dict[str, Any]]: ...
    async def close(self) -> None: ...


class InMemoryMetadataIndex:
    """Dict-based index with the same bookkeeping fields as the SQL table."""

    def __init__(self, **kwargs: Any) -> None:
        self._rows: dict[tuple[str, str], dict[str, Any]] = {}
        self._sequence = itertools.count(1)

    async def upsert(self, record: IndexRecord) -> None:
        now = datetime.now(UTC)
        key = (record.identifier, record.variant)
        row = self._rows.get(key)
        if row is None:
            row = {"id": next(self._sequence), "created_at": now}
            self._rows[key] = row
        for name in RECORD_FIELDS:
            row[name] = getattr(record, name)
        row["revision"] = uuid4().hex
        row["updated_at"] = now

    async def query(self, filter: IndexFilter) -> list[dict[str, Any]]:
        rows = [dict(row) for row in self._rows.values() if filter.matches(row)]
        if filter.limit is not None:
            rows = rows[: filter.limit]
        return rows

    async def close(self) -> None:
        pass


class SQLAlchemyMetadataIndex:
    """Index stored in the ``image_records`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession], **kwargs: Any) -> None:
        self._session_maker = session_maker

    async def upsert(self, record: IndexRecord) -> None:
        try:
            try:
                await self._write(record)
            except IntegrityError:
                # A concurrent writer inserted the same (identifier, variant) first
                logger.debug("Upsert race on %s/%s, retrying as update", record.identifier, record.variant)
                await self._write(record)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Cannot index {record.file_name!r}: {exc}") from exc

    async def query(self, filter: IndexFilter) -> list[dict[str, Any]]:
        stmt = select(ImageRecord)
        if filter.identifier is not None:
            stmt = stmt.where(ImageRecord.identifier == filter.identifier)
        if filter.variant is not None:
            stmt = stmt.where(ImageRecord.variant == filter.variant)
        if filter.file_name is not None:
            stmt = stmt.where(ImageRecord.file_name == filter.file_name)
        stmt = stmt.order_by(ImageRecord.identifier, ImageRecord.variant)
        if filter.limit is not None:
            stmt = stmt.limit(filter.limit)

        try:
            async with self._session_maker() as session:
                result = await session.execute(stmt)
                return [self._row_to_raw(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Cannot query index: {exc}") from exc

    async def close(self) -> None:
        pass

    async def _write(self, record: IndexRecord) -> None:
        async with self._session_maker() as session:
            result = await session.execute(
                select(ImageRecord).where(
                    ImageRecord.identifier == record.identifier,
                    ImageRecord.variant == record.variant,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = ImageRecord()
                session.add(row)
            for name in RECORD_FIELDS:
                setattr(row, name, getattr(record, name))
            row.revision = uuid4().hex
            await session.commit()

    @staticmethod
    def _row_to_raw(row: ImageRecord) -> dict[str, Any]:
        # Keyed by column name, so the sentinel shows up as sa_orm_sentinel
        mapper = inspect(row).mapper
        return {
            attr.columns[0].name: getattr(row, attr.key)
            for attr in mapper.column_attrs
        }
