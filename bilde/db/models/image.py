"""Index row describing one stored original or variant."""

from __future__ import annotations

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bilde.db.base import Base


class ImageRecord(Base):
    """One row per ``(identifier, variant)`` pair.

    ``id``, ``revision``, ``updated_at`` and ``sa_orm_sentinel`` are storage
    bookkeeping and are stripped before records reach callers.
    """

    __tablename__ = "image_records"
    __table_args__ = (
        UniqueConstraint("identifier", "variant", name="uq_image_records_identifier_variant"),
        Index("ix_image_records_file_name", "file_name"),
    )

    identifier: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    variant: Mapped[str] = mapped_column(String(128), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    original_file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content_type: Mapped[str] = mapped_column(String(128), nullable=False)
    extension: Mapped[str] = mapped_column(String(16), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    revision: Mapped[str] = mapped_column(String(32), nullable=False)
