from advanced_alchemy.base import UUIDAuditBase


class Base(UUIDAuditBase):
    """Declarative base: UUID primary key, sentinel and audit timestamps."""

    __abstract__ = True
