"""Tests for the in-memory and SQLAlchemy metadata indexes."""

import pytest

from bilde.db.index import (
    DOMAIN_FIELDS,
    INTERNAL_FIELDS,
    IndexFilter,
    IndexRecord,
    InMemoryMetadataIndex,
)


def _record(identifier="abc", variant="original", **overrides):
    values = dict(
        identifier=identifier,
        variant=variant,
        file_name=f"{identifier}_{variant}.png",
        content_type="image/png",
        extension="png",
        file_size=10,
    )
    values.update(overrides)
    return IndexRecord(**values)


# ---------------------------------------------------------------------------
# Behaviour shared by both backends
# ---------------------------------------------------------------------------


class TestMetadataIndex:
    @pytest.mark.asyncio
    async def test_upsert_then_query(self, any_index):
        await any_index.upsert(_record(width=40, height=20, original_file_name="photo.png"))

        rows = await any_index.query(IndexFilter(identifier="abc"))
        assert len(rows) == 1
        row = rows[0]
        assert row["file_name"] == "abc_original.png"
        assert row["width"] == 40
        assert row["original_file_name"] == "photo.png"
        assert row["created_at"] is not None

    @pytest.mark.asyncio
    async def test_raw_rows_carry_bookkeeping(self, any_index):
        await any_index.upsert(_record())

        row = (await any_index.query(IndexFilter()))[0]
        assert {"id", "revision", "updated_at"} <= set(row)
        assert set(DOMAIN_FIELDS) <= set(row)

    @pytest.mark.asyncio
    async def test_upsert_replaces_same_pair(self, any_index):
        await any_index.upsert(_record(file_size=10))
        first = (await any_index.query(IndexFilter()))[0]

        await any_index.upsert(_record(file_size=99))
        rows = await any_index.query(IndexFilter())

        assert len(rows) == 1
        assert rows[0]["file_size"] == 99
        assert rows[0]["id"] == first["id"]
        assert rows[0]["revision"] != first["revision"]

    @pytest.mark.asyncio
    async def test_filters_combine(self, any_index):
        await any_index.upsert(_record("abc", "original"))
        await any_index.upsert(_record("abc", "jpeg_80_100x0", extension="jpeg"))
        await any_index.upsert(_record("def", "original"))

        assert len(await any_index.query(IndexFilter())) == 3
        assert len(await any_index.query(IndexFilter(identifier="abc"))) == 2
        assert len(await any_index.query(IndexFilter(variant="original"))) == 2
        rows = await any_index.query(IndexFilter(identifier="abc", variant="original"))
        assert [r["file_name"] for r in rows] == ["abc_original.png"]
        rows = await any_index.query(IndexFilter(file_name="def_original.png"))
        assert [r["identifier"] for r in rows] == ["def"]

    @pytest.mark.asyncio
    async def test_no_match_returns_empty(self, any_index):
        await any_index.upsert(_record())
        assert await any_index.query(IndexFilter(identifier="zzz")) == []

    @pytest.mark.asyncio
    async def test_limit(self, any_index):
        for identifier in ("a", "b", "c"):
            await any_index.upsert(_record(identifier))
        assert len(await any_index.query(IndexFilter(limit=2))) == 2


class TestInMemoryMetadataIndex:
    @pytest.mark.asyncio
    async def test_query_returns_copies(self):
        index = InMemoryMetadataIndex()
        await index.upsert(_record())

        row = (await index.query(IndexFilter()))[0]
        row["file_size"] = -1

        assert (await index.query(IndexFilter()))[0]["file_size"] == 10


class TestSQLAlchemyMetadataIndex:
    @pytest.mark.asyncio
    async def test_sentinel_uses_column_name(self, sql_index):
        await sql_index.upsert(_record())
        row = (await sql_index.query(IndexFilter()))[0]
        assert set(row) - set(DOMAIN_FIELDS) <= INTERNAL_FIELDS

    @pytest.mark.asyncio
    async def test_results_are_ordered(self, sql_index):
        await sql_index.upsert(_record("b"))
        await sql_index.upsert(_record("a"))
        rows = await sql_index.query(IndexFilter())
        assert [r["identifier"] for r in rows] == ["a", "b"]
