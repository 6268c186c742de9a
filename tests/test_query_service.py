"""Tests for metadata queries and their projection."""

import pytest

from bilde.context import ImagingContext
from bilde.db.index import INTERNAL_FIELDS
from bilde.services import ImageMetadata, IngestService, QueryService, VariantService
from bilde.services.query_service import project


@pytest.fixture
def indexed_context(store, any_index, queue, codec):
    """Context over each index backend, so projection is checked against real rows."""
    return ImagingContext(content_store=store, metadata_index=any_index, queue=queue, codec=codec)


@pytest.fixture
def queries(indexed_context):
    return QueryService(indexed_context)


@pytest.fixture
def populated(indexed_context, png_bytes):
    """Ingest one upload as ``x`` and derive one variant from it."""

    async def _populate():
        ingestor = IngestService(indexed_context, id_factory=lambda: "x")
        await ingestor.ingest(png_bytes, "image/png", "photo.png")
        await VariantService(indexed_context).get_variant("x_original.png", 10, format="png")

    return _populate


class TestQuery:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "filters",
        [
            {},
            {"identifier": "x"},
            {"variant": "original"},
            {"file_name": "x_original.png"},
            {"identifier": "x", "variant": "png_100_10x0"},
        ],
    )
    async def test_results_never_expose_internal_fields(self, queries, populated, filters):
        await populated()

        results = await queries.query(**filters)

        assert results
        for metadata in results:
            assert isinstance(metadata, ImageMetadata)
            assert not INTERNAL_FIELDS & set(metadata.to_dict())

    @pytest.mark.asyncio
    async def test_no_filters_returns_everything(self, queries, populated):
        await populated()
        results = await queries.query()
        assert sorted(m.variant for m in results) == ["original", "png_100_10x0"]

    @pytest.mark.asyncio
    async def test_filter_by_variant(self, queries, populated):
        await populated()

        results = await queries.query(identifier="x", variant="original")

        assert len(results) == 1
        metadata = results[0]
        assert metadata.file_name == "x_original.png"
        assert metadata.original_file_name == "photo.png"
        assert (metadata.width, metadata.height) == (40, 20)
        assert metadata.created_at is not None

    @pytest.mark.asyncio
    async def test_filters_are_case_insensitive(self, queries, populated):
        await populated()
        results = await queries.query(file_name=" X_Original.PNG ")
        assert [m.identifier for m in results] == ["x"]

    @pytest.mark.asyncio
    async def test_blank_filter_is_unconstrained(self, queries, populated):
        await populated()
        assert len(await queries.query(identifier="  ")) == 2

    @pytest.mark.asyncio
    async def test_limit(self, queries, populated):
        await populated()
        assert len(await queries.query(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_unknown_identifier_returns_empty(self, queries, populated):
        await populated()
        assert await queries.query(identifier="nope") == []


class TestProject:
    def test_drops_internal_fields(self):
        raw = {
            "id": 7,
            "revision": "abc",
            "updated_at": None,
            "sa_orm_sentinel": None,
            "identifier": "x",
            "variant": "original",
            "file_name": "x_original.png",
            "content_type": "image/png",
            "extension": "png",
            "file_size": 3,
            "created_at": None,
        }

        metadata = project(raw)

        assert metadata.identifier == "x"
        assert metadata.width is None
        assert set(metadata.to_dict()) == {
            "identifier",
            "variant",
            "file_name",
            "content_type",
            "extension",
            "file_size",
            "created_at",
            "width",
            "height",
            "original_file_name",
        }
