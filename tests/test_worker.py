"""Tests for the precompute worker."""

import asyncio

import pytest

from bilde.errors import StoreUnavailableError
from bilde.lib.queue import ImageJob, InMemoryQueue, JobVariant
from bilde.services import ImageVersion, IngestService, VariantService
from bilde.worker import process_job, run_worker


@pytest.fixture
def ingestor(context):
    return IngestService(
        context,
        versions=[ImageVersion("thumb", 20, 20, "png", 90), ImageVersion("small", width=10)],
        id_factory=lambda: "x",
    )


class TestProcessJob:
    @pytest.mark.asyncio
    async def test_materializes_planned_keys(self, context, ingestor, store, queue, png_bytes):
        await ingestor.ingest(png_bytes, "image/png", "photo.png")
        job = await queue.receive(timeout=0.1)

        outcome = await process_job(VariantService(context), job)

        assert sorted(outcome.computed) == ["x_jpeg_85_10x0.jpeg", "x_png_90_20x20.png"]
        assert outcome.failed == {}
        for planned in job.variants:
            assert planned.key in store.blobs

    @pytest.mark.asyncio
    async def test_redelivery_does_no_work(self, context, ingestor, queue, codec, png_bytes):
        await ingestor.ingest(png_bytes, "image/png", "photo.png")
        job = await queue.receive(timeout=0.1)
        variants = VariantService(context)

        await process_job(variants, job)
        outcome = await process_job(variants, job)

        assert codec.resize_calls == 2
        assert len(outcome.cached) == 2
        assert outcome.computed == []

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self, context, store, png_bytes):
        store.blobs["x_original.png"] = png_bytes
        job = ImageJob(
            identifier="x",
            original_key="x_original.png",
            file_name="photo.png",
            content_type="image/png",
            file_size=len(png_bytes),
            variants=[
                JobVariant("broken", "x_jpeg_85_0x0.jpeg", 0, 0, "jpeg", 85),
                JobVariant("small", "x_jpeg_85_10x0.jpeg", 10, 0, "jpeg", 85),
            ],
        )

        outcome = await process_job(VariantService(context), job)

        assert set(outcome.failed) == {"broken"}
        assert outcome.computed == ["x_jpeg_85_10x0.jpeg"]

    @pytest.mark.asyncio
    async def test_missing_source_is_reported(self, context):
        job = ImageJob(
            identifier="gone",
            original_key="gone_original.png",
            file_name="photo.png",
            content_type="image/png",
            file_size=1,
            variants=[JobVariant("small", "gone_jpeg_85_10x0.jpeg", 10, 0, "jpeg", 85)],
        )

        outcome = await process_job(VariantService(context), job)

        assert set(outcome.failed) == {"small"}


class TestRunWorker:
    @pytest.mark.asyncio
    async def test_once_drains_queue(self, context, ingestor, queue, png_bytes):
        await ingestor.ingest(png_bytes, "image/png", "photo.png")
        await ingestor.ingest(png_bytes, "image/png", "photo.png")

        processed = await run_worker(queue, VariantService(context), once=True, poll_timeout=0.01)

        assert processed == 2
        assert queue.qsize() == 0

    @pytest.mark.asyncio
    async def test_stops_when_event_set(self, context, queue):
        stop = asyncio.Event()
        stop.set()

        processed = await run_worker(queue, VariantService(context), stop=stop, poll_timeout=0.01)

        assert processed == 0

    @pytest.mark.asyncio
    async def test_receive_failure_does_not_stop_the_loop(
        self, context, ingestor, queue, png_bytes
    ):
        class FlakyQueue(InMemoryQueue):
            def __init__(self):
                super().__init__()
                self.failures = 1

            async def receive(self, timeout=1.0):
                if self.failures:
                    self.failures -= 1
                    raise StoreUnavailableError("connection reset")
                return await super().receive(timeout)

        await ingestor.ingest(png_bytes, "image/png", "photo.png")
        flaky = FlakyQueue()
        await flaky.publish(await queue.receive(timeout=0.1))

        processed = await run_worker(flaky, VariantService(context), once=True, poll_timeout=0.01)

        assert processed == 1
        assert flaky.failures == 0
        assert flaky.qsize() == 0
