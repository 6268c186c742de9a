"""Shared pytest fixtures."""

import asyncio
import io
from unittest.mock import patch

import pytest
import yaml
from PIL import Image
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from bilde.config import DatabaseConfig
from bilde.context import ImagingContext
from bilde.db.index import InMemoryMetadataIndex, SQLAlchemyMetadataIndex
from bilde.db.session import create_engine, create_session_maker, create_tables
from bilde.errors import ContentNotFoundError, StoreUnavailableError
from bilde.lib.imaging import PillowCodec
from bilde.lib.queue import InMemoryQueue
from bilde.lib.storage.base import StoredFile
from bilde.naming import Naming


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class MemoryContentStore:
    """Dict-backed content store that records every call in ``calls``."""

    def __init__(self, calls=None, fail_on=()):
        self.blobs: dict[str, bytes] = {}
        self.calls = calls if calls is not None else []
        self.fail_on = set(fail_on)

    async def put(self, key, data, content_type):
        self.calls.append(("store.put", key))
        if "put" in self.fail_on:
            raise StoreUnavailableError(f"put {key} refused")
        self.blobs[key] = data
        return StoredFile(key=key, content_type=content_type, size=len(data), content_hash="")

    async def get(self, key):
        self.calls.append(("store.get", key))
        if "get" in self.fail_on:
            raise StoreUnavailableError(f"get {key} refused")
        try:
            return self.blobs[key]
        except KeyError:
            raise ContentNotFoundError(key) from None

    async def delete(self, key):
        self.blobs.pop(key, None)

    async def exists(self, key):
        return key in self.blobs

    async def list_keys(self, prefix=""):
        for key in list(self.blobs):
            if key.startswith(prefix):
                yield key

    async def close(self):
        pass


class RecordingIndex(InMemoryMetadataIndex):
    def __init__(self, calls=None, fail=False):
        super().__init__()
        self.calls = calls if calls is not None else []
        self.fail = fail

    async def upsert(self, record):
        self.calls.append(("index.upsert", record.file_name))
        if self.fail:
            raise StoreUnavailableError("index down")
        await super().upsert(record)


class RecordingQueue(InMemoryQueue):
    def __init__(self, calls=None, fail=False):
        super().__init__()
        self.calls = calls if calls is not None else []
        self.fail = fail

    async def publish(self, job):
        self.calls.append(("queue.publish", job.original_key))
        if self.fail:
            raise StoreUnavailableError("queue down")
        await super().publish(job)


class CountingCodec(PillowCodec):
    """Pillow codec that counts resize calls."""

    def __init__(self, options=None):
        super().__init__(options)
        self.resize_calls = 0

    def resize(self, data, width, height, descriptor):
        self.resize_calls += 1
        return super().resize(data, width, height, descriptor)


def make_png(width=40, height=20, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def calls():
    """Shared call log, so ordering across collaborators can be asserted."""
    return []


@pytest.fixture
def store(calls):
    return MemoryContentStore(calls)


@pytest.fixture
def index(calls):
    return RecordingIndex(calls)


@pytest.fixture
def queue(calls):
    return RecordingQueue(calls)


@pytest.fixture
def codec():
    return CountingCodec()


@pytest.fixture
def context(store, index, queue, codec):
    return ImagingContext(
        content_store=store,
        metadata_index=index,
        queue=queue,
        codec=codec,
        naming=Naming(),
    )


@pytest.fixture
def temp_app_yaml(tmp_path):
    """Create a temporary app.yaml file for testing."""
    config_path = tmp_path / "app.yaml"

    def _create_config(config: dict):
        with open(config_path, "w") as f:
            yaml.safe_dump(config, f)
        return config_path

    return _create_config


@pytest.fixture
def mock_config_path(temp_app_yaml):
    """Fixture that patches get_config_path to return a custom path."""
    def _mock(config: dict):
        config_path = temp_app_yaml(config)
        patcher = patch("bilde.config.get_config_path", return_value=config_path)
        return patcher.start(), patcher

    return _mock


@pytest.fixture
def png_factory():
    """Return the PNG builder so tests can pick their own sizes."""
    return make_png


@pytest.fixture
def sql_index(tmp_path):
    """SQLAlchemy index on a throwaway SQLite file."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'index.db'}"

    async def _setup():
        engine = create_engine(DatabaseConfig(url=url))
        await create_tables(engine)
        await engine.dispose()

    asyncio.run(_setup())
    # No pooling: connections must not outlive the test's event loop
    engine = create_async_engine(url, poolclass=NullPool)
    return SQLAlchemyMetadataIndex(create_session_maker(engine))


@pytest.fixture(params=["memory", "sqlalchemy"])
def any_index(request):
    if request.param == "memory":
        return InMemoryMetadataIndex()
    return request.getfixturevalue("sql_index")
