"""Work queue backends carrying precompute jobs to workers.

Built-in backends:
- InMemoryQueue: asyncio.Queue, single process (default)
- RedisQueue: Redis list, shared between replicas, at-least-once delivery
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from bilde.errors import StoreUnavailableError
from bilde.lib.loader import load_backend

if TYPE_CHECKING:
    from bilde.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobVariant:
    """One variant to precompute, with the key it will be stored under."""

    name: str
    key: str
    width: int
    height: int
    format: str
    quality: int


@dataclass
class ImageJob:
    """Descriptor published after an original is stored and indexed."""

    identifier: str
    original_key: str
    file_name: str
    content_type: str
    file_size: int
    width: int | None = None
    height: int | None = None
    variants: list[JobVariant] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str | bytes) -> ImageJob:
        data = json.loads(raw)
        data["variants"] = [JobVariant(**v) for v in data.get("variants", [])]
        return cls(**data)


@runtime_checkable
class WorkQueue(Protocol):
    """Interface for publishing and consuming image jobs."""

    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    async def publish(self, job: ImageJob) -> None: ...
    async def receive(self, timeout: float = 1.0) -> ImageJob | None: ...


class InMemoryQueue:
    """asyncio.Queue wrapper with no cross-process delivery. Default backend."""

    def __init__(self, **kwargs: Any) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue()

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def publish(self, job: ImageJob) -> None:
        # Serialize so consumers never share a mutable job with the publisher
        await self._queue.put(job.to_json())

    async def receive(self, timeout: float = 1.0) -> ImageJob | None:
        try:
            raw = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        return ImageJob.from_json(raw)

    def qsize(self) -> int:
        return self._queue.qsize()


class RedisQueue:
    """Redis list used as a FIFO job queue."""

    def __init__(self, *, settings: Settings, **kwargs: Any) -> None:
        self._redis_url = settings.redis.url
        self._key = settings.redis.make_key("bilde", settings.queue.name)
        self._client: Any = None

    async def start(self) -> None:
        try:
            import redis.asyncio as aioredis
        except ImportError:
            raise ImportError(
                "redis package is required for RedisQueue. "
                "Install it with: pip install 'bilde[redis]'"
            )
        self._client = aioredis.Redis.from_url(self._redis_url)

    async def stop(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def publish(self, job: ImageJob) -> None:
        from redis.exceptions import RedisError

        if self._client is None:
            await self.start()
        try:
            await self._client.lpush(self._key, job.to_json())
        except RedisError as exc:
            raise StoreUnavailableError(f"Cannot publish job for {job.identifier}: {exc}") from exc

    async def receive(self, timeout: float = 1.0) -> ImageJob | None:
        from redis.exceptions import RedisError

        if self._client is None:
            await self.start()
        try:
            item = await self._client.brpop([self._key], timeout=timeout)
        except RedisError as exc:
            raise StoreUnavailableError(f"Cannot receive from {self._key}: {exc}") from exc
        if item is None:
            return None
        _, raw = item
        return ImageJob.from_json(raw)


def create_queue(settings: Settings) -> WorkQueue:
    """Instantiate the configured work queue."""
    backend = settings.queue.backend
    if backend == "memory":
        return InMemoryQueue()
    if backend == "redis":
        return RedisQueue(settings=settings)
    if ":" in backend:
        cls = load_backend(backend)
        return cls(settings=settings)
    raise ValueError(
        f"Unknown queue backend '{backend}'. Use 'memory', 'redis', or 'module:ClassName'."
    )
