"""Queue consumer that precomputes the configured versions of each upload."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from bilde.errors import BildeError
from bilde.lib.queue import ImageJob, WorkQueue
from bilde.services.variant_service import VariantService

logger = logging.getLogger(__name__)


@dataclass
class JobOutcome:
    """Keys produced for a job and the variants that failed."""

    identifier: str
    computed: list[str] = field(default_factory=list)
    cached: list[str] = field(default_factory=list)
    failed: dict[str, Exception] = field(default_factory=dict)


async def process_job(variants: VariantService, job: ImageJob) -> JobOutcome:
    """Materialize every variant in *job*.

    Variants are independent: one failing does not stop the rest. Redelivered
    jobs find their variants cached and do no work.
    """
    outcome = JobOutcome(identifier=job.identifier)
    for planned in job.variants:
        try:
            result = await variants.get_variant(
                job.original_key,
                planned.width,
                planned.height,
                format=planned.format,
                quality=planned.quality,
                use_cache=True,
            )
        except BildeError as exc:
            logger.warning(
                "Precompute of %s (%s) failed", planned.key, planned.name, exc_info=True
            )
            outcome.failed[planned.name] = exc
            continue

        if result.key != planned.key:
            logger.warning("Planned key %s differs from computed key %s", planned.key, result.key)
        if result.cached:
            outcome.cached.append(result.key)
        else:
            outcome.computed.append(result.key)
    return outcome


async def run_worker(
    queue: WorkQueue,
    variants: VariantService,
    stop: asyncio.Event | None = None,
    once: bool = False,
    poll_timeout: float = 1.0,
) -> int:
    """Consume jobs until *stop* is set, or until the queue is drained with *once*.

    Returns the number of jobs processed.
    """
    stop = stop or asyncio.Event()
    processed = 0
    while not stop.is_set():
        try:
            job = await queue.receive(timeout=poll_timeout)
            if job is None:
                if once:
                    break
                continue
            outcome = await process_job(variants, job)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Worker loop error", exc_info=True)
            await asyncio.sleep(poll_timeout)
            continue
        processed += 1
        logger.info(
            "Job %s: %d computed, %d cached, %d failed",
            job.identifier,
            len(outcome.computed),
            len(outcome.cached),
            len(outcome.failed),
        )
    return processed
