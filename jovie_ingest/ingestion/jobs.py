"""
Background Jobs Module
======================

arq tasks that drive the ingestion queue from a worker process.

The durable queue lives in the database; Redis only carries wake-up
signals (``drain_ingestion_queue``) and the periodic cron ticks, so a lost
Redis message never loses an ingestion job.
"""

from __future__ import annotations

import logging
import os
from typing import Any
from uuid import UUID

from arq import create_pool, cron
from arq.connections import RedisSettings

from jovie_ingest.core.errors import DuplicateJobError
from jovie_ingest.db.engine import get_session, transaction
from jovie_ingest.ingestion.orchestrator import IngestionOrchestrator, JobRunResult
from jovie_ingest.ingestion.queue import JobQueue

logger = logging.getLogger(__name__)

# Upper bound on jobs handled by one drain task
DRAIN_BATCH_SIZE = 25


class UnsupportedUrlError(ValueError):
    """No ingestion strategy handles the URL."""


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


def enqueue_url(profile_id: UUID | str, url: str) -> tuple[str, bool]:
    """
    Enqueue ingestion of a URL for a profile.

    Returns:
        (job_id, created) where ``created`` is False when an equivalent job
        was already active and its id is returned instead

    Raises:
        UnsupportedUrlError: If no strategy handles the URL
        ValueError: If the profile does not exist
    """
    try:
        with get_session() as session, transaction(session):
            job_id = JobQueue(session).enqueue_for_url(profile_id, url)
    except DuplicateJobError as e:
        logger.info(f"Ingestion of {url} already queued as job {e.existing_job_id}")
        return e.existing_job_id, False

    if job_id is None:
        raise UnsupportedUrlError(f"No ingestion strategy for {url}")
    return job_id, True


async def drain_ingestion_queue(ctx: dict[str, Any], max_jobs: int | None = None) -> list[dict[str, Any]]:
    """
    Process runnable jobs from the database queue.

    Args:
        ctx: arq context
        max_jobs: Optional limit (defaults to DRAIN_BATCH_SIZE)

    Returns:
        JobRunResult dictionaries
    """
    orchestrator: IngestionOrchestrator = ctx.get("orchestrator") or IngestionOrchestrator()
    results = await orchestrator.drain(max_jobs=max_jobs or DRAIN_BATCH_SIZE)
    return [r.to_dict() for r in results]


async def sweep_stale_jobs(ctx: dict[str, Any]) -> list[str]:
    """Fail jobs stuck in processing."""
    orchestrator: IngestionOrchestrator = ctx.get("orchestrator") or IngestionOrchestrator()
    return orchestrator.sweep_stale()


async def trigger_ingestion(profile_id: UUID | str, url: str) -> dict[str, Any]:
    """
    Enqueue ingestion and wake a worker.

    Args:
        profile_id: Creator profile id
        url: Profile URL to ingest

    Returns:
        ``{"job_id": ..., "created": bool}``
    """
    job_id, created = enqueue_url(profile_id, url)
    if created:
        await notify_worker()
    return {"job_id": job_id, "created": created}


async def notify_worker() -> None:
    """Push a drain task so an idle arq worker picks up new jobs immediately."""
    redis = await create_pool(get_redis_settings())
    try:
        await redis.enqueue_job("drain_ingestion_queue")
    finally:
        await redis.close()


async def run_ingestion_sync(
    profile_id: UUID | str,
    url: str,
    orchestrator: IngestionOrchestrator | None = None,
) -> list[JobRunResult]:
    """
    Enqueue ingestion and process the queue in-process (without arq).

    Useful for CLI commands with --sync flag.

    Returns:
        Results of every job processed, follow-ups included
    """
    enqueue_url(profile_id, url)
    orchestrator = orchestrator or IngestionOrchestrator()
    return await orchestrator.drain()


async def startup(ctx: dict[str, Any]) -> None:
    ctx["orchestrator"] = IngestionOrchestrator()
    logger.info("Ingestion worker started")


async def shutdown(ctx: dict[str, Any]) -> None:
    logger.info("Ingestion worker stopped")


class WorkerSettings:
    """arq worker settings."""

    functions = [drain_ingestion_queue, sweep_stale_jobs]
    cron_jobs = [
        cron(drain_ingestion_queue, second={0, 15, 30, 45}, run_at_startup=True),
        cron(sweep_stale_jobs, second=0),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()
    max_jobs = 5
    job_timeout = 600  # 10 minutes
    keep_result = 3600  # 1 hour
