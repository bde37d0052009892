"""
Ingestion Orchestrator Module
=============================

Runs claimed jobs end to end:

1. Claim the next job (own transaction)
2. Fetch and extract with the job type's strategy (no transaction held)
3. Merge, ack and mark the profile idle (one transaction)
4. On any failure, roll back and in a fresh transaction ack the job as
   failed and mark the profile failed

Database work runs in worker threads; the event loop carries only
network I/O.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jovie_ingest.core.enums import IngestionEvent, JobOutcome, JobStatus, JobType
from jovie_ingest.core.errors import ExtractionFailed, InvalidJobState, MergeConflict
from jovie_ingest.core.schema import IngestionJob
from jovie_ingest.db.engine import get_session, transaction
from jovie_ingest.ingestion.config import IngestionConfig, get_default_config
from jovie_ingest.ingestion.fetcher import Fetcher
from jovie_ingest.ingestion.merge import MergeEngine, MergeResult
from jovie_ingest.ingestion.platforms import PlatformRegistry, get_default_platform_registry
from jovie_ingest.ingestion.queue import JobQueue
from jovie_ingest.ingestion.strategies import get_strategy
from jovie_ingest.ingestion.strategies.base import ExtractionResult

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


@dataclass
class JobRunResult:
    """Result of running one ingestion job."""

    job_id: str
    job_type: JobType
    status: JobStatus
    added: int = 0
    updated: int = 0
    skipped: int = 0
    follow_up_job_ids: list[str] = field(default_factory=list)
    extracted_links: int = 0
    error: str | None = None
    duration_seconds: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == JobStatus.IDLE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "job_type": self.job_type.value,
            "status": self.status.value,
            "added": self.added,
            "updated": self.updated,
            "skipped": self.skipped,
            "follow_up_job_ids": list(self.follow_up_job_ids),
            "extracted_links": self.extracted_links,
            "error": self.error,
            "duration_seconds": self.duration_seconds,
        }


class IngestionOrchestrator:
    """
    Drives jobs from the queue through fetch, extract and merge.

    Args:
        session_factory: Context manager factory yielding sessions
        fetcher: Fetcher shared by all strategies
        config: Ingestion configuration
        registry: Platform registry
    """

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        fetcher: Fetcher | None = None,
        config: IngestionConfig | None = None,
        registry: PlatformRegistry | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.config = config or get_default_config()
        self.registry = registry or get_default_platform_registry()
        self.fetcher = fetcher or Fetcher.from_config(self.config)

    def _queue(self, session: Session) -> JobQueue:
        return JobQueue(session, config=self.config, registry=self.registry)

    # ------------------------------------------------------------------
    # Single job
    # ------------------------------------------------------------------

    def claim_next(self) -> IngestionJob | None:
        """Claim the next runnable job in its own transaction."""
        with self.session_factory() as session, transaction(session):
            return self._queue(session).dequeue_next()

    async def process_next(self) -> JobRunResult | None:
        """
        Claim and run the next job.

        Returns:
            JobRunResult, or None if the queue has nothing runnable
        """
        job = await asyncio.to_thread(self.claim_next)
        if job is None:
            return None
        return await self.process_job(job)

    async def process_job(self, job: IngestionJob) -> JobRunResult:
        """
        Run an already claimed job to completion.

        Never raises for job-level failures; they are recorded on the job
        and the profile and reported in the result.
        """
        started = time.monotonic()
        result = JobRunResult(job_id=str(job.id), job_type=job.job_type, status=JobStatus.PROCESSING)

        try:
            extraction = await self._extract(job)
            result.extracted_links = len(extraction.links)

            merge_result = await asyncio.to_thread(self._commit_success, job, extraction)
            result.status = JobStatus.IDLE
            result.added = len(merge_result.added)
            result.updated = len(merge_result.updated)
            result.skipped = len(merge_result.skipped)
            result.follow_up_job_ids = list(merge_result.follow_up_job_ids)

        except InvalidJobState as e:
            # The job was swept as stale while we worked; its results are discarded
            logger.warning(f"Job {job.id} is no longer processing: {e}")
            result.status = JobStatus.FAILED
            result.error = str(e)

        except (ExtractionFailed, MergeConflict, ValidationError) as e:
            logger.warning(f"Job {job.id} ({job.job_type.value}) failed: {e}")
            result.status = JobStatus.FAILED
            result.error = str(e)
            await asyncio.to_thread(self._commit_failure, job, str(e))

        except Exception as e:
            logger.exception(f"Unexpected error processing job {job.id}")
            result.status = JobStatus.FAILED
            result.error = f"Unexpected error: {e}"
            await asyncio.to_thread(self._commit_failure, job, result.error)

        finally:
            result.duration_seconds = round(time.monotonic() - started, 3)

        return result

    async def _extract(self, job: IngestionJob) -> ExtractionResult:
        payload = job.typed_payload()
        strategy = get_strategy(job.job_type, fetcher=self.fetcher, registry=self.registry)
        logger.info(f"Running {strategy.PLATFORM_ID} strategy for job {job.id}: {payload.source_url}")
        document = await strategy.fetch_document(payload.source_url)
        extraction = strategy.extract(document)
        logger.info(f"Extracted {len(extraction.links)} links from {payload.source_url}")
        return extraction

    def _commit_success(self, job: IngestionJob, extraction: ExtractionResult) -> MergeResult:
        try:
            with self.session_factory() as session, transaction(session):
                queue = self._queue(session)
                engine = MergeEngine(session, queue=queue, config=self.config, registry=self.registry)
                merge_result = engine.merge(job.creator_profile_id, extraction, depth=job.depth)
                queue.ack(job.id, JobOutcome.SUCCESS)
                queue.status.apply(job.creator_profile_id, IngestionEvent.SUCCEEDED)
        except IntegrityError as e:
            raise MergeConflict(f"Merge for job {job.id} conflicted on commit") from e
        return merge_result

    def _commit_failure(self, job: IngestionJob, message: str) -> None:
        try:
            with self.session_factory() as session, transaction(session):
                queue = self._queue(session)
                queue.ack(job.id, JobOutcome.FAILURE, message)
                queue.status.apply(job.creator_profile_id, IngestionEvent.FAILED, message)
        except InvalidJobState as e:
            logger.warning(f"Not recording failure for job {job.id}: {e}")

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def drain(self, max_jobs: int | None = None) -> list[JobRunResult]:
        """
        Process jobs until the queue has nothing runnable.

        Follow-up jobs enqueued along the way are processed too.

        Args:
            max_jobs: Optional limit on jobs processed

        Returns:
            Results in processing order
        """
        results: list[JobRunResult] = []
        while max_jobs is None or len(results) < max_jobs:
            result = await self.process_next()
            if result is None:
                break
            results.append(result)
        logger.info(f"Drained {len(results)} jobs")
        return results

    async def run_worker(
        self,
        concurrency: int | None = None,
        poll_interval: float | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """
        Run concurrent polling loops until ``stop_event`` is set.

        Each loop handles one job at a time and sleeps ``poll_interval``
        seconds when the queue is empty.
        """
        global_config = self.config.global_config
        concurrency = concurrency or global_config.worker_concurrency
        poll_interval = poll_interval if poll_interval is not None else global_config.poll_interval_seconds
        stop_event = stop_event or asyncio.Event()

        async def loop(worker_index: int) -> None:
            logger.info(f"Worker loop {worker_index} started")
            while not stop_event.is_set():
                try:
                    result = await self.process_next()
                except Exception:
                    logger.exception(f"Worker loop {worker_index} failed to claim a job")
                    result = None
                if result is None:
                    try:
                        await asyncio.wait_for(stop_event.wait(), timeout=poll_interval)
                    except asyncio.TimeoutError:
                        pass
            logger.info(f"Worker loop {worker_index} stopped")

        await asyncio.gather(*(loop(i) for i in range(concurrency)))

    def sweep_stale(self) -> list[str]:
        """Fail jobs stuck in processing; returns their ids."""
        with self.session_factory() as session, transaction(session):
            swept = self._queue(session).sweep_stale()
        if swept:
            logger.warning(f"Swept {len(swept)} stale jobs")
        return swept
