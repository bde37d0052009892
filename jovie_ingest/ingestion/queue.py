"""
Job Queue Module
================

Durable, database-backed queue of ingestion jobs.

Jobs are deduplicated per ``(creator_profile_id, dedup_key)`` while active
(pending or processing), claimed atomically so two workers never process
the same job, and never deleted. Every method flushes but leaves the
commit to the caller, so queue changes share a transaction with the work
around them.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import urlsplit
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from jovie_ingest.core.enums import (
    ACTIVE_JOB_STATUSES,
    IngestionEvent,
    JobOutcome,
    JobStatus,
    JobType,
)
from jovie_ingest.core.errors import DuplicateJobError, InvalidJobState
from jovie_ingest.core.schema import IngestionJob, build_job_payload, parse_job_payload
from jovie_ingest.db.models import CreatorProfileDB, IngestionJobDB, _utc_now
from jovie_ingest.ingestion.config import IngestionConfig, get_default_config
from jovie_ingest.ingestion.normalizer import NormalizedLink, UrlNormalizer
from jovie_ingest.ingestion.platforms import PlatformRegistry, get_default_platform_registry
from jovie_ingest.ingestion.state import IngestionStatusManager
from jovie_ingest.ingestion.strategies import STRATEGY_REGISTRY

logger = logging.getLogger(__name__)

# Pending jobs inspected per claim attempt
CLAIM_BATCH_SIZE = 20


def build_dedup_key(job_type: JobType | str, platform_id: str, canonical_id: str) -> str:
    """Dedup key for a job ingesting one platform identity."""
    return f"{JobType(job_type).value}:{platform_id}:{canonical_id}"


def _source_host(source_url: str) -> str | None:
    host = (urlsplit(source_url).hostname or "").lower()
    return host or None


class JobQueue:
    """
    Queue operations over the ``ingestion_jobs`` table.

    Profile status changes caused by queue operations (enqueue, claim,
    stale sweeps) go through the status manager.
    """

    def __init__(
        self,
        session: Session,
        status_manager: IngestionStatusManager | None = None,
        config: IngestionConfig | None = None,
        registry: PlatformRegistry | None = None,
    ) -> None:
        self.session = session
        self.status = status_manager or IngestionStatusManager(session)
        self.config = config or get_default_config()
        self.registry = registry or get_default_platform_registry()

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue(
        self,
        creator_profile_id: UUID | str,
        job_type: JobType | str,
        payload: BaseModel | dict[str, Any],
        dedup_key: str,
        depth: int = 0,
        priority: int = 0,
    ) -> str:
        """
        Insert a pending job.

        Args:
            creator_profile_id: Profile the job enriches
            job_type: Job type
            payload: Payload model or dict; must validate for ``job_type``
            dedup_key: Identity of the work, unique among active jobs
            depth: Follow-up depth (0 for user-initiated jobs)
            priority: Higher runs first

        Returns:
            The new job id

        Raises:
            DuplicateJobError: If an active job with the same dedup key exists
            ValueError: For an unknown profile, an invalid payload or a
                depth beyond the configured maximum
        """
        job_type = JobType(job_type)
        profile_id = str(creator_profile_id)
        max_depth = self.config.global_config.max_depth
        if not 0 <= depth <= max_depth:
            raise ValueError(f"Job depth {depth} outside 0..{max_depth}")

        data = payload.model_dump() if isinstance(payload, BaseModel) else dict(payload)
        data.setdefault("job_type", job_type.value)
        data.setdefault("creator_profile_id", profile_id)
        data.setdefault("depth", depth)
        if data["job_type"] != job_type.value:
            raise ValueError(f"Payload job_type {data['job_type']} does not match {job_type.value}")

        typed = parse_job_payload(data)
        if typed.creator_profile_id != profile_id:
            raise ValueError("Payload creator_profile_id does not match the job's profile")
        if typed.depth != depth:
            raise ValueError(f"Payload depth {typed.depth} does not match job depth {depth}")

        if self.session.get(CreatorProfileDB, profile_id) is None:
            raise ValueError(f"Creator profile {profile_id} not found")

        existing = self.active_job_for(profile_id, dedup_key)
        if existing is not None:
            raise DuplicateJobError(str(existing.id), dedup_key)

        job_db = IngestionJobDB(
            creator_profile_id=profile_id,
            job_type=job_type.value,
            payload_json=typed.model_dump_json(),
            status=JobStatus.PENDING.value,
            dedup_key=dedup_key,
            depth=depth,
            priority=priority,
            source_host=_source_host(typed.source_url),
        )
        try:
            with self.session.begin_nested():
                self.session.add(job_db)
                self.session.flush()
        except IntegrityError:
            # Lost an insert race; the unique index holds the winner
            winner = self.active_job_for(profile_id, dedup_key)
            raise DuplicateJobError(str(winner.id) if winner else "", dedup_key) from None

        self.status.apply(profile_id, IngestionEvent.ENQUEUED)
        logger.info(f"Enqueued {job_type.value} job {job_db.id} for profile {profile_id} (depth {depth})")
        return job_db.id

    def enqueue_for_url(
        self,
        creator_profile_id: UUID | str,
        source_url: str,
        depth: int = 0,
        priority: int = 0,
    ) -> str | None:
        """
        Enqueue the job matching a raw profile URL.

        Returns:
            The new job id, or None if no strategy ingests the URL

        Raises:
            DuplicateJobError: If the same work is already queued
        """
        normalizer = UrlNormalizer(self.registry)
        link = normalizer.normalize(source_url)
        if not isinstance(link, NormalizedLink):
            logger.info(f"Cannot ingest {source_url}: {link.reason}")
            return None

        platform = self.registry.get(link.platform_id)
        if platform is None or platform.job_type is None:
            logger.info(f"No ingestion strategy for platform {link.platform_id}")
            return None
        strategy_class = STRATEGY_REGISTRY.get(platform.job_type)
        if strategy_class is None or not strategy_class.accepts_canonical_id(link.canonical_id):
            logger.info(f"{source_url} is not an ingestible {link.platform_id} profile")
            return None

        payload = build_job_payload(platform.job_type, str(creator_profile_id), link.url, depth)
        return self.enqueue(
            creator_profile_id,
            platform.job_type,
            payload,
            dedup_key=build_dedup_key(platform.job_type, link.platform_id, link.canonical_id),
            depth=depth,
            priority=priority,
        )

    # ------------------------------------------------------------------
    # Claim / complete
    # ------------------------------------------------------------------

    def dequeue_next(self) -> IngestionJob | None:
        """
        Atomically claim the next runnable job.

        Ordering is priority (highest first) then age (oldest first). A job
        is skipped while its profile already has a job processing, or while
        its source host is at the per-host concurrency limit. The profile
        check is repeated inside the claim UPDATE, so a job claimed for the
        same profile by another worker after the candidates were read makes
        this claim miss instead of failing.

        Returns:
            The claimed job, now processing, or None if nothing is runnable
        """
        busy_profiles = select(IngestionJobDB.creator_profile_id).where(
            IngestionJobDB.status == JobStatus.PROCESSING.value
        )
        stmt = (
            select(IngestionJobDB)
            .where(
                IngestionJobDB.status == JobStatus.PENDING.value,
                IngestionJobDB.creator_profile_id.not_in(busy_profiles),
            )
            .order_by(
                IngestionJobDB.priority.desc(),
                IngestionJobDB.created_at.asc(),
                IngestionJobDB.id.asc(),
            )
            .limit(CLAIM_BATCH_SIZE)
            .with_for_update(skip_locked=True)
        )
        candidates = self.session.execute(stmt).scalars().all()
        if not candidates:
            return None

        host_counts = self._processing_per_host()
        host_limit = self.config.global_config.max_concurrent_jobs_per_host
        claimed_profiles: set[str] = set()

        for job_db in candidates:
            if job_db.creator_profile_id in claimed_profiles:
                continue
            if job_db.source_host and host_counts.get(job_db.source_host, 0) >= host_limit:
                logger.debug(f"Host {job_db.source_host} at concurrency limit, skipping job {job_db.id}")
                continue

            # Serializes claims per profile where row locks exist (no-op on SQLite)
            self.session.execute(
                select(CreatorProfileDB)
                .where(CreatorProfileDB.id == job_db.creator_profile_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            other = aliased(IngestionJobDB)
            profile_busy = (
                select(other.id)
                .where(
                    other.creator_profile_id == job_db.creator_profile_id,
                    other.status == JobStatus.PROCESSING.value,
                )
                .exists()
            )

            now = _utc_now()
            claim = self.session.execute(
                update(IngestionJobDB)
                .where(
                    IngestionJobDB.id == job_db.id,
                    IngestionJobDB.status == JobStatus.PENDING.value,
                    ~profile_busy,
                )
                .values(
                    status=JobStatus.PROCESSING.value,
                    attempts=IngestionJobDB.attempts + 1,
                    started_at=now,
                    completed_at=None,
                    error_message=None,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if claim.rowcount != 1:
                # Another worker claimed it, or a job for its profile, first
                logger.debug(f"Lost claim race for job {job_db.id}")
                continue

            claimed_profiles.add(job_db.creator_profile_id)
            self.session.refresh(job_db)
            self.status.claim(job_db.creator_profile_id)
            logger.info(f"Claimed job {job_db.id} ({job_db.job_type}, attempt {job_db.attempts})")
            return self._to_domain(job_db)

        return None

    def ack(
        self,
        job_id: UUID | str,
        outcome: JobOutcome,
        error_message: str | None = None,
    ) -> IngestionJob:
        """
        Record the outcome of a processing job.

        The profile's status is not changed here; the orchestrator applies
        SUCCEEDED or FAILED in the same transaction.

        Raises:
            ValueError: If the job does not exist
            InvalidJobState: If the job is not processing
        """
        job_db = self._get_db(job_id)
        if job_db.status != JobStatus.PROCESSING.value:
            raise InvalidJobState(f"Job {job_id} is {job_db.status}, not processing")

        job_db.completed_at = _utc_now()
        if outcome == JobOutcome.SUCCESS:
            job_db.status = JobStatus.IDLE.value
            job_db.error_message = None
        else:
            job_db.status = JobStatus.FAILED.value
            job_db.error_message = error_message or "Unknown error"
        self.session.flush()

        logger.info(f"Job {job_id} finished: {job_db.status}")
        return self._to_domain(job_db)

    def retry(self, job_id: UUID | str) -> IngestionJob:
        """
        Move a failed job back to pending.

        Raises:
            ValueError: If the job does not exist
            InvalidJobState: If the job has not failed
            DuplicateJobError: If the same work is already active again
        """
        job_db = self._get_db(job_id)
        if job_db.status != JobStatus.FAILED.value:
            raise InvalidJobState(f"Only failed jobs can be retried; job {job_id} is {job_db.status}")

        existing = self.active_job_for(job_db.creator_profile_id, job_db.dedup_key)
        if existing is not None:
            raise DuplicateJobError(str(existing.id), job_db.dedup_key)

        job_db.status = JobStatus.PENDING.value
        job_db.error_message = None
        job_db.started_at = None
        job_db.completed_at = None
        self.session.flush()

        self.status.apply(job_db.creator_profile_id, IngestionEvent.ENQUEUED)
        logger.info(f"Job {job_id} re-queued")
        return self._to_domain(job_db)

    def sweep_stale(self, now: datetime | None = None) -> list[str]:
        """
        Fail jobs stuck in processing longer than the staleness threshold.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            Ids of the jobs that were failed
        """
        minutes = self.config.global_config.stale_after_minutes
        now = now or _utc_now()
        cutoff = now - timedelta(minutes=minutes)

        stmt = select(IngestionJobDB).where(
            IngestionJobDB.status == JobStatus.PROCESSING.value,
            IngestionJobDB.updated_at < cutoff,
        )
        swept: list[str] = []
        message = f"Processing timeout after {minutes} minutes"
        for job_db in self.session.execute(stmt).scalars().all():
            job_db.status = JobStatus.FAILED.value
            job_db.error_message = message
            job_db.completed_at = now
            self.session.flush()
            self.status.apply_if_allowed(job_db.creator_profile_id, IngestionEvent.FAILED, message)
            swept.append(job_db.id)
            logger.warning(f"Job {job_db.id} timed out in processing")

        return swept

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, job_id: UUID | str) -> IngestionJob | None:
        """Get a job by ID."""
        stmt = select(IngestionJobDB).where(IngestionJobDB.id == str(job_id))
        job_db = self.session.execute(stmt).scalar_one_or_none()
        return self._to_domain(job_db) if job_db else None

    def active_job_for(self, creator_profile_id: UUID | str, dedup_key: str) -> IngestionJob | None:
        """Get the pending or processing job holding a dedup key, if any."""
        stmt = select(IngestionJobDB).where(
            IngestionJobDB.creator_profile_id == str(creator_profile_id),
            IngestionJobDB.dedup_key == dedup_key,
            IngestionJobDB.status.in_(ACTIVE_JOB_STATUSES),
        )
        job_db = self.session.execute(stmt).scalars().first()
        return self._to_domain(job_db) if job_db else None

    def list_jobs(
        self,
        status: JobStatus | str | None = None,
        creator_profile_id: UUID | str | None = None,
        limit: int = 50,
    ) -> list[IngestionJob]:
        """List jobs, newest first."""
        stmt = select(IngestionJobDB)
        if status is not None:
            stmt = stmt.where(IngestionJobDB.status == JobStatus(status).value)
        if creator_profile_id is not None:
            stmt = stmt.where(IngestionJobDB.creator_profile_id == str(creator_profile_id))
        stmt = stmt.order_by(IngestionJobDB.created_at.desc()).limit(limit)
        return [self._to_domain(j) for j in self.session.execute(stmt).scalars().all()]

    def count_by_status(self) -> dict[str, int]:
        """Count jobs per status."""
        stmt = select(IngestionJobDB.status, func.count()).group_by(IngestionJobDB.status)
        return {status: count for status, count in self.session.execute(stmt).all()}

    def _processing_per_host(self) -> dict[str, int]:
        stmt = (
            select(IngestionJobDB.source_host, func.count())
            .where(
                IngestionJobDB.status == JobStatus.PROCESSING.value,
                IngestionJobDB.source_host.is_not(None),
            )
            .group_by(IngestionJobDB.source_host)
        )
        return {host: count for host, count in self.session.execute(stmt).all()}

    def _get_db(self, job_id: UUID | str) -> IngestionJobDB:
        job_db = self.session.get(IngestionJobDB, str(job_id))
        if job_db is None:
            raise ValueError(f"Job {job_id} not found")
        return job_db

    def _to_domain(self, db_item: IngestionJobDB) -> IngestionJob:
        """Convert database model to domain model."""
        return IngestionJob(
            id=UUID(db_item.id),
            creator_profile_id=UUID(db_item.creator_profile_id),
            job_type=JobType(db_item.job_type),
            payload=json.loads(db_item.payload_json or "{}"),
            status=JobStatus(db_item.status),
            dedup_key=db_item.dedup_key,
            depth=db_item.depth,
            priority=db_item.priority,
            attempts=db_item.attempts,
            source_host=db_item.source_host,
            error_message=db_item.error_message,
            created_at=db_item.created_at,
            updated_at=db_item.updated_at,
            started_at=db_item.started_at,
            completed_at=db_item.completed_at,
        )
