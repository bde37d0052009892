"""Admin routes for triggering and inspecting creator link ingestion."""

import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from jovie_ingest.core.errors import DuplicateJobError, InvalidJobState
from jovie_ingest.db.engine import get_session, transaction
from jovie_ingest.db.repositories import CreatorProfileRepository, SocialLinkRepository
from jovie_ingest.ingestion.jobs import notify_worker
from jovie_ingest.ingestion.queue import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/creator-ingest", tags=["admin"])


class CreatorIngestRequest(BaseModel):
    """Request body for triggering ingestion."""

    creator_profile_id: str = Field(min_length=1)
    url: str = Field(min_length=1)


async def _wake_worker() -> None:
    try:
        await notify_worker()
    except Exception as e:
        # The worker's cron drain still picks the job up
        logger.warning(f"Could not notify ingestion worker: {e}")


@router.post("")
async def trigger_creator_ingest(
    body: CreatorIngestRequest, background_tasks: BackgroundTasks
) -> JSONResponse:
    """
    Enqueue ingestion of a profile URL.

    Returns 202 with the new job, or 200 with the already active job for the
    same work.
    """
    try:
        with get_session() as session, transaction(session):
            if CreatorProfileRepository(session).get_by_id(body.creator_profile_id) is None:
                raise HTTPException(status_code=404, detail="Creator profile not found")

            job_id = JobQueue(session).enqueue_for_url(body.creator_profile_id, body.url)
            if job_id is None:
                raise HTTPException(status_code=400, detail=f"Unsupported URL: {body.url}")
    except DuplicateJobError as e:
        return JSONResponse({"job_id": e.existing_job_id, "status": "duplicate"}, status_code=200)

    background_tasks.add_task(_wake_worker)
    return JSONResponse({"job_id": job_id, "status": "pending"}, status_code=202)


@router.get("/{profile_id}")
async def get_creator_ingest_status(profile_id: str, limit: int = 20) -> JSONResponse:
    """Get a profile's ingestion status, recent jobs and links."""
    with get_session() as session:
        profile = CreatorProfileRepository(session).get_by_id(profile_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="Creator profile not found")

        jobs = JobQueue(session).list_jobs(creator_profile_id=profile_id, limit=limit)
        links = SocialLinkRepository(session).list_for_profile(profile_id)

    return JSONResponse({
        "profile_id": str(profile.id),
        "username": profile.username,
        "ingestion_status": profile.ingestion_status.value,
        "last_ingestion_error": profile.last_ingestion_error,
        "jobs": [j.model_dump(mode="json") for j in jobs],
        "social_links": [link.model_dump(mode="json") for link in links],
    })


@router.post("/jobs/{job_id}/retry")
async def retry_creator_ingest_job(job_id: str, background_tasks: BackgroundTasks) -> JSONResponse:
    """Re-queue a failed job."""
    try:
        with get_session() as session, transaction(session):
            job = JobQueue(session).retry(job_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Job not found")
    except (InvalidJobState, DuplicateJobError) as e:
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(_wake_worker)
    return JSONResponse({"job_id": str(job.id), "status": job.status.value}, status_code=202)
