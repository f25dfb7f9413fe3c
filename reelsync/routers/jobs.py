"""Job submission, listing and administration endpoints."""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, Field

from reelsync.config import get_settings
from reelsync.deps.db import require_db_pool
from reelsync.deps.security import get_current_user_id, require_admin_token
from reelsync.jobs.types import JobType
from reelsync.providers.base import InvalidImportFile, MissingCredentials
from reelsync.repositories.jobs import InvalidTransition, JobRepository
from reelsync.repositories.users import UserRepository
from reelsync.services.job_submission import JobSubmissionService

router = APIRouter(tags=["jobs"])
logger = structlog.get_logger(__name__)

# Global connection pool (set during app startup)
_db_pool = None


def set_db_pool(pool):
    """Set the database pool for job routes."""
    global _db_pool
    _db_pool = pool


def _submission_service() -> JobSubmissionService:
    pool = require_db_pool(_db_pool)
    settings = get_settings()
    return JobSubmissionService(
        JobRepository(pool),
        UserRepository(pool),
        import_storage_dir=settings.import_storage_dir,
        date_format=settings.streaming_export_date_format,
    )


class CatalogSyncRequest(BaseModel):
    """Optional overrides for a catalog resync."""

    catalog_ids: Optional[list[int]] = Field(
        default=None, description="Refresh exactly these catalog ids"
    )
    max_age_hours: Optional[int] = Field(
        default=None, ge=0, description="Staleness threshold override"
    )


class ImageCacheRequest(BaseModel):
    force: bool = Field(default=False, description="Re-download posters already cached")


# =============================================================================
# Submission
# =============================================================================


@router.post("/jobs/streaming/history")
async def submit_streaming_history(
    file: UploadFile = File(..., description="Streaming service viewing activity CSV"),
    user_id: int = Depends(get_current_user_id),
):
    """Upload a viewing-activity export and queue its import.

    The file is validated first; an invalid file returns 400 and no job is
    created. An import already queued for this user returns status
    "duplicate".
    """
    content = await file.read()
    try:
        result = await _submission_service().submit_streaming_history(user_id, content)
    except InvalidImportFile as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return result.to_dict()


@router.post("/jobs/streaming/ratings")
async def submit_streaming_ratings(
    file: UploadFile = File(..., description="Streaming service ratings CSV"),
    user_id: int = Depends(get_current_user_id),
):
    """Upload a ratings export and queue its import."""
    content = await file.read()
    try:
        result = await _submission_service().submit_streaming_ratings(user_id, content)
    except InvalidImportFile as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return result.to_dict()


@router.post("/jobs/trakt/history")
async def submit_trakt_history(user_id: int = Depends(get_current_user_id)):
    """Queue an incremental Trakt history import."""
    try:
        result = await _submission_service().submit_trakt_history(user_id)
    except MissingCredentials as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return result.to_dict()


@router.post("/jobs/trakt/ratings")
async def submit_trakt_ratings(user_id: int = Depends(get_current_user_id)):
    """Queue a Trakt ratings import."""
    try:
        result = await _submission_service().submit_trakt_ratings(user_id)
    except MissingCredentials as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return result.to_dict()


# =============================================================================
# Listing
# =============================================================================


@router.get("/jobs")
async def list_jobs(
    job_type: JobType = Query(..., alias="type", description="Job type to list"),
    user_id: int = Depends(get_current_user_id),
):
    """Jobs of one type for the current user, newest first."""
    repo = JobRepository(require_db_pool(_db_pool))
    jobs = await repo.find(user_id, job_type)
    return [job.to_dict() for job in jobs]


# =============================================================================
# Administration
# =============================================================================


@router.post("/jobs/purge-all")
async def purge_all_jobs(_: bool = Depends(require_admin_token)):
    """Delete every job that is not currently in progress."""
    deleted = await JobRepository(require_db_pool(_db_pool)).purge_all()
    return {"deleted": deleted}


@router.post("/jobs/purge-processed")
async def purge_processed_jobs(_: bool = Depends(require_admin_token)):
    """Delete completed (successful or failed) jobs."""
    deleted = await JobRepository(require_db_pool(_db_pool)).purge_terminal()
    return {"deleted": deleted}


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: UUID, _: bool = Depends(require_admin_token)):
    """Delete one job. A job in progress cannot be deleted (409)."""
    repo = JobRepository(require_db_pool(_db_pool))
    try:
        deleted = await repo.delete(job_id)
    except InvalidTransition as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return {"deleted": 1}


@router.post("/jobs/catalog/sync")
async def trigger_catalog_sync(
    request: CatalogSyncRequest = CatalogSyncRequest(),
    _: bool = Depends(require_admin_token),
):
    """Queue a refresh of stale catalog mirror rows."""
    payload = request.model_dump(exclude_none=True)
    result = await _submission_service().submit_system(JobType.CATALOG_MOVIE_SYNC, payload)
    logger.info("catalog_sync_triggered", status=result.status, job_id=str(result.job_id))
    return result.to_dict()


@router.post("/jobs/catalog/image-cache")
async def trigger_image_cache(
    request: ImageCacheRequest = ImageCacheRequest(),
    _: bool = Depends(require_admin_token),
):
    """Queue a poster cache warm-up."""
    payload = {"force": True} if request.force else {}
    result = await _submission_service().submit_system(JobType.CATALOG_IMAGE_CACHE, payload)
    logger.info("image_cache_triggered", status=result.status, job_id=str(result.job_id))
    return result.to_dict()
