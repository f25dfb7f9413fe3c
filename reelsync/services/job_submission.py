"""Validate-then-enqueue entry points used by the HTTP layer.

Nothing reaches the queue before it is known to be processable: upload files
are parsed in full and Trakt credentials are checked first. A duplicate
submission is reported back as a normal result, not an error.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from reelsync.jobs.types import JobType
from reelsync.providers.base import InvalidImportFile, MissingCredentials
from reelsync.providers.streaming_export import validate_history_file, validate_ratings_file
from reelsync.repositories.jobs import DuplicatePendingJob

logger = structlog.get_logger(__name__)

STATUS_PENDING = "pending"
STATUS_DUPLICATE = "duplicate"


@dataclass
class SubmissionResult:
    status: str
    job_id: Optional[UUID] = None

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "job_id": str(self.job_id) if self.job_id else None}


class JobSubmissionService:
    """Turns user actions into queued jobs."""

    def __init__(self, job_repo, user_repo, import_storage_dir: str, date_format: str = "%m/%d/%y"):
        self._jobs = job_repo
        self._users = user_repo
        self._storage_dir = Path(import_storage_dir)
        self._date_format = date_format

    async def submit_streaming_history(self, user_id: int, content: bytes) -> SubmissionResult:
        """Store and validate a history export, then enqueue its import.

        Raises:
            InvalidImportFile: file rejected; nothing was queued
        """
        path = self._store_upload(user_id, "history", content)
        try:
            rows = await asyncio.to_thread(validate_history_file, path, self._date_format)
        except InvalidImportFile as e:
            path.unlink(missing_ok=True)
            logger.info("import_file_rejected", user_id=user_id, reason=str(e))
            raise
        return await self._enqueue(
            user_id,
            JobType.STREAMING_HISTORY_IMPORT,
            {"import_file": str(path), "rows": rows},
            cleanup=path,
        )

    async def submit_streaming_ratings(self, user_id: int, content: bytes) -> SubmissionResult:
        """Store and validate a ratings export, then enqueue its import.

        Raises:
            InvalidImportFile: file rejected; nothing was queued
        """
        path = self._store_upload(user_id, "ratings", content)
        try:
            rows = await asyncio.to_thread(validate_ratings_file, path)
        except InvalidImportFile as e:
            path.unlink(missing_ok=True)
            logger.info("import_file_rejected", user_id=user_id, reason=str(e))
            raise
        return await self._enqueue(
            user_id,
            JobType.STREAMING_RATINGS_IMPORT,
            {"import_file": str(path), "rows": rows},
            cleanup=path,
        )

    async def submit_trakt_history(self, user_id: int) -> SubmissionResult:
        await self._require_trakt(user_id)
        return await self._enqueue(user_id, JobType.TRAKT_HISTORY_IMPORT, {})

    async def submit_trakt_ratings(self, user_id: int) -> SubmissionResult:
        await self._require_trakt(user_id)
        return await self._enqueue(user_id, JobType.TRAKT_RATINGS_IMPORT, {})

    async def submit_system(
        self, job_type: JobType, payload: Optional[dict[str, Any]] = None
    ) -> SubmissionResult:
        """Queue a job that belongs to no user (catalog resync, image cache)."""
        return await self._enqueue(None, job_type, payload or {})

    async def _require_trakt(self, user_id: int) -> None:
        credentials = await self._users.get_trakt_credentials(user_id)
        if credentials is None:
            raise MissingCredentials("Trakt account is not connected")

    def _store_upload(self, user_id: int, kind: str, content: bytes) -> Path:
        self._storage_dir.mkdir(parents=True, exist_ok=True)
        path = self._storage_dir / f"{user_id}-{kind}-{uuid4().hex}.csv"
        path.write_bytes(content)
        return path

    async def _enqueue(
        self,
        user_id: Optional[int],
        job_type: JobType,
        payload: dict[str, Any],
        cleanup: Optional[Path] = None,
    ) -> SubmissionResult:
        try:
            job = await self._jobs.enqueue(user_id, job_type, payload)
        except DuplicatePendingJob:
            if cleanup is not None:
                cleanup.unlink(missing_ok=True)
            existing = await self._jobs.find(user_id, job_type)
            active = next(
                (j for j in existing if not j.status.is_terminal),
                None,
            )
            return SubmissionResult(
                status=STATUS_DUPLICATE, job_id=active.id if active else None
            )
        return SubmissionResult(status=STATUS_PENDING, job_id=job.id)

