"""Repository for job queue operations."""

import json
from typing import Any, Optional
from uuid import UUID

import asyncpg
import structlog

from reelsync.jobs.models import Job
from reelsync.jobs.types import JobStatus, JobType

logger = structlog.get_logger(__name__)

# Partial unique indexes backing the queue invariants (see db/schema.sql).
ACTIVE_JOB_INDEX = "jobs_one_active_per_user_type"
SINGLE_IN_PROGRESS_INDEX = "jobs_single_in_progress"


class JobQueueError(Exception):
    """Base class for job queue contract errors."""


class DuplicatePendingJob(JobQueueError):
    """An equivalent job for the same user is already pending or in progress."""

    def __init__(self, user_id: Optional[int], job_type: JobType):
        super().__init__(
            f"Job {job_type.value} already queued for user {user_id}"
        )
        self.user_id = user_id
        self.job_type = job_type


class InvalidTransition(JobQueueError):
    """Requested state change is not allowed from the job's current status."""


def _parse_job_type(value: str):
    """Known job types become JobType; unknown ones stay raw so dispatch can fail them."""
    try:
        return JobType(value)
    except ValueError:
        logger.warning("job_type_unknown", job_type=value)
        return value


def _decode_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


class JobRepository:
    """Repository for job queue operations."""

    def __init__(self, pool):
        self._pool = pool

    async def enqueue(
        self,
        user_id: Optional[int],
        job_type: JobType,
        payload: Optional[dict[str, Any]] = None,
    ) -> Job:
        """Create a new pending job.

        Raises:
            DuplicatePendingJob: same user and type already pending or in progress
        """
        query = """
            INSERT INTO jobs (user_id, type, payload, status)
            VALUES ($1, $2, $3::jsonb, 'pending')
            RETURNING *
        """
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    query, user_id, job_type.value, json.dumps(payload or {})
                )
        except asyncpg.UniqueViolationError as e:
            if getattr(e, "constraint_name", None) not in (None, ACTIVE_JOB_INDEX):
                raise
            logger.info(
                "job_enqueue_duplicate", user_id=user_id, job_type=job_type.value
            )
            raise DuplicatePendingJob(user_id, job_type) from e

        job = self._row_to_job(row)
        logger.info(
            "job_enqueued",
            job_id=str(job.id),
            user_id=user_id,
            job_type=job_type.value,
        )
        return job

    async def append_to_pending(
        self,
        user_id: Optional[int],
        job_type: JobType,
        key: str,
        items: list[Any],
    ) -> Optional[Job]:
        """Append items to a list in the payload of the user's pending job.

        Returns None when no pending job of that type exists (it may have
        been claimed in the meantime).
        """
        query = """
            UPDATE jobs SET
                payload = jsonb_set(
                    payload,
                    ARRAY[$3::text],
                    COALESCE(payload -> $3::text, '[]'::jsonb) || $4::jsonb
                )
            WHERE user_id IS NOT DISTINCT FROM $1
              AND type = $2
              AND status = 'pending'
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query, user_id, job_type.value, key, json.dumps(items)
            )
        if row is None:
            return None
        logger.info(
            "job_payload_extended",
            job_id=str(row["id"]),
            job_type=job_type.value,
            items=len(items),
        )
        return self._row_to_job(row)

    async def claim_next(self) -> Optional[Job]:
        """Claim the oldest pending job across all users.

        Single conditional UPDATE: the row must still be pending and no other
        job may be in progress. A concurrent claimer either skips the locked
        row or trips the single-in-progress index; both yield None.
        """
        query = """
            UPDATE jobs j SET
                status = 'in_progress',
                started_at = now()
            WHERE j.id = (
                SELECT id FROM jobs
                WHERE status = 'pending'
                ORDER BY created_at, id
                FOR UPDATE SKIP LOCKED
                LIMIT 1
            )
              AND j.status = 'pending'
              AND NOT EXISTS (
                SELECT 1 FROM jobs WHERE status = 'in_progress'
              )
            RETURNING j.*
        """
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(query)
        except asyncpg.UniqueViolationError:
            logger.info("job_claim_lost_race")
            return None

        if row:
            logger.info(
                "job_claimed",
                job_id=str(row["id"]),
                job_type=row["type"],
                user_id=row["user_id"],
            )
            return self._row_to_job(row)
        return None

    async def complete(
        self,
        job_id: UUID,
        outcome: JobStatus,
        failure_reason: Optional[str] = None,
        result: Optional[dict[str, Any]] = None,
    ) -> Job:
        """Move an in-progress job to a terminal status.

        Raises:
            InvalidTransition: outcome is not terminal or job is not in progress
        """
        if not outcome.is_terminal:
            raise InvalidTransition(f"{outcome.value} is not a terminal status")

        query = """
            UPDATE jobs SET
                status = $2,
                finished_at = now(),
                failure_reason = $3,
                result = $4::jsonb
            WHERE id = $1 AND status = 'in_progress'
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                job_id,
                outcome.value,
                failure_reason,
                json.dumps(result) if result is not None else None,
            )

        if row is None:
            raise InvalidTransition(f"Job {job_id} is not in progress")

        if outcome == JobStatus.COMPLETED_FAILED:
            logger.warning("job_failed", job_id=str(job_id), reason=failure_reason)
        else:
            logger.info("job_completed", job_id=str(job_id))
        return self._row_to_job(row)

    async def get(self, job_id: UUID) -> Optional[Job]:
        """Get a job by ID."""
        query = "SELECT * FROM jobs WHERE id = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id)
        return self._row_to_job(row) if row else None

    async def find(self, user_id: Optional[int], job_type: JobType) -> list[Job]:
        """List a user's jobs of one type, newest first."""
        query = """
            SELECT * FROM jobs
            WHERE user_id IS NOT DISTINCT FROM $1 AND type = $2
            ORDER BY created_at DESC, id DESC
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, user_id, job_type.value)
        return [self._row_to_job(row) for row in rows]

    async def purge_all(self) -> int:
        """Delete every job that is not currently in progress."""
        query = "DELETE FROM jobs WHERE status <> 'in_progress' RETURNING id"
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query)
        logger.info("jobs_purged", scope="all", count=len(rows))
        return len(rows)

    async def purge_terminal(self) -> int:
        """Delete completed jobs (successful and failed)."""
        query = """
            DELETE FROM jobs
            WHERE status IN ('completed_successful', 'completed_failed')
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query)
        logger.info("jobs_purged", scope="terminal", count=len(rows))
        return len(rows)

    async def delete(self, job_id: UUID) -> bool:
        """Delete a single job. In-progress jobs cannot be deleted.

        Returns False if the job does not exist.
        """
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT status FROM jobs WHERE id = $1 FOR UPDATE", job_id
                )
                if row is None:
                    return False
                if row["status"] == JobStatus.IN_PROGRESS.value:
                    raise InvalidTransition(
                        f"Job {job_id} is in progress and cannot be deleted"
                    )
                await conn.execute("DELETE FROM jobs WHERE id = $1", job_id)
        logger.info("job_deleted", job_id=str(job_id))
        return True

    def _row_to_job(self, row) -> Job:
        """Convert a database row to a Job model."""
        return Job(
            id=row["id"],
            type=_parse_job_type(row["type"]),
            status=JobStatus(row["status"]),
            payload=_decode_json(row["payload"]) or {},
            user_id=row["user_id"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            failure_reason=row["failure_reason"],
            result=_decode_json(row["result"]),
        )
