"""Job dispatch: run the handler for a claimed job and record the outcome."""

import asyncio
import traceback
from typing import Any, Optional

import structlog

from reelsync.core.resilience import ProviderError
from reelsync.jobs.models import Job
from reelsync.jobs.registry import JobRegistry, default_registry
from reelsync.jobs.types import JobStatus, JobType
from reelsync.providers.base import InvalidImportFile, MissingCredentials

logger = structlog.get_logger(__name__)

UNSUPPORTED_JOB_TYPE = "unsupported job type"


def truncate_reason(message: str, max_length: int) -> str:
    """Single-line failure reason of at most max_length characters."""
    message = " ".join(message.split()) or "unknown error"
    if len(message) <= max_length:
        return message
    return message[: max_length - 3].rstrip() + "..."


def failure_reason_for(error: Exception) -> str:
    """User-facing reason for a handler exception."""
    if isinstance(error, InvalidImportFile):
        return f"Invalid import file: {error}"
    if isinstance(error, MissingCredentials):
        return str(error)
    if isinstance(error, ProviderError):
        return f"{error.service} request failed: {error}"
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


class JobProcessor:
    """
    Runs one job to a terminal state.

    Nothing a handler raises escapes process(). Errors raised by the job
    store while recording the outcome do escape; the worker treats them as
    infrastructure failures.
    """

    def __init__(
        self,
        job_repo,
        context: Optional[dict[str, Any]] = None,
        registry: Optional[JobRegistry] = None,
        failure_reason_max_length: int = 500,
    ):
        self._job_repo = job_repo
        self._context = dict(context or {})
        self._context.setdefault("job_repo", job_repo)
        self._registry = registry or default_registry
        self._max_length = failure_reason_max_length

    async def process(self, job: Job) -> Job:
        log = logger.bind(job_id=str(job.id), job_type=job.type_name, user_id=job.user_id)

        handler = None
        if isinstance(job.type, JobType):
            try:
                handler = self._registry.get_handler(job.type)
            except KeyError:
                handler = None

        if handler is None:
            log.error("job_no_handler")
            return await self._job_repo.complete(
                job.id, JobStatus.COMPLETED_FAILED, failure_reason=UNSUPPORTED_JOB_TYPE
            )

        log.info("job_executing")
        try:
            result = await handler(job, self._context)
        except asyncio.CancelledError:
            raise
        except (InvalidImportFile, MissingCredentials, ProviderError) as e:
            reason = truncate_reason(failure_reason_for(e), self._max_length)
            log.warning("job_handler_failed", error=reason)
            return await self._job_repo.complete(
                job.id, JobStatus.COMPLETED_FAILED, failure_reason=reason
            )
        except Exception as e:
            reason = truncate_reason(failure_reason_for(e), self._max_length)
            log.error(
                "job_handler_failed", error=reason, traceback=traceback.format_exc()
            )
            return await self._job_repo.complete(
                job.id, JobStatus.COMPLETED_FAILED, failure_reason=reason
            )

        log.info("job_succeeded")
        return await self._job_repo.complete(
            job.id, JobStatus.COMPLETED_SUCCESSFUL, result=result or {}
        )
