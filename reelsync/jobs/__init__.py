"""Job system package."""

from reelsync.jobs.models import Job
from reelsync.jobs.registry import JobRegistry, default_registry
from reelsync.jobs.types import JobStatus, JobType

__all__ = [
    "JobType",
    "JobStatus",
    "Job",
    "JobRegistry",
    "default_registry",
]
