"""Job handlers package.

Handlers are registered with the default_registry and called by the
processor.

Handler contract:
    async def handle_<job_type>(job: Job, ctx: dict) -> dict:
        - job: The Job model with payload and metadata
        - ctx: Context dict with pool, job_repo, catalog, settings
        - Returns: Result dict stored in job.result on success
"""

# Import handlers to trigger registration
from reelsync.jobs.handlers import catalog  # noqa: F401
from reelsync.jobs.handlers import plex  # noqa: F401
from reelsync.jobs.handlers import streaming  # noqa: F401
from reelsync.jobs.handlers import trakt  # noqa: F401

__all__ = ["catalog", "plex", "streaming", "trakt"]
