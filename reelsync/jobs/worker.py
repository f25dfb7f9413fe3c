"""Job worker - claims and executes jobs from the queue.

Usage:
    python -m reelsync.jobs.worker [--max-jobs N]

One worker process is expected per deployment; the claim statement keeps
the queue safe if more are started. Job failures are recorded and the loop
continues. Errors from the job store end the process, which still honours
the minimum runtime so the supervisor does not respawn it in a tight loop.
"""

import argparse
import asyncio
import os
import signal
import socket
import time
from enum import Enum
from typing import Awaitable, Callable, Optional

import asyncpg
import structlog

from reelsync import __version__
from reelsync.catalog.tmdb import TmdbCatalogClient
from reelsync.config import get_settings
from reelsync.core.logging import configure_logging, init_sentry
from reelsync.core.resilience import RetryConfig
from reelsync.jobs.processor import JobProcessor
from reelsync.jobs.registry import default_registry
from reelsync.repositories.jobs import JobRepository

logger = structlog.get_logger(__name__)


def generate_worker_id() -> str:
    """Generate a unique worker ID: hostname:pid."""
    return f"{socket.gethostname()}:{os.getpid()}"


class WorkerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    EXECUTING = "executing"
    STOPPED = "stopped"


class WorkerRunner:
    """Job worker that polls and executes jobs."""

    def __init__(
        self,
        job_repo,
        processor: JobProcessor,
        poll_interval_s: float = 2.0,
        max_poll_interval_s: float = 30.0,
        min_runtime_s: float = 0.0,
        max_jobs: Optional[int] = None,
        worker_id: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._job_repo = job_repo
        self._processor = processor
        self._poll_interval = poll_interval_s
        self._max_poll_interval = max(max_poll_interval_s, poll_interval_s)
        self._min_runtime = min_runtime_s
        self._max_jobs = max_jobs
        self._worker_id = worker_id or generate_worker_id()
        self._sleep = sleep
        self._clock = clock
        self._running = False
        self.state = WorkerState.IDLE
        self.jobs_processed = 0

    @property
    def worker_id(self) -> str:
        return self._worker_id

    def stop(self) -> None:
        """Stop after the current job finishes."""
        self._running = False

    async def run(self) -> int:
        """Run until stopped or max_jobs is reached. Returns jobs processed."""
        started = self._clock()
        self._running = True
        delay = self._poll_interval

        logger.info("worker_started", worker_id=self._worker_id, version=__version__)

        try:
            while self._running:
                if self._max_jobs is not None and self.jobs_processed >= self._max_jobs:
                    logger.info("worker_max_jobs_reached", max_jobs=self._max_jobs)
                    break

                self.state = WorkerState.POLLING
                job = await self._job_repo.claim_next()

                if job is None:
                    self.state = WorkerState.IDLE
                    await self._sleep(delay)
                    delay = min(delay * 2, self._max_poll_interval)
                    continue

                self.state = WorkerState.EXECUTING
                await self._processor.process(job)
                self.jobs_processed += 1
                self.state = WorkerState.IDLE
                delay = self._poll_interval

        except asyncio.CancelledError:
            logger.info("worker_cancelled", worker_id=self._worker_id)
            raise
        except Exception as e:
            logger.error("worker_fatal_error", worker_id=self._worker_id, error=str(e))
            raise
        finally:
            self.state = WorkerState.STOPPED
            remaining = self._min_runtime - (self._clock() - started)
            if remaining > 0:
                logger.info("worker_min_runtime_wait", seconds=round(remaining, 1))
                await self._sleep(remaining)
            logger.info(
                "worker_stopped",
                worker_id=self._worker_id,
                jobs_processed=self.jobs_processed,
            )

        return self.jobs_processed


async def run_worker(max_jobs: Optional[int] = None) -> int:
    """Build pool, catalog and processor from settings and run the loop."""
    import reelsync.jobs.handlers  # noqa: F401

    settings = get_settings()
    default_registry.assert_complete()

    pool = await asyncpg.create_pool(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    catalog = TmdbCatalogClient(
        api_key=settings.tmdb_api_key or "",
        base_url=settings.tmdb_base_url,
        timeout=settings.provider_timeout_s,
        retry_config=RetryConfig.from_settings(settings),
    )
    try:
        job_repo = JobRepository(pool)
        processor = JobProcessor(
            job_repo,
            context={"pool": pool, "catalog": catalog, "settings": settings},
            failure_reason_max_length=settings.failure_reason_max_length,
        )
        runner = WorkerRunner(
            job_repo,
            processor,
            poll_interval_s=settings.job_poll_interval_s,
            max_poll_interval_s=settings.job_max_poll_interval_s,
            min_runtime_s=settings.worker_min_runtime_s,
            max_jobs=max_jobs,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, runner.stop)
            except NotImplementedError:
                logger.debug("signal_handler_unavailable", signal=sig.name)

        return await runner.run()
    finally:
        await catalog.close()
        await pool.close()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="ReelSync job worker")
    parser.add_argument(
        "--max-jobs",
        type=int,
        default=None,
        help="Exit after processing this many jobs",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level)
    init_sentry(settings.sentry_dsn, settings.sentry_environment, component="worker")

    asyncio.run(run_worker(max_jobs=args.max_jobs))


if __name__ == "__main__":
    main()
