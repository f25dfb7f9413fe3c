"""Tests for the worker polling loop."""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from reelsync.jobs.models import Job
from reelsync.jobs.types import JobStatus, JobType
from reelsync.jobs.worker import WorkerRunner, WorkerState, generate_worker_id


def _job():
    return Job(
        id=uuid4(),
        type=JobType.CATALOG_MOVIE_SYNC,
        status=JobStatus.IN_PROGRESS,
        payload={},
    )


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _runner(claims, clock, **kwargs):
    job_repo = MagicMock()
    job_repo.claim_next = AsyncMock(side_effect=claims)
    processor = MagicMock()
    processor.process = AsyncMock()
    runner = WorkerRunner(
        job_repo,
        processor,
        worker_id="test:1",
        sleep=clock.sleep,
        clock=clock,
        **kwargs,
    )
    return runner, job_repo, processor


def test_generate_worker_id_format():
    worker_id = generate_worker_id()
    host, pid = worker_id.rsplit(":", 1)
    assert host
    assert pid.isdigit()


@pytest.mark.asyncio
async def test_processes_until_max_jobs():
    clock = FakeClock()
    jobs = [_job(), _job()]
    runner, _, processor = _runner(jobs, clock, max_jobs=2)

    processed = await runner.run()

    assert processed == 2
    assert [c.args[0] for c in processor.process.await_args_list] == jobs
    assert runner.state == WorkerState.STOPPED


@pytest.mark.asyncio
async def test_empty_polls_back_off_and_reset():
    clock = FakeClock()
    runner, _, _ = _runner(
        [None, None, None, _job(), None, _job()],
        clock,
        poll_interval_s=1.0,
        max_poll_interval_s=3.0,
        max_jobs=2,
    )

    await runner.run()

    assert clock.sleeps == [1.0, 2.0, 3.0, 1.0]


@pytest.mark.asyncio
async def test_min_runtime_is_honoured():
    clock = FakeClock()
    runner, _, _ = _runner([_job()], clock, max_jobs=1, min_runtime_s=60.0)

    await runner.run()

    assert clock.sleeps == [60.0]


@pytest.mark.asyncio
async def test_store_error_stops_worker_after_min_runtime():
    clock = FakeClock()
    runner, _, processor = _runner(
        ConnectionError("database unavailable"), clock, min_runtime_s=10.0
    )

    with pytest.raises(ConnectionError):
        await runner.run()

    processor.process.assert_not_awaited()
    assert clock.sleeps == [10.0]
    assert runner.state == WorkerState.STOPPED


@pytest.mark.asyncio
async def test_stop_ends_loop_after_current_job():
    clock = FakeClock()
    runner, job_repo, processor = _runner([_job(), _job()], clock)

    async def process(job):
        runner.stop()

    processor.process = AsyncMock(side_effect=process)

    processed = await runner.run()

    assert processed == 1
    assert job_repo.claim_next.await_count == 1
