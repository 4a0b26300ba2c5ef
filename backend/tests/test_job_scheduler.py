import asyncio

import pytest

from constants import JobStatus
from services.job_scheduler import JobScheduler


class BlockingWorker:
    """Holds every job until released"""

    def __init__(self):
        self.started = []
        self.release = asyncio.Event()

    async def process_job(self, job_id):
        self.started.append(job_id)
        await self.release.wait()
        return JobStatus.COMPLETED


class ExplodingWorker:
    def __init__(self):
        self.calls = 0

    async def process_job(self, job_id):
        self.calls += 1
        raise RuntimeError("worker bug")


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_single_slot_blocks_second_claim(session_factory, make_job, load_job):
    worker = BlockingWorker()
    scheduler = JobScheduler(session_factory, worker, poll_interval=0.01, max_concurrent_jobs=1)
    job_ids = {make_job(), make_job()}

    task = await scheduler.tick()
    await wait_until(lambda: len(worker.started) == 1)

    assert await scheduler.tick() is None
    waiting = (job_ids - set(worker.started)).pop()
    assert load_job(waiting).status == JobStatus.QUEUED.value
    assert scheduler.in_flight_count == 1

    worker.release.set()
    await task

    assert await scheduler.tick() is not None
    await wait_until(lambda: len(worker.started) == 2)


@pytest.mark.asyncio
async def test_ceiling_of_two(session_factory, make_job):
    worker = BlockingWorker()
    scheduler = JobScheduler(session_factory, worker, max_concurrent_jobs=2)
    for _ in range(3):
        make_job()

    first = await scheduler.tick()
    second = await scheduler.tick()
    third = await scheduler.tick()

    assert first is not None and second is not None
    assert third is None

    worker.release.set()
    await asyncio.gather(first, second)
    assert scheduler.in_flight_count == 0


@pytest.mark.asyncio
async def test_empty_queue_releases_slot(session_factory):
    scheduler = JobScheduler(session_factory, BlockingWorker(), max_concurrent_jobs=1)

    assert await scheduler.tick() is None
    assert await scheduler.tick() is None
    assert not scheduler._slots.locked()


@pytest.mark.asyncio
async def test_worker_exception_releases_slot(session_factory, make_job):
    worker = ExplodingWorker()
    scheduler = JobScheduler(session_factory, worker, max_concurrent_jobs=1)
    make_job()
    make_job()

    await (await scheduler.tick())
    await (await scheduler.tick())

    assert worker.calls == 2


@pytest.mark.asyncio
async def test_poll_loop_survives_tick_errors(session_factory, make_job):
    calls = {"n": 0}

    def flaky_factory():
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("database unavailable")
        return session_factory()

    worker = BlockingWorker()
    worker.release.set()
    scheduler = JobScheduler(flaky_factory, worker, poll_interval=0.01)
    make_job()

    await scheduler.start()
    try:
        await wait_until(lambda: len(worker.started) == 1)
    finally:
        await scheduler.stop()

    assert calls["n"] > 1


@pytest.mark.asyncio
async def test_stop_cancels_in_flight_and_requeues(session_factory, make_job, load_job):
    worker = BlockingWorker()
    scheduler = JobScheduler(session_factory, worker, poll_interval=0.01)
    job_id = make_job()

    await scheduler.start()
    await wait_until(lambda: worker.started == [job_id])
    assert load_job(job_id).status == JobStatus.PROCESSING.value

    requeued = await scheduler.stop()

    assert requeued == 1
    assert load_job(job_id).status == JobStatus.QUEUED.value
    assert scheduler.in_flight_count == 0
    assert not scheduler.running


@pytest.mark.asyncio
async def test_stop_when_not_running_is_a_no_op(session_factory):
    scheduler = JobScheduler(session_factory, BlockingWorker())
    assert await scheduler.stop() == 0


def test_rejects_zero_slots(session_factory):
    with pytest.raises(ValueError):
        JobScheduler(session_factory, BlockingWorker(), max_concurrent_jobs=0)


@pytest.mark.asyncio
async def test_task_cancelled_before_running_releases_slot(session_factory, make_job):
    worker = BlockingWorker()
    scheduler = JobScheduler(session_factory, worker, max_concurrent_jobs=1)
    make_job()
    make_job()

    task = await scheduler.tick()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert worker.started == []
    assert scheduler.in_flight_count == 0
    assert not scheduler._slots.locked()

    worker.release.set()
    assert await scheduler.tick() is not None
