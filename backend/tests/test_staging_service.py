import asyncio
import shutil
import time
from pathlib import Path

import pytest

from services.staging_service import StagingService


async def _max_loop_gap(work, interval=0.01):
    """Run ``work`` next to a heartbeat task and return the longest gap between beats"""
    loop = asyncio.get_running_loop()
    beats = []
    done = asyncio.Event()

    async def heartbeat():
        while not done.is_set():
            beats.append(loop.time())
            await asyncio.sleep(interval)

    beat_task = asyncio.create_task(heartbeat())
    await asyncio.sleep(interval * 3)
    try:
        await work
        await asyncio.sleep(interval * 3)
    finally:
        done.set()
        await beat_task
    return max(b - a for a, b in zip(beats, beats[1:]))


@pytest.mark.asyncio
async def test_create_and_cleanup(tmp_path):
    staging = StagingService(tmp_path / "staging")

    job_dir = staging.create("job-1")
    staged = await staging.write_file(job_dir / "a.mp4", b"data")

    assert job_dir == tmp_path / "staging" / "job-1"
    assert await staging.read_file(staged) == b"data"

    await staging.cleanup("job-1")
    assert not job_dir.exists()


def test_create_is_idempotent(tmp_path):
    staging = StagingService(tmp_path)
    first = staging.create("job-1")
    (first / "keep.txt").write_text("x")

    assert staging.create("job-1") == first
    assert (first / "keep.txt").exists()


@pytest.mark.asyncio
async def test_cleanup_of_missing_directory_is_a_no_op(tmp_path):
    staging = StagingService(tmp_path)
    staging.create("job-1")
    await staging.cleanup("job-1")

    await staging.cleanup("job-1")
    await staging.cleanup("never-created")


@pytest.mark.asyncio
async def test_cleanup_swallows_errors(tmp_path, monkeypatch):
    staging = StagingService(tmp_path)
    staging.create("job-1")

    def explode(path):
        raise PermissionError("denied")

    monkeypatch.setattr("services.staging_service.shutil.rmtree", explode)
    await staging.cleanup("job-1")


@pytest.mark.parametrize("job_id", ["", ".", "..", "a/b"])
def test_path_for_rejects_unsafe_ids(tmp_path, job_id):
    with pytest.raises(ValueError):
        StagingService(tmp_path).path_for(job_id)


@pytest.mark.asyncio
async def test_slow_write_does_not_stall_the_loop(tmp_path, monkeypatch):
    original = Path.write_bytes

    def slow_write(self, data):
        time.sleep(0.3)
        return original(self, data)

    monkeypatch.setattr(Path, "write_bytes", slow_write)
    target = tmp_path / "a.mp4"

    gap = await _max_loop_gap(StagingService.write_file(target, b"clip"))

    assert gap < 0.2
    assert target.read_bytes() == b"clip"


@pytest.mark.asyncio
async def test_slow_cleanup_does_not_stall_the_loop(tmp_path, monkeypatch):
    staging = StagingService(tmp_path)
    job_dir = staging.create("job-1")
    (job_dir / "a.mp4").write_bytes(b"clip")

    original = shutil.rmtree

    def slow_rmtree(path):
        time.sleep(0.3)
        original(path)

    monkeypatch.setattr("services.staging_service.shutil.rmtree", slow_rmtree)

    gap = await _max_loop_gap(staging.cleanup("job-1"))

    assert gap < 0.2
    assert not job_dir.exists()
