import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api import jobs
from constants import JobKind, JobStatus
from dependencies import get_job_service
from exceptions import StorageError
from services.job_service import JobService

OWNER = {"X-User-Id": "owner-1"}


class FakeStorage:
    def __init__(self, fail=False):
        self.removed = []
        self.fail = fail

    async def remove(self, storage_paths):
        if self.fail:
            raise StorageError("Failed to remove objects: gateway timeout (HTTP 504)")
        self.removed.extend(storage_paths)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def client(db_session, storage):
    app = FastAPI()
    app.include_router(jobs.router, prefix="/api")
    app.dependency_overrides[get_job_service] = lambda: JobService(db_session, storage)
    with TestClient(app) as test_client:
        yield test_client


def test_requires_user_header(client):
    assert client.get("/api/jobs").status_code == 401


def test_create_job_is_queued(client, load_job):
    response = client.post(
        "/api/jobs",
        json={"kind": "STITCH", "input_files": ["user-owner-1/a.mp4", "user-owner-1/b.mp4"]},
        headers=OWNER,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "QUEUED"
    assert body["owner_id"] == "owner-1"
    assert body["input_files"] == ["user-owner-1/a.mp4", "user-owner-1/b.mp4"]
    assert body["attempts"] == 0

    job = load_job(body["id"])
    assert json.loads(job.input_descriptor) == ["user-owner-1/a.mp4", "user-owner-1/b.mp4"]


@pytest.mark.parametrize("payload", [
    {"kind": "RENDER", "input_files": ["a.mp4"]},
    {"kind": "STITCH", "input_files": []},
    {"kind": "STITCH", "input_files": ["  "]},
    {"kind": "TRANSCRIBE"},
])
def test_create_job_rejects_bad_payloads(client, payload):
    assert client.post("/api/jobs", json=payload, headers=OWNER).status_code == 422


def test_stitch_with_clashing_basenames_is_rejected_at_submission(client):
    response = client.post(
        "/api/jobs",
        json={"kind": "STITCH", "input_files": ["day1/clip.mp4", "day2/clip.mp4"]},
        headers=OWNER,
    )

    assert response.status_code == 422
    assert "share the file name 'clip.mp4'" in response.text
    assert client.get("/api/jobs", headers=OWNER).json() == []


def test_transcribe_with_clashing_basenames_is_accepted(client):
    response = client.post(
        "/api/jobs",
        json={"kind": "TRANSCRIBE", "input_files": ["day1/clip.mp4", "day2/clip.mp4"]},
        headers=OWNER,
    )

    assert response.status_code == 201
    assert response.json()["input_files"] == ["day1/clip.mp4", "day2/clip.mp4"]


def test_list_and_get_are_scoped_to_owner(client, make_job):
    mine = make_job(owner_id="owner-1")
    theirs = make_job(owner_id="owner-2")

    listed = client.get("/api/jobs", headers=OWNER).json()
    assert [job["id"] for job in listed] == [mine]

    assert client.get(f"/api/jobs/{mine}", headers=OWNER).status_code == 200
    assert client.get(f"/api/jobs/{theirs}", headers=OWNER).status_code == 404


def test_update_captions_on_completed_transcription(client, make_job, load_job):
    job_id = make_job(kind=JobKind.TRANSCRIBE.value, status=JobStatus.COMPLETED.value,
                      output_descriptor="helo world")

    response = client.patch(f"/api/jobs/{job_id}/captions", json={"captions": "hello world"}, headers=OWNER)

    assert response.status_code == 200
    assert response.json()["output_descriptor"] == "hello world"
    job = load_job(job_id)
    assert job.output_descriptor == "hello world"
    assert job.status == JobStatus.COMPLETED.value


@pytest.mark.parametrize("kind,status", [
    (JobKind.STITCH.value, JobStatus.COMPLETED.value),
    (JobKind.TRANSCRIBE.value, JobStatus.QUEUED.value),
    (JobKind.TRANSCRIBE.value, JobStatus.FAILED.value),
])
def test_update_captions_rejected_for_other_jobs(client, make_job, kind, status):
    job_id = make_job(kind=kind, status=status)

    response = client.patch(f"/api/jobs/{job_id}/captions", json={"captions": "x"}, headers=OWNER)

    assert response.status_code == 400


def test_delete_completed_stitch_removes_output(client, make_job, load_job, storage):
    job_id = make_job(status=JobStatus.COMPLETED.value, output_descriptor="user-owner-1/outputs/out.mp4")

    response = client.delete(f"/api/jobs/{job_id}", headers=OWNER)

    assert response.status_code == 204
    assert load_job(job_id) is None
    assert storage.removed == ["user-owner-1/outputs/out.mp4"]


def test_delete_keeps_going_when_output_removal_fails(db_session, make_job, load_job):
    app = FastAPI()
    app.include_router(jobs.router, prefix="/api")
    app.dependency_overrides[get_job_service] = lambda: JobService(db_session, FakeStorage(fail=True))
    job_id = make_job(status=JobStatus.COMPLETED.value, output_descriptor="user-owner-1/outputs/out.mp4")

    with TestClient(app) as client:
        assert client.delete(f"/api/jobs/{job_id}", headers=OWNER).status_code == 204

    assert load_job(job_id) is None


def test_delete_processing_job_conflicts(client, make_job, load_job, storage):
    job_id = make_job(status=JobStatus.PROCESSING.value)

    response = client.delete(f"/api/jobs/{job_id}", headers=OWNER)

    assert response.status_code == 409
    assert load_job(job_id) is not None
    assert storage.removed == []


def test_delete_other_owners_job_is_not_found(client, make_job, load_job):
    job_id = make_job(owner_id="owner-2", status=JobStatus.FAILED.value)

    assert client.delete(f"/api/jobs/{job_id}", headers=OWNER).status_code == 404
    assert load_job(job_id) is not None
