"""
Jobs API endpoints

Submission, listing, caption editing and deletion of an owner's jobs. The
worker process does the actual work; these routes only touch the job table
(and, on delete, the job's output object).
"""
from fastapi import APIRouter, Depends, Response
from typing import List
import logging

from constants import HTTPStatus
from dependencies import get_current_user_id, get_job_service
from schemas import Job as JobSchema, JobCreate, CaptionUpdate
from services.job_service import JobService
from utils.error_handlers import handle_api_errors

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/jobs", response_model=List[JobSchema])
@handle_api_errors("Job listing")
def list_jobs(
    limit: int = 100,
    owner_id: str = Depends(get_current_user_id),
    job_service: JobService = Depends(get_job_service)
):
    """
    List the caller's jobs, newest first

    Args:
        limit: Maximum number of jobs to return (default 100)
    """
    return job_service.list_jobs(owner_id, limit=limit)


@router.get("/jobs/{job_id}", response_model=JobSchema)
@handle_api_errors("Job lookup")
def get_job(
    job_id: str,
    owner_id: str = Depends(get_current_user_id),
    job_service: JobService = Depends(get_job_service)
):
    return job_service.get_job(owner_id, job_id)


@router.post("/jobs", response_model=JobSchema, status_code=HTTPStatus.CREATED)
@handle_api_errors("Job creation")
def create_job(
    payload: JobCreate,
    owner_id: str = Depends(get_current_user_id),
    job_service: JobService = Depends(get_job_service)
):
    """
    Submit a job

    The job starts QUEUED and is picked up by the next free worker slot.
    """
    return job_service.create_job(owner_id, payload.kind.value, payload.input_files)


@router.patch("/jobs/{job_id}/captions", response_model=JobSchema)
@handle_api_errors("Caption update")
def update_captions(
    job_id: str,
    payload: CaptionUpdate,
    owner_id: str = Depends(get_current_user_id),
    job_service: JobService = Depends(get_job_service)
):
    """
    Replace the transcript of a completed TRANSCRIBE job

    Returns 400 for any other kind or status. The job's status is unchanged.
    """
    return job_service.update_captions(owner_id, job_id, payload.captions)


@router.delete("/jobs/{job_id}", status_code=HTTPStatus.NO_CONTENT)
@handle_api_errors("Job deletion")
async def delete_job(
    job_id: str,
    owner_id: str = Depends(get_current_user_id),
    job_service: JobService = Depends(get_job_service)
):
    """
    Delete a job and its output object

    Returns 409 while a worker is processing the job. Removing the output
    object is best-effort; the row is deleted either way.
    """
    await job_service.delete_job(owner_id, job_id)
    return Response(status_code=HTTPStatus.NO_CONTENT)
