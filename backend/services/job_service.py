"""
Job Service

Business logic behind the jobs API: submission, listing, caption edits and
deletion. Every operation is scoped to the calling owner; a job owned by
someone else behaves exactly like a missing one.
"""

from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import json
import logging

from constants import JobKind, JobStatus
from exceptions import DatabaseError, JobConflictError, JobNotFoundError, StorageError, ValidationError
from models import Job
from repositories.job_repository import JobRepository
from services.storage_service import StorageService
from utils.input_paths import basename_clash_message, find_basename_clash

logger = logging.getLogger(__name__)


class JobService:
    """Service for job-related business logic."""

    def __init__(self, db: Session, storage: Optional[StorageService] = None):
        """
        Initialize JobService.

        Args:
            db: Database session
            storage: Object store gateway, used to remove outputs on delete.
                Without it, deleting a job leaves its output object behind.
        """
        self.db = db
        self.job_repo = JobRepository(db)
        self.storage = storage

    def create_job(self, owner_id: str, kind: str, input_files: List[str]) -> Job:
        """
        Submit a new job in QUEUED status.

        Args:
            owner_id: Owner reference
            kind: Job kind (STITCH or TRANSCRIBE)
            input_files: Ordered store paths of the inputs

        Raises:
            ValidationError: If the kind is unknown or the input list is empty
                or contains anything other than non-empty strings, or if two
                STITCH inputs would be staged under the same file name
        """
        try:
            job_kind = JobKind(kind)
        except ValueError:
            raise ValidationError(
                f"Unsupported job kind: {kind}", invalid_fields={'kind': kind}
            )

        if not isinstance(input_files, list) or len(input_files) == 0:
            raise ValidationError(
                "At least one input file is required.", invalid_fields={'input_files': input_files}
            )
        if not all(isinstance(p, str) and p.strip() for p in input_files):
            raise ValidationError(
                "Input files must be non-empty store paths.", invalid_fields={'input_files': input_files}
            )
        if job_kind is JobKind.STITCH:
            clash = find_basename_clash(input_files)
            if clash:
                raise ValidationError(
                    basename_clash_message(clash), invalid_fields={'input_files': list(clash[:2])}
                )

        job = Job(
            owner_id=owner_id,
            kind=job_kind.value,
            status=JobStatus.QUEUED.value,
            input_descriptor=json.dumps(input_files),
        )
        try:
            job = self.job_repo.create(job)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError("create_job", f"Failed to create job: {e}")
        logger.info(f"Created {job.kind} job {job.id} for owner {owner_id} ({len(input_files)} input file(s))")
        return job

    def list_jobs(self, owner_id: str, limit: int = 100) -> List[Job]:
        return self.job_repo.list_for_owner(owner_id, limit=limit)

    def get_job(self, owner_id: str, job_id: str) -> Job:
        """
        Raises:
            JobNotFoundError: If the job is missing or owned by someone else
        """
        job = self.job_repo.get_for_owner(job_id, owner_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def update_captions(self, owner_id: str, job_id: str, captions: str) -> Job:
        """
        Replace the transcript of a completed TRANSCRIBE job.

        The job's status is never changed.

        Raises:
            JobNotFoundError: If the job is missing or owned by someone else
            ValidationError: If the job is not a completed TRANSCRIBE job
        """
        job = self.get_job(owner_id, job_id)

        if job.kind != JobKind.TRANSCRIBE.value:
            raise ValidationError("Captions can only be edited for TRANSCRIBE jobs.")
        if job.status != JobStatus.COMPLETED.value:
            raise ValidationError(
                f"Captions can only be edited once the job is COMPLETED (current status: {job.status})."
            )

        if not self.job_repo.update_output_text(job_id, captions):
            # Deleted or changed between the read and the write
            raise JobNotFoundError(job_id)

        logger.info(f"Updated captions for job {job_id}")
        self.db.refresh(job)
        return job

    async def delete_job(self, owner_id: str, job_id: str) -> None:
        """
        Delete a job and, best-effort, its output object.

        The output object is removed before the row. Inputs are left in the
        store; they belong to the uploader, not the job.

        Raises:
            JobNotFoundError: If the job is missing or owned by someone else
            JobConflictError: If a worker is currently processing the job
        """
        job = self.get_job(owner_id, job_id)
        if job.status == JobStatus.PROCESSING.value:
            raise self._processing_conflict(job_id)

        # Only COMPLETED jobs carry an output object, and they never go back to PROCESSING
        output_path = self._output_object(job)
        if output_path and self.storage is not None:
            try:
                await self.storage.remove([output_path])
                logger.info(f"Removed output object {output_path} for job {job_id}")
            except StorageError as e:
                logger.warning(f"Could not remove output object {output_path} for job {job_id}: {e.message}")

        # Conditional delete: a worker may claim a QUEUED job after the read above
        if not self.job_repo.delete_unless_processing(job_id):
            if self.job_repo.get_by_id(job_id) is None:
                raise JobNotFoundError(job_id)
            raise self._processing_conflict(job_id)
        logger.info(f"Deleted job {job_id}")

    @staticmethod
    def _processing_conflict(job_id: str) -> JobConflictError:
        return JobConflictError(job_id, f"Job {job_id} is being processed and cannot be deleted yet.")

    @staticmethod
    def _output_object(job: Job) -> Optional[str]:
        """Store path produced by the job, if it produced one"""
        if job.kind == JobKind.STITCH.value and job.status == JobStatus.COMPLETED.value:
            return job.output_descriptor or None
        return None
