"""
Job repository: the job store consumed by the scheduler and the API.

All status mutation goes through conditional UPDATE statements so that two
workers (or a worker and the shutdown requeue) can never both win the same
transition.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import delete, update
from sqlalchemy.orm import Session
import logging

from constants import JobKind, JobStatus
from exceptions import JobNotFoundError, InvalidStatusTransitionError
from models import Job as JobModel
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Allowed source statuses for each target status
_TRANSITION_SOURCES = {
    JobStatus.PROCESSING: [JobStatus.QUEUED],
    JobStatus.COMPLETED: [JobStatus.PROCESSING],
    JobStatus.FAILED: [JobStatus.PROCESSING],
    JobStatus.QUEUED: [JobStatus.PROCESSING],  # shutdown requeue only
}

# How many queued candidates a single claim inspects before giving up
CLAIM_CANDIDATE_BATCH = 5


class JobRepository(BaseRepository[JobModel]):
    """Repository for Job model operations."""

    def __init__(self, db: Session):
        super().__init__(db, JobModel)

    def claim_next(self) -> Optional[JobModel]:
        """
        Atomically claim the oldest QUEUED job.

        The claim is a conditional update (status must still be QUEUED), so a
        job is never handed to two concurrent callers. If another worker wins
        the race for a candidate, the next oldest candidate is tried.

        Returns:
            The claimed job (now PROCESSING, attempts incremented), or None
        """
        candidates = self.db.query(self.model.id).filter(
            self.model.status == JobStatus.QUEUED.value
        ).order_by(self.model.created_at, self.model.id).limit(CLAIM_CANDIDATE_BATCH).all()

        for (job_id,) in candidates:
            result = self.db.execute(
                update(self.model)
                .where(
                    self.model.id == job_id,
                    self.model.status == JobStatus.QUEUED.value
                )
                .values(
                    status=JobStatus.PROCESSING.value,
                    attempts=self.model.attempts + 1,
                    updated_at=datetime.utcnow()
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self.db.commit()
                logger.debug(f"Claimed job {job_id}")
                return self.get_by_id(job_id)

            self.db.rollback()
            logger.debug(f"Job {job_id} was claimed by another worker")

        return None

    def set_status(
        self,
        job_id: str,
        status: JobStatus,
        output_descriptor: Optional[str] = None,
        error_detail: Optional[str] = None
    ) -> JobModel:
        """
        Move a job to a new status, optionally recording its output or error.

        The output descriptor is only written on COMPLETED and the error detail
        only on FAILED.

        Args:
            job_id: Job UUID
            status: Target status
            output_descriptor: Store path or transcript (COMPLETED only)
            error_detail: Failure message (FAILED only)

        Returns:
            The updated job

        Raises:
            JobNotFoundError: If the job no longer exists
            InvalidStatusTransitionError: If the job is not in a status that
                allows moving to ``status``
        """
        status = JobStatus(status)
        sources = [s.value for s in _TRANSITION_SOURCES[status]]

        values = {'status': status.value, 'updated_at': datetime.utcnow()}
        if status == JobStatus.COMPLETED:
            values['output_descriptor'] = output_descriptor
            values['error_detail'] = None
        elif status == JobStatus.FAILED:
            values['error_detail'] = error_detail

        result = self.db.execute(
            update(self.model)
            .where(self.model.id == job_id, self.model.status.in_(sources))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            self.db.commit()
            job = self.get_by_id(job_id)
            self.db.refresh(job)
            return job

        self.db.rollback()
        job = self.get_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        raise InvalidStatusTransitionError(job_id, job.status, status.value)

    def update_output_text(self, job_id: str, text: str) -> bool:
        """
        Replace the transcript of a completed TRANSCRIBE job.

        Status is left untouched. The update only applies while the job is
        still a COMPLETED TRANSCRIBE job.

        Returns:
            True if the row was updated
        """
        result = self.db.execute(
            update(self.model)
            .where(
                self.model.id == job_id,
                self.model.kind == JobKind.TRANSCRIBE.value,
                self.model.status == JobStatus.COMPLETED.value
            )
            .values(output_descriptor=text, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def delete_unless_processing(self, job_id: str) -> bool:
        """
        Delete a job unless a worker currently holds it.

        Returns:
            True if the row was deleted
        """
        result = self.db.execute(
            delete(self.model)
            .where(
                self.model.id == job_id,
                self.model.status != JobStatus.PROCESSING.value
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def requeue_all_processing(self) -> int:
        """
        Return every PROCESSING job to QUEUED.

        Used only by the orderly shutdown path so interrupted jobs are picked
        up again by a future worker.

        Returns:
            Number of jobs requeued
        """
        result = self.db.execute(
            update(self.model)
            .where(self.model.status == JobStatus.PROCESSING.value)
            .values(status=JobStatus.QUEUED.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount or 0

    def get_for_owner(self, job_id: str, owner_id: str) -> Optional[JobModel]:
        """
        Get a job only if it belongs to the given owner.

        Args:
            job_id: Job UUID
            owner_id: Owner reference

        Returns:
            Job instance, or None if missing or owned by someone else
        """
        return self.db.query(self.model).filter(
            self.model.id == job_id,
            self.model.owner_id == owner_id
        ).first()

    def list_for_owner(self, owner_id: str, limit: int = 100) -> List[JobModel]:
        """
        List an owner's jobs, newest first.

        Args:
            owner_id: Owner reference
            limit: Maximum number of jobs to return
        """
        return self.db.query(self.model).filter(
            self.model.owner_id == owner_id
        ).order_by(self.model.created_at.desc()).limit(limit).all()

    def count_by_status(self, status: JobStatus) -> int:
        """Count jobs in a specific status."""
        return self.db.query(self.model).filter(
            self.model.status == JobStatus(status).value
        ).count()
