"""
Job Worker - drives one claimed job to a terminal status

Process:
1. Validate the input descriptor and kind (terminal on failure, nothing touched)
2. Create the job's staging directory
3. Download every input concurrently (first failure cancels the rest)
4. STITCH: concat with ffmpeg, upload to user-{owner}/outputs/{basename}
   TRANSCRIBE: send the first input's store path to the transcription function
5. Record COMPLETED with the output descriptor

Any exception along the way records FAILED with the error text verbatim.
The staging directory is removed whatever happens.

Retry Policy:
- No retry inside a job (only the store upload retries connection resets)
- Jobs interrupted by a shutdown are requeued and run again from scratch
"""
import asyncio
from pathlib import Path, PurePosixPath
from typing import Callable, Optional
import logging

from sqlalchemy.orm import Session

from constants import JobKind, JobStatus, StorageDefaults
from exceptions import JobConflictError, JobTimeoutError, ValidationError
from repositories.job_repository import JobRepository
from services.staging_service import StagingService
from services.storage_service import StorageService
from services.function_service import TranscriptionService
from workers.media_concat import MediaConcatRunner
from utils.input_paths import basename_clash_message, find_basename_clash
from utils.logging_utils import JobLogAdapter

logger = logging.getLogger(__name__)


class JobWorker:
    """Executes claimed jobs; one instance is shared by all in-flight jobs"""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        staging: StagingService,
        storage: StorageService,
        concat_runner: MediaConcatRunner,
        transcriber: TranscriptionService,
        *,
        upload_max_retries: int = StorageDefaults.UPLOAD_MAX_RETRIES,
        upload_retry_delay_ms: int = StorageDefaults.UPLOAD_RETRY_DELAY_MS,
        job_timeout_seconds: float = 0,
        max_job_attempts: int = 0,
    ):
        self.session_factory = session_factory
        self.staging = staging
        self.storage = storage
        self.concat_runner = concat_runner
        self.transcriber = transcriber
        self.upload_max_retries = upload_max_retries
        self.upload_retry_delay_ms = upload_retry_delay_ms
        self.job_timeout_seconds = job_timeout_seconds
        self.max_job_attempts = max_job_attempts

    async def process_job(self, job_id: str) -> Optional[JobStatus]:
        """
        Run a claimed (PROCESSING) job to COMPLETED or FAILED.

        Each call uses its own database session and staging directory, so
        several jobs may run side by side.

        Returns:
            The terminal status recorded, or None if it could not be recorded
        """
        log = JobLogAdapter(logger, job_id)
        db = self.session_factory()
        staging_created = False

        try:
            repo = JobRepository(db)
            job = repo.get_by_id(job_id)
            if job is None:
                log.error("Job disappeared before execution started")
                return None

            log.info(f"Processing job... Type: {job.kind} (attempt {job.attempts})")
            owner_id = job.owner_id

            try:
                self._check_attempts(job.id, job.attempts)
                input_paths = job.get_input_paths()
                kind = job.get_kind()

                staging_dir = self.staging.create(job_id)
                staging_created = True

                output = await self._with_deadline(
                    job_id,
                    self._execute(job_id, owner_id, kind, input_paths, staging_dir, log)
                )
                repo.set_status(job_id, JobStatus.COMPLETED, output_descriptor=output)

            except Exception as e:
                log.error(f"❌ Error processing job: {e}", exc_info=not isinstance(e, ValidationError))
                return self._mark_failed(repo, job_id, e, log)

            log.info("✅ Job completed successfully.")
            return JobStatus.COMPLETED

        finally:
            if staging_created:
                await self.staging.cleanup(job_id)
            db.close()

    async def _execute(
        self,
        job_id: str,
        owner_id: str,
        kind: JobKind,
        input_paths: list[str],
        staging_dir: Path,
        log: JobLogAdapter
    ) -> str:
        """Download inputs, run the kind-specific task and return the output descriptor"""
        log.info(f"Downloading {len(input_paths)} file(s)...")
        local_paths = await self._download_inputs(kind, input_paths, staging_dir)
        log.info("All files downloaded to staging directory.")

        if kind is JobKind.STITCH:
            local_output = await self.concat_runner.concat(job_id, local_paths, staging_dir)
            output_path = StorageDefaults.output_path(owner_id, local_output.name)
            await self.storage.upload(
                local_output,
                output_path,
                max_retries=self.upload_max_retries,
                retry_delay_ms=self.upload_retry_delay_ms
            )
            return output_path

        elif kind is JobKind.TRANSCRIBE:
            return await self.transcriber.transcribe(input_paths[0])

        raise ValidationError(f"Unsupported job kind: {kind}")

    async def _download_inputs(
        self,
        kind: JobKind,
        input_paths: list[str],
        staging_dir: Path
    ) -> list[Path]:
        """
        Download all inputs concurrently, preserving input order.

        The same store path listed twice is downloaded once. For STITCH,
        distinct paths that share a basename would overwrite each other and
        are rejected. TRANSCRIBE only reads the first input's store path, so
        later paths whose basename is already staged are skipped.
        """
        if kind is JobKind.STITCH:
            clash = find_basename_clash(input_paths)
            if clash:
                raise ValidationError(basename_clash_message(clash))
            unique_paths = list(dict.fromkeys(input_paths))
        else:
            first_by_name: dict[str, str] = {}
            for storage_path in input_paths:
                first_by_name.setdefault(PurePosixPath(storage_path).name, storage_path)
            unique_paths = list(first_by_name.values())

        tasks = [
            asyncio.create_task(self.storage.download(storage_path, staging_dir))
            for storage_path in unique_paths
        ]
        try:
            downloaded = await asyncio.gather(*tasks)
        except BaseException:
            # Fail fast: stop the downloads still in flight
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        # Every staged file is named after its basename
        by_name = {PurePosixPath(p).name: local for p, local in zip(unique_paths, downloaded)}
        return [by_name[PurePosixPath(p).name] for p in input_paths]

    async def _with_deadline(self, job_id: str, coro):
        if not self.job_timeout_seconds:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=self.job_timeout_seconds)
        except asyncio.TimeoutError:
            raise JobTimeoutError(job_id, self.job_timeout_seconds)

    def _check_attempts(self, job_id: str, attempts: int) -> None:
        """Stop a job that keeps getting requeued from running forever"""
        if self.max_job_attempts and attempts > self.max_job_attempts:
            raise JobConflictError(
                job_id,
                f"Job exceeded the maximum of {self.max_job_attempts} processing attempts"
            )

    def _mark_failed(
        self,
        repo: JobRepository,
        job_id: str,
        error: Exception,
        log: JobLogAdapter
    ) -> Optional[JobStatus]:
        """
        Record FAILED with the error text.

        If the status write itself fails there is nothing further to do but
        log it; the job stays wherever the store left it.
        """
        try:
            repo.db.rollback()
            repo.set_status(
                job_id,
                JobStatus.FAILED,
                error_detail=str(error) or f"{type(error).__name__} during processing"
            )
            return JobStatus.FAILED
        except Exception as write_error:
            log.error(f"Failed to record FAILED status: {write_error}", exc_info=True)
            return None

    async def close(self) -> None:
        """Release HTTP clients held by the store and transcription services"""
        await self.storage.close()
        await self.transcriber.close()
