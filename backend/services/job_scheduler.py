import asyncio
from typing import Callable, Optional, Set
import logging

from sqlalchemy.orm import Session

from config.worker_config import WorkerConfig
from repositories.job_repository import JobRepository
from services.staging_service import StagingService
from services.storage_service import StorageService
from services.function_service import TranscriptionService
from workers.job_worker import JobWorker
from workers.media_concat import MediaConcatRunner

logger = logging.getLogger(__name__)


class JobScheduler:
    """
    Polls the job table and runs claimed jobs as asyncio tasks.

    At most ``max_concurrent_jobs`` jobs run at once from this process. A tick
    that finds every slot taken does nothing; the slot is handed back when the
    job task finishes, whatever the outcome.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        worker: JobWorker,
        poll_interval: float = 5.0,
        max_concurrent_jobs: int = 1
    ):
        if max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")

        self.session_factory = session_factory
        self.worker = worker
        self.poll_interval = poll_interval
        self.max_concurrent_jobs = max_concurrent_jobs

        self._slots = asyncio.Semaphore(max_concurrent_jobs)
        self._in_flight: Set[asyncio.Task] = set()
        self._stop_event: Optional[asyncio.Event] = None
        self._poll_task: Optional[asyncio.Task] = None

        self.running = False

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def _claim_next(self) -> Optional[str]:
        db = self.session_factory()
        try:
            job = JobRepository(db).claim_next()
            if job is None:
                return None
            logger.info(f"Found queued job: {job.id} ({job.kind}, attempt {job.attempts})")
            return job.id
        finally:
            db.close()

    async def tick(self) -> Optional[asyncio.Task]:
        """
        Run one polling step.

        Returns:
            The task running the newly claimed job, or None if nothing was
            claimed (no free slot or an empty queue)
        """
        if self._slots.locked():
            logger.debug(f"Max concurrent jobs ({self.max_concurrent_jobs}) reached, skipping poll")
            return None

        await self._slots.acquire()
        try:
            job_id = self._claim_next()
        except BaseException:
            self._slots.release()
            raise

        if job_id is None:
            self._slots.release()
            return None

        task = asyncio.create_task(self._run_job(job_id), name=f"job-{job_id}")
        self._in_flight.add(task)
        task.add_done_callback(self._job_done)
        return task

    def _job_done(self, task: asyncio.Task) -> None:
        # Runs even for a task cancelled before its first step
        self._in_flight.discard(task)
        self._slots.release()

    async def _run_job(self, job_id: str) -> None:
        try:
            await self.worker.process_job(job_id)
        except Exception as e:
            logger.error(f"[{job_id}] Unhandled error while running job: {e}", exc_info=True)

    async def _poll_loop(self):
        """Tick every poll interval until stop() is called"""
        logger.info(
            f"Job scheduler loop started (poll every {self.poll_interval:g}s, "
            f"max {self.max_concurrent_jobs} concurrent job(s))"
        )

        while not self._stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Error polling for jobs: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Job scheduler loop stopped")

    async def start(self):
        """Start polling"""
        if self.running:
            logger.warning("JobScheduler already running")
            return

        self.running = True
        self._stop_event = asyncio.Event()
        self._poll_task = asyncio.create_task(self._poll_loop(), name="job-scheduler")

    async def stop(self) -> int:
        """
        Stop polling, abandon in-flight jobs and requeue them.

        In-flight job tasks are cancelled (their staging directories are still
        removed), then every PROCESSING job is returned to QUEUED so a later
        worker picks it up again.

        Returns:
            Number of jobs requeued
        """
        if not self.running:
            return 0

        logger.info("Stopping JobScheduler...")
        self.running = False
        self._stop_event.set()
        if self._poll_task is not None:
            await asyncio.gather(self._poll_task, return_exceptions=True)
            self._poll_task = None

        tasks = list(self._in_flight)
        for task in tasks:
            if not task.done():
                task.cancel()

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, asyncio.CancelledError):
                logger.info(f"{task.get_name()} cancelled for shutdown")
            elif isinstance(result, Exception):
                logger.error(f"{task.get_name()} failed during shutdown: {result}")

        requeued = 0
        db = self.session_factory()
        try:
            requeued = JobRepository(db).requeue_all_processing()
            if requeued > 0:
                logger.info(f"🛑 Graceful shutdown: {requeued} in-flight job(s) requeued")
        except Exception as e:
            logger.error(f"Error requeueing jobs during shutdown: {e}", exc_info=True)
        finally:
            db.close()

        logger.info("JobScheduler stopped")
        return requeued


def build_job_scheduler(config: WorkerConfig, session_factory: Callable[[], Session]) -> JobScheduler:
    """
    Wire a scheduler and its worker from configuration.

    Raises:
        ConfigurationError: If the store URL or service key is missing
    """
    config.require_store_credentials()

    worker = JobWorker(
        session_factory,
        staging=StagingService(config.staging_base_dir),
        storage=StorageService(
            config.supabase_url,
            config.supabase_service_key,
            config.storage_bucket,
            timeout=config.http_timeout_seconds
        ),
        concat_runner=MediaConcatRunner(config.ffmpeg_binary),
        transcriber=TranscriptionService(
            config.supabase_url,
            config.supabase_service_key,
            config.transcription_function,
            timeout=config.http_timeout_seconds
        ),
        upload_max_retries=config.upload_max_retries,
        upload_retry_delay_ms=config.upload_retry_delay_ms,
        job_timeout_seconds=config.job_timeout_seconds,
        max_job_attempts=config.max_job_attempts,
    )
    return JobScheduler(
        session_factory,
        worker,
        poll_interval=config.poll_interval_seconds,
        max_concurrent_jobs=config.max_concurrent_jobs
    )
