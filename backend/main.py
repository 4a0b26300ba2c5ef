from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import logging
import sys

from api import jobs
from config.worker_config import get_config
from constants import JobStatus
from database import SessionLocal
from exceptions import ApplicationError
from init_db import init_database
from repositories.job_repository import JobRepository
from schemas import HealthStatus
from services.job_scheduler import JobScheduler, build_job_scheduler
from utils.logging_utils import configure_logging

config = get_config()
log_file = configure_logging(config.log_dir, 'api', config.log_level)

logger = logging.getLogger(__name__)
logger.info(f"Logging initialized: {log_file}")

# In-process scheduler, only when RUN_WORKER_IN_API is set
_scheduler: Optional[JobScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown"""
    global _scheduler

    init_database()

    if config.run_worker_in_api:
        try:
            _scheduler = build_job_scheduler(config, SessionLocal)
            await _scheduler.start()
            logger.info("✅ In-process job scheduler started")
        except ApplicationError as e:
            logger.error(f"❌ Job scheduler not started: {e.message}")
            _scheduler = None

    yield

    # Shutdown
    if _scheduler is not None:
        requeued = await _scheduler.stop()
        await _scheduler.worker.close()
        logger.info(f"Job scheduler stopped ({requeued} job(s) requeued)")
        _scheduler = None

    logger.info("Application shutdown complete")


app = FastAPI(
    title="Clip Pipeline API",
    description="Job submission and status API for the media job pipeline",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(jobs.router, prefix="/api", tags=["jobs"])


@app.get("/health", response_model=HealthStatus)
def health_check():
    """Health check endpoint"""
    db = SessionLocal()
    try:
        repo = JobRepository(db)
        return HealthStatus(
            status="ok",
            queued_jobs=repo.count_by_status(JobStatus.QUEUED),
            processing_jobs=repo.count_by_status(JobStatus.PROCESSING),
            worker_running=bool(_scheduler and _scheduler.running),
        )
    finally:
        db.close()


if __name__ == "__main__":
    import uvicorn
    import socket
    from constants import ServerConfig

    def is_port_in_use(port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((ServerConfig.HOST, port))
                return False
            except OSError:
                return True

    if is_port_in_use(ServerConfig.PORT):
        logger.error(f"❌ Port {ServerConfig.PORT} is already in use!")
        logger.error(f"   To fix: Run 'lsof -ti:{ServerConfig.PORT} | xargs kill -9'")
        sys.exit(1)

    logger.info(f"🚀 Starting Clip Pipeline API on {ServerConfig.url()}...")
    uvicorn.run(app, host=ServerConfig.HOST, port=ServerConfig.PORT)
