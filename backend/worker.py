"""
Worker process entry point

Polls the job table and runs jobs until SIGINT or SIGTERM. On either signal,
polling stops, in-flight jobs are abandoned and every PROCESSING job is put
back to QUEUED before the process exits.

Usage:
    python worker.py
"""
import asyncio
import signal
import logging
import sys

from config.worker_config import get_config
from database import SessionLocal
from exceptions import ConfigurationError
from init_db import init_database
from services.job_scheduler import build_job_scheduler
from utils.logging_utils import configure_logging

logger = logging.getLogger(__name__)


async def run_worker() -> int:
    """
    Run the scheduler until a shutdown signal arrives.

    Returns:
        Process exit code
    """
    config = get_config()

    try:
        scheduler = build_job_scheduler(config, SessionLocal)
    except ConfigurationError as e:
        logger.error(f"❌ {e.message}")
        return 1

    init_database()

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_requested.set)

    logger.info("🚀 Worker started, polling for jobs...")
    await scheduler.start()

    try:
        await stop_requested.wait()
        logger.info("Shutdown signal received, stopping worker...")
    finally:
        requeued = await scheduler.stop()
        await scheduler.worker.close()
        logger.info(f"Worker stopped ({requeued} job(s) requeued)")

    return 0


def main():
    config = get_config()
    configure_logging(config.log_dir, 'worker', config.log_level)
    sys.exit(asyncio.run(run_worker()))


if __name__ == "__main__":
    main()
