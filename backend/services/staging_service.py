"""
Staging service - per-job scratch directories

Each in-flight job owns exactly one directory, {base_dir}/{job_id}, for its
downloaded inputs, the concat manifest and the produced output. The directory
is removed when the job finishes, whatever the outcome.

Reads, writes and removal run in the default executor so whole video
payloads never block the event loop.
"""
import asyncio
import shutil
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


class StagingService:
    """Creates, reads, writes and removes job staging directories"""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def path_for(self, job_id: str) -> Path:
        """Get the staging directory path for a job (it may not exist yet)"""
        if not job_id or '/' in job_id or job_id in ('.', '..'):
            raise ValueError(f"Invalid job id for staging directory: {job_id!r}")
        return self.base_dir / job_id

    def create(self, job_id: str) -> Path:
        """
        Create the job's staging directory.

        Re-creating an existing directory is not an error.

        Returns:
            Path to the directory
        """
        staging_dir = self.path_for(job_id)
        staging_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"[{job_id}] Created staging directory: {staging_dir}")
        return staging_dir

    @staticmethod
    async def write_file(path: Path, data: bytes) -> Path:
        """Write bytes to a file inside a staging directory"""
        path = Path(path)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, path.write_bytes, data)
        return path

    @staticmethod
    async def read_file(path: Path) -> bytes:
        """Read a staged file fully into memory"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, Path(path).read_bytes)

    async def cleanup(self, job_id: str) -> None:
        """
        Recursively remove the job's staging directory.

        A missing directory is a no-op. Failures are logged and never raised,
        so cleanup cannot mask the outcome already recorded for the job.
        """
        try:
            staging_dir = self.path_for(job_id)
            if not staging_dir.exists():
                logger.debug(f"[{job_id}] Staging directory already removed: {staging_dir}")
                return
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, shutil.rmtree, staging_dir)
            logger.info(f"[{job_id}] 🗑️ Cleaned up staging directory: {staging_dir}")
        except Exception as e:
            logger.error(f"[{job_id}] Error cleaning up staging directory: {e}", exc_info=True)
