import asyncio
import subprocess
from pathlib import Path
from typing import Optional
import logging

from constants import WorkerDefaults
from exceptions import ConfigurationError, MediaProcessingError
from services.staging_service import StagingService
from utils.ffmpeg_helper import get_ffmpeg_path, build_concat_manifest

logger = logging.getLogger(__name__)


class MediaConcatRunner:
    """
    Joins ordered clips into one file with ffmpeg's concat demuxer.

    Streams are copied (``-c copy``), never re-encoded, so inputs must share
    codecs. Failures are surfaced verbatim and never retried.
    """

    def __init__(self, ffmpeg_binary: Optional[str] = None):
        self._ffmpeg_binary = ffmpeg_binary

    def _resolve_binary(self) -> str:
        try:
            return get_ffmpeg_path(self._ffmpeg_binary)
        except ConfigurationError as e:
            raise MediaProcessingError(f"ffmpeg execution failed: {e.message}")

    async def concat(self, job_id: str, input_paths: list[Path], target_dir: Path) -> Path:
        """
        Concatenate ``input_paths`` into ``target_dir/output-{job_id}.mp4``.

        Args:
            job_id: Job UUID (names the output and tags log lines)
            input_paths: Local input files in playback order
            target_dir: Job staging directory

        Returns:
            Path to the concatenated output

        Raises:
            MediaProcessingError: If ffmpeg is missing, exits non-zero, or
                produces no output file
        """
        if not input_paths:
            raise MediaProcessingError("ffmpeg execution failed: no input files to concatenate")

        target_dir = Path(target_dir)
        output_path = target_dir / WorkerDefaults.concat_output_name(job_id)
        manifest_path = target_dir / WorkerDefaults.CONCAT_MANIFEST_NAME
        manifest = build_concat_manifest(input_paths)
        await StagingService.write_file(manifest_path, manifest.encode('utf-8'))

        cmd = [
            self._resolve_binary(),
            '-y',
            '-f', 'concat',
            '-safe', '0',
            '-i', str(manifest_path),
            '-c', 'copy',
            str(output_path),
        ]
        logger.info(f"[{job_id}] Starting ffmpeg stitching of {len(input_paths)} clip(s) -> {output_path}")
        logger.debug(f"[{job_id}] Running: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(target_dir)
            )
        except OSError as e:
            raise MediaProcessingError(f"ffmpeg execution failed: {e}")

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            # Shutdown or deadline: don't leave ffmpeg running
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        stderr_text = stderr.decode(errors='replace').strip()
        if process.returncode != 0:
            logger.error(f"[{job_id}] ffmpeg error: {stderr_text}")
            error = subprocess.CalledProcessError(process.returncode, cmd, output=stdout, stderr=stderr_text)
            raise MediaProcessingError(
                f"ffmpeg execution failed: {stderr_text or error}",
                returncode=process.returncode
            )

        if not output_path.exists():
            raise MediaProcessingError(f"ffmpeg execution failed: no output produced at {output_path}")

        logger.info(f"[{job_id}] ffmpeg stitching process completed.")
        return output_path
