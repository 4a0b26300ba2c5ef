"""
FFmpeg Binary Helper

Resolves the ffmpeg executable used by the concat runner.

Lookup order:
1. FFMPEG_BINARY (from configuration)
2. ``ffmpeg`` on PATH
"""
import shutil
import logging
from pathlib import Path
from typing import Optional

from exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def get_ffmpeg_path(configured: Optional[str] = None) -> str:
    """
    Get path to the ffmpeg binary.

    Args:
        configured: Explicit binary path, typically WorkerConfig.ffmpeg_binary

    Returns:
        Absolute path to the binary

    Raises:
        ConfigurationError: If no usable binary is found
    """
    if configured:
        binary_path = Path(configured).expanduser()
        if not binary_path.is_file():
            raise ConfigurationError(f"FFMPEG_BINARY points to a missing file: {binary_path}")
        logger.debug(f"Using configured ffmpeg: {binary_path}")
        return str(binary_path)

    found = shutil.which('ffmpeg')
    if not found:
        raise ConfigurationError(
            "ffmpeg not found on PATH. Install ffmpeg or set FFMPEG_BINARY.",
            missing_keys=['FFMPEG_BINARY']
        )
    logger.debug(f"Using ffmpeg from PATH: {found}")
    return found


def build_concat_manifest(input_paths: list[Path]) -> str:
    """
    Build a concat demuxer file list.

    One ``file '<path>'`` line per input, in order. Backslashes become forward
    slashes and single quotes are escaped the way the demuxer expects.
    """
    lines = []
    for path in input_paths:
        normalized = str(path).replace('\\', '/').replace("'", "'\\''")
        lines.append(f"file '{normalized}'")
    return '\n'.join(lines) + '\n'
