"""
Logging Utilities

Root logger setup shared by the API and worker entry points, plus a job-scoped
adapter so every line emitted while a job runs carries its id.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, MutableMapping, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# 10MB per file, keep 5 backups
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def configure_logging(log_dir: Optional[Path], name: str, level: str = 'INFO') -> Optional[Path]:
    """
    Configure the root logger with a rotating file handler and a console handler.

    Safe to call more than once; handlers installed by a previous call are
    replaced rather than duplicated.

    Args:
        log_dir: Directory for the log file, or None for console-only logging
        name: Log file stem (e.g. "worker" -> worker.log)
        level: Log level name

    Returns:
        Path to the log file, or None when file logging is disabled
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    log_formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        if getattr(handler, '_clip_pipeline', False):
            root_logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_formatter)
    console_handler.setLevel(log_level)
    console_handler._clip_pipeline = True
    root_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"{name}.log"

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setFormatter(log_formatter)
        file_handler.setLevel(log_level)
        file_handler._clip_pipeline = True
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)

    return log_file


class JobLogAdapter(logging.LoggerAdapter):
    """
    Prefixes messages with the job id and attaches it as ``job_id`` on the record.

    Usage:
        log = JobLogAdapter(logger, job.id)
        log.info("Downloading 2 file(s)...")   # -> "[<job id>] Downloading 2 file(s)..."
    """

    def __init__(self, logger: logging.Logger, job_id: str):
        super().__init__(logger, {'job_id': job_id})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]):
        extra = dict(kwargs.get('extra') or {})
        extra.setdefault('job_id', self.extra['job_id'])
        kwargs['extra'] = extra
        return f"[{self.extra['job_id']}] {msg}", kwargs
