"""
Runtime Configuration

Reads the worker and API settings from environment variables once at startup.
Every value has a default except the object store credentials, which are only
required by the components that talk to the store.
"""
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from constants import StorageDefaults, WorkerDefaults
from exceptions import ConfigurationError

logger = logging.getLogger(__name__)

APP_HOME = Path.home() / ".clip-pipeline"


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return value.strip()


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('true', '1', 'yes')


@dataclass(frozen=True)
class WorkerConfig:
    """Immutable settings snapshot shared by the scheduler, worker and API"""

    database_url: str
    supabase_url: Optional[str]
    supabase_service_key: Optional[str]
    storage_bucket: str
    transcription_function: str
    staging_base_dir: Path
    poll_interval_seconds: float
    max_concurrent_jobs: int
    upload_max_retries: int
    upload_retry_delay_ms: int
    job_timeout_seconds: float
    max_job_attempts: int
    http_timeout_seconds: float
    ffmpeg_binary: Optional[str]
    log_dir: Path
    log_level: str
    run_worker_in_api: bool

    @classmethod
    def from_env(cls) -> 'WorkerConfig':
        """
        Build configuration from environment variables.

        Raises:
            ConfigurationError: If a numeric variable is malformed or out of range
        """
        return cls(
            database_url=_env_str('DATABASE_URL', f"sqlite:///{APP_HOME / 'pipeline.db'}"),
            supabase_url=(_env_str('SUPABASE_URL') or '').rstrip('/') or None,
            supabase_service_key=_env_str('SUPABASE_SERVICE_ROLE_KEY'),
            storage_bucket=_env_str('STORAGE_BUCKET', StorageDefaults.BUCKET),
            transcription_function=_env_str(
                'TRANSCRIPTION_FUNCTION', StorageDefaults.TRANSCRIPTION_FUNCTION
            ),
            staging_base_dir=Path(_env_str('STAGING_BASE_DIR', str(APP_HOME / 'staging'))),
            poll_interval_seconds=_env_float(
                'POLL_INTERVAL_SECONDS', WorkerDefaults.POLL_INTERVAL_SECONDS, minimum=0.01
            ),
            max_concurrent_jobs=_env_int(
                'MAX_CONCURRENT_JOBS', WorkerDefaults.MAX_CONCURRENT_JOBS, minimum=1
            ),
            upload_max_retries=_env_int(
                'UPLOAD_MAX_RETRIES', StorageDefaults.UPLOAD_MAX_RETRIES, minimum=1
            ),
            upload_retry_delay_ms=_env_int(
                'UPLOAD_RETRY_DELAY_MS', StorageDefaults.UPLOAD_RETRY_DELAY_MS
            ),
            job_timeout_seconds=_env_float(
                'JOB_TIMEOUT_SECONDS', WorkerDefaults.JOB_TIMEOUT_SECONDS
            ),
            max_job_attempts=_env_int('MAX_JOB_ATTEMPTS', WorkerDefaults.MAX_JOB_ATTEMPTS),
            http_timeout_seconds=_env_float(
                'HTTP_TIMEOUT_SECONDS', WorkerDefaults.HTTP_TIMEOUT_SECONDS, minimum=1.0
            ),
            ffmpeg_binary=_env_str('FFMPEG_BINARY'),
            log_dir=Path(_env_str('LOG_DIR', str(APP_HOME / 'logs'))),
            log_level=_env_str('LOG_LEVEL', 'INFO').upper(),
            run_worker_in_api=_env_bool('RUN_WORKER_IN_API', False),
        )

    def require_store_credentials(self) -> None:
        """
        Ensure the object store can be reached.

        Raises:
            ConfigurationError: If SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is missing
        """
        missing = []
        if not self.supabase_url:
            missing.append('SUPABASE_URL')
        if not self.supabase_service_key:
            missing.append('SUPABASE_SERVICE_ROLE_KEY')
        if missing:
            raise ConfigurationError(
                f"Object store credentials missing: {', '.join(missing)}",
                missing_keys=missing
            )


_config: Optional[WorkerConfig] = None


def get_config() -> WorkerConfig:
    """Return the process-wide configuration, loading it on first use"""
    global _config
    if _config is None:
        _config = WorkerConfig.from_env()
        logger.info(
            f"Configuration loaded (poll={_config.poll_interval_seconds}s, "
            f"max_concurrent={_config.max_concurrent_jobs}, bucket={_config.storage_bucket})"
        )
    return _config
