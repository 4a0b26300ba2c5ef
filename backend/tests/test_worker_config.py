from pathlib import Path

import pytest

from config.worker_config import WorkerConfig
from exceptions import ConfigurationError


def test_defaults(monkeypatch):
    for name in ('POLL_INTERVAL_SECONDS', 'MAX_CONCURRENT_JOBS', 'UPLOAD_MAX_RETRIES',
                 'UPLOAD_RETRY_DELAY_MS', 'STORAGE_BUCKET', 'TRANSCRIPTION_FUNCTION',
                 'JOB_TIMEOUT_SECONDS', 'MAX_JOB_ATTEMPTS', 'RUN_WORKER_IN_API'):
        monkeypatch.delenv(name, raising=False)

    config = WorkerConfig.from_env()

    assert config.poll_interval_seconds == 5.0
    assert config.max_concurrent_jobs == 1
    assert config.upload_max_retries == 3
    assert config.upload_retry_delay_ms == 1000
    assert config.storage_bucket == 'uploads'
    assert config.transcription_function == 'whisper-transcribe'
    assert config.job_timeout_seconds == 0
    assert config.max_job_attempts == 5
    assert config.run_worker_in_api is False


def test_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv('SUPABASE_URL', 'https://store.example.co/')
    monkeypatch.setenv('MAX_CONCURRENT_JOBS', '3')
    monkeypatch.setenv('STAGING_BASE_DIR', str(tmp_path))
    monkeypatch.setenv('RUN_WORKER_IN_API', 'true')

    config = WorkerConfig.from_env()

    assert config.supabase_url == 'https://store.example.co'
    assert config.max_concurrent_jobs == 3
    assert config.staging_base_dir == Path(tmp_path)
    assert config.run_worker_in_api is True


@pytest.mark.parametrize('name,value', [
    ('MAX_CONCURRENT_JOBS', '0'),
    ('MAX_CONCURRENT_JOBS', 'many'),
    ('POLL_INTERVAL_SECONDS', '-1'),
])
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        WorkerConfig.from_env()


def test_require_store_credentials(monkeypatch):
    monkeypatch.delenv('SUPABASE_URL', raising=False)
    monkeypatch.setenv('SUPABASE_SERVICE_ROLE_KEY', 'key')

    with pytest.raises(ConfigurationError) as exc_info:
        WorkerConfig.from_env().require_store_credentials()

    assert exc_info.value.details['missing_keys'] == ['SUPABASE_URL']
