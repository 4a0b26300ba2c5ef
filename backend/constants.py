"""
Application-wide constants and configuration keys.

This module centralizes all magic strings and numbers used throughout the application
to improve maintainability and reduce duplication.
"""
from enum import Enum


class JobKind(str, Enum):
    """
    Closed set of work a job can request.

    Dispatch in the worker matches on these members exhaustively; any other
    value is rejected at the submission boundary.
    """

    STITCH = 'STITCH'          # Concatenate ordered clips into one video
    TRANSCRIBE = 'TRANSCRIBE'  # Produce caption text for the first clip

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


class JobStatus(str, Enum):
    """
    Job lifecycle states.

    QUEUED → PROCESSING → COMPLETED | FAILED
    The only backward move is the shutdown requeue (PROCESSING → QUEUED).
    """

    QUEUED = 'QUEUED'
    PROCESSING = 'PROCESSING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


class StorageDefaults:
    """Object store defaults"""

    BUCKET = 'uploads'
    TRANSCRIPTION_FUNCTION = 'whisper-transcribe'
    DEFAULT_CONTENT_TYPE = 'video/mp4'

    # Upload retry policy (the store resets connections on larger payloads)
    UPLOAD_MAX_RETRIES = 3
    UPLOAD_RETRY_DELAY_MS = 1000

    # Substrings identifying a transient connection reset
    RETRYABLE_ERROR_SIGNATURES = (
        'econnreset',
        'connection reset',
        'reset by peer',
    )

    @classmethod
    def output_path(cls, owner_id: str, basename: str) -> str:
        """Store path for a job's produced file"""
        return f"user-{owner_id}/outputs/{basename}"


class WorkerDefaults:
    """Scheduler and per-job execution defaults"""

    POLL_INTERVAL_SECONDS = 5.0
    MAX_CONCURRENT_JOBS = 1
    JOB_TIMEOUT_SECONDS = 0      # 0 disables the per-job deadline
    MAX_JOB_ATTEMPTS = 5         # 0 disables the attempt cap
    HTTP_TIMEOUT_SECONDS = 300.0

    CONCAT_MANIFEST_NAME = 'filelist.txt'

    @classmethod
    def concat_output_name(cls, job_id: str) -> str:
        return f"output-{job_id}.mp4"


class ServerConfig:
    """Server configuration constants"""

    HOST = "0.0.0.0"
    PORT = 3001

    @classmethod
    def url(cls) -> str:
        """Get the full server URL"""
        return f"http://{cls.HOST}:{cls.PORT}"


class HTTPStatus:
    """HTTP status codes used throughout the application"""

    # Success
    CREATED = 201
    NO_CONTENT = 204

    # Client Errors
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    CONFLICT = 409

    # Server Errors
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
