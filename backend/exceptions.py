"""
Custom exception classes for the application.

This module defines domain-specific exceptions that provide better error handling
and clearer error messages throughout the application. The worker stores
``str(error)`` verbatim as a failed job's error detail, so messages are written
for the job owner to read.
"""


class ApplicationError(Exception):
    """Base exception for all application errors"""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ApplicationError):
    """Raised when there's a configuration issue"""

    def __init__(self, message: str, missing_keys: list[str] | None = None):
        details = {"missing_keys": missing_keys} if missing_keys else {}
        super().__init__(message, details)


class ValidationError(ApplicationError):
    """Raised when validation fails (terminal for a job, never retried)"""

    def __init__(self, message: str, invalid_fields: dict | None = None):
        details = {"invalid_fields": invalid_fields} if invalid_fields else {}
        super().__init__(message, details)


class DatabaseError(ApplicationError):
    """Raised when database operations fail"""

    def __init__(self, operation: str, message: str):
        details = {"operation": operation}
        super().__init__(message, details)


class JobNotFoundError(ApplicationError):
    """Raised when a job row no longer exists (or is not visible to the caller)"""

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found", {"job_id": job_id})


class InvalidStatusTransitionError(ApplicationError):
    """Raised when a status write would break the monotonic job lifecycle"""

    def __init__(self, job_id: str, current: str, requested: str):
        details = {"job_id": job_id, "current": current, "requested": requested}
        super().__init__(
            f"Job {job_id} cannot move from {current} to {requested}", details
        )


class JobConflictError(ApplicationError):
    """Raised when an operation is not allowed in the job's current state"""

    def __init__(self, job_id: str, message: str):
        super().__init__(message, {"job_id": job_id})


class StorageError(ApplicationError):
    """Raised when an object store operation fails"""

    def __init__(self, message: str, storage_path: str | None = None):
        details = {"storage_path": storage_path} if storage_path else {}
        super().__init__(message, details)


class DownloadError(StorageError):
    """Raised when a store object cannot be fetched"""


class UploadError(StorageError):
    """Raised when a store write fails permanently or exhausts its retries"""

    def __init__(self, message: str, storage_path: str, attempts: int, last_error: Exception | None = None):
        super().__init__(message, storage_path)
        self.attempts = attempts
        self.last_error = last_error
        self.details["attempts"] = attempts


class MediaProcessingError(ApplicationError):
    """Raised when the external media tool fails"""

    def __init__(self, message: str, returncode: int | None = None):
        details = {"returncode": returncode} if returncode is not None else {}
        super().__init__(message, details)


class TranscriptionError(ApplicationError):
    """Raised when the remote transcription function fails or answers badly"""

    def __init__(self, message: str, function_name: str):
        super().__init__(message, {"function_name": function_name})


class JobTimeoutError(ApplicationError):
    """Raised when a job exceeds its execution deadline"""

    def __init__(self, job_id: str, timeout_seconds: float):
        details = {"job_id": job_id, "timeout_seconds": timeout_seconds}
        super().__init__(
            f"Job exceeded its execution deadline of {timeout_seconds:g}s", details
        )
