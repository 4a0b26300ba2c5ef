"""
Error handling decorators and utilities for API endpoints.

Application exceptions raised by the services are converted to HTTPException
responses here, so endpoints only contain the happy path.
"""

from functools import wraps
from typing import Callable
from fastapi import HTTPException
import inspect
import logging

from constants import HTTPStatus
from exceptions import (
    ConfigurationError,
    ValidationError,
    DatabaseError,
    JobNotFoundError,
    JobConflictError,
    InvalidStatusTransitionError,
    StorageError,
    ApplicationError
)

logger = logging.getLogger(__name__)


def to_http_exception(operation_name: str, error: Exception) -> HTTPException:
    """
    Map an exception raised by a service to the HTTP response it deserves.

    Args:
        operation_name: Human-readable name of the operation (e.g., "Job creation")
        error: The exception to convert

    Returns:
        HTTPException carrying the status code and a client-facing detail
    """
    if isinstance(error, JobNotFoundError):
        logger.info(f"{operation_name} - {error.message}")
        return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Job not found")

    if isinstance(error, ValidationError):
        logger.warning(f"{operation_name} - Validation error: {error.message}")
        return HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=error.message)

    if isinstance(error, (JobConflictError, InvalidStatusTransitionError)):
        logger.warning(f"{operation_name} - Conflict: {error.message}")
        return HTTPException(status_code=HTTPStatus.CONFLICT, detail=error.message)

    if isinstance(error, ConfigurationError):
        logger.error(f"{operation_name} - Configuration error: {error.message}")
        return HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail=f"Service is not configured: {error.message}"
        )

    if isinstance(error, StorageError):
        logger.error(f"{operation_name} - Storage error: {error.message}", exc_info=True)
        return HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY,
            detail=f"Object store operation failed: {error.message}"
        )

    if isinstance(error, DatabaseError):
        logger.error(f"{operation_name} - Database error: {error.message}", exc_info=True)
        return HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail=f"Database operation failed: {error.message}"
        )

    if isinstance(error, ApplicationError):
        logger.error(f"{operation_name} - Application error: {error.message}", exc_info=True)
        return HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail=f"{operation_name} failed: {error.message}"
        )

    logger.error(f"{operation_name} - Unexpected error: {error}", exc_info=True)
    return HTTPException(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
        detail=f"{operation_name} failed. Please check server logs or contact support."
    )


def handle_api_errors(operation_name: str):
    """
    Decorator to handle common API errors consistently across endpoints.

    Args:
        operation_name: Human-readable name of the operation (e.g., "Job deletion")

    Returns:
        Decorated function that handles errors uniformly

    Example:
        @router.delete("/jobs/{job_id}")
        @handle_api_errors("Job deletion")
        async def delete_job(...):
            await service.delete_job(owner_id, job_id)
    """
    def decorator(func: Callable):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                # Re-raise HTTPException as-is to preserve status code and detail
                raise
            except Exception as e:
                raise to_http_exception(operation_name, e)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except HTTPException:
                raise
            except Exception as e:
                raise to_http_exception(operation_name, e)

        # Return appropriate wrapper based on whether the function is async
        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
