"""
Dependency injection providers for FastAPI.

Factory functions for the services used by the jobs API. Tests swap these out
with ``app.dependency_overrides``.
"""

from typing import AsyncIterator, Optional
from sqlalchemy.orm import Session
from fastapi import Depends, Header, HTTPException
import logging

from config.worker_config import get_config
from constants import HTTPStatus
from database import get_db
from services.job_service import JobService
from services.storage_service import StorageService

logger = logging.getLogger(__name__)


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    Resolve the calling owner.

    Authentication happens upstream; the identity provider forwards the
    verified user id in the ``X-User-Id`` header.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()


async def get_storage_service() -> AsyncIterator[Optional[StorageService]]:
    """
    Object store gateway for the request, or None when the store is not
    configured (output objects are then left behind on delete).
    """
    config = get_config()
    if not config.supabase_url or not config.supabase_service_key:
        yield None
        return

    storage = StorageService(
        config.supabase_url,
        config.supabase_service_key,
        config.storage_bucket,
        timeout=config.http_timeout_seconds
    )
    try:
        yield storage
    finally:
        await storage.close()


def get_job_service(
    db: Session = Depends(get_db),
    storage: Optional[StorageService] = Depends(get_storage_service)
) -> JobService:
    """
    Factory function for creating JobService instances.

    Args:
        db: Database session (injected)
        storage: Object store gateway (injected)
    """
    return JobService(db, storage)
