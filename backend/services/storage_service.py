"""
Object store gateway

Talks to the bucket through the store's HTTP object API:

- GET    {url}/storage/v1/object/{bucket}/{path}   download
- POST   {url}/storage/v1/object/{bucket}/{path}   upload (x-upsert: true overwrites)
- DELETE {url}/storage/v1/object/{bucket}          remove (body: {"prefixes": [...]})

Uploads carry the only retry policy in the system: the store intermittently
resets connections on larger payloads, so connection-reset failures are retried
a bounded number of times with a fixed delay. Everything else fails fast.
"""
from __future__ import annotations

import asyncio
import mimetypes
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional
from urllib.parse import quote
import logging

import httpx

from constants import StorageDefaults
from exceptions import DownloadError, StorageError, UploadError
from services.staging_service import StagingService

logger = logging.getLogger(__name__)


def is_retryable_error(error: BaseException) -> bool:
    """
    Check whether a failure looks like a transient connection reset.

    Walks the exception chain (``__cause__`` / ``__context__``) looking for a
    ConnectionResetError or a message matching a known reset signature.
    """
    seen: set[int] = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ConnectionResetError):
            return True
        text = str(current).lower()
        if any(signature in text for signature in StorageDefaults.RETRYABLE_ERROR_SIGNATURES):
            return True
        current = current.__cause__ or current.__context__
    return False


def _error_message(response: httpx.Response) -> str:
    """Extract the store's error message from a failed response"""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get('message') or payload.get('error')
        if message:
            return f"{message} (HTTP {response.status_code})"
    text = response.text.strip()
    return f"{text or response.reason_phrase} (HTTP {response.status_code})"


class StorageService:
    """Downloads, uploads and removes objects in a single bucket"""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str = StorageDefaults.BUCKET,
        *,
        timeout: float = 300.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")

        self.bucket = bucket
        self._object_root = f"{base_url.rstrip('/')}/storage/v1/object"
        self._headers = {
            'Authorization': f"Bearer {service_key}",
            'apikey': service_key,
        }
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _object_url(self, storage_path: str) -> str:
        return f"{self._object_root}/{self.bucket}/{quote(storage_path.lstrip('/'), safe='/')}"

    @staticmethod
    def _content_type(local_path: Path) -> str:
        guessed, _ = mimetypes.guess_type(local_path.name)
        return guessed or StorageDefaults.DEFAULT_CONTENT_TYPE

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def download(self, storage_path: str, destination_dir: Path) -> Path:
        """
        Download an object into a local directory.

        The local file is named after the basename of the store path.

        Args:
            storage_path: Path of the object in the bucket
            destination_dir: Existing local directory

        Returns:
            Path of the written local file

        Raises:
            DownloadError: If the store reports an error or returns no data
        """
        local_path = Path(destination_dir) / PurePosixPath(storage_path).name
        logger.info(f"Downloading {storage_path} from bucket '{self.bucket}' to {local_path}...")

        try:
            response = await self._client.get(self._object_url(storage_path), headers=self._headers)
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to download {storage_path}: {e}", storage_path) from e

        if response.is_error:
            raise DownloadError(
                f"Failed to download {storage_path}: {_error_message(response)}", storage_path
            )
        if not response.content:
            raise DownloadError(f"No data received for {storage_path}", storage_path)

        await StagingService.write_file(local_path, response.content)
        logger.info(f"Successfully downloaded to {local_path} ({len(response.content)} bytes)")
        return local_path

    async def upload(
        self,
        local_path: Path,
        storage_path: str,
        max_retries: int = StorageDefaults.UPLOAD_MAX_RETRIES,
        retry_delay_ms: int = StorageDefaults.UPLOAD_RETRY_DELAY_MS,
    ) -> str:
        """
        Upload a local file, overwriting any existing object at the path.

        Connection-reset failures are retried up to ``max_retries`` total
        attempts with a fixed ``retry_delay_ms`` between them.

        Returns:
            The store path written

        Raises:
            UploadError: If the local file cannot be read (attempts=0), on a
                non-retryable failure, or when retries run out
        """
        local_path = Path(local_path)
        logger.info(f"Uploading {local_path} to {storage_path} in bucket '{self.bucket}'...")

        try:
            payload = await StagingService.read_file(local_path)
        except OSError as e:
            raise UploadError(
                f"Failed to upload {local_path} to {storage_path} after 0 attempts: {e}",
                storage_path,
                attempts=0,
                last_error=e,
            ) from e

        headers = {
            **self._headers,
            'Content-Type': self._content_type(local_path),
            'x-upsert': 'true',
        }

        attempt = 0
        while True:
            attempt += 1
            try:
                logger.info(f"Upload attempt {attempt}/{max_retries}...")
                response = await self._client.post(
                    self._object_url(storage_path), content=payload, headers=headers
                )
                if response.is_error:
                    raise StorageError(_error_message(response), storage_path)

                logger.info(f"✅ Uploaded {storage_path} on attempt {attempt}")
                return storage_path

            except Exception as e:
                logger.error(f"Upload attempt {attempt} failed: {e}")
                if is_retryable_error(e) and attempt < max_retries:
                    logger.info(f"Retryable error detected. Retrying in {retry_delay_ms / 1000:g}s...")
                    await asyncio.sleep(retry_delay_ms / 1000)
                    continue

                raise UploadError(
                    f"Failed to upload {local_path} to {storage_path} after {attempt} attempts: {e}",
                    storage_path,
                    attempts=attempt,
                    last_error=e,
                ) from e

    async def remove(self, storage_paths: Iterable[str]) -> None:
        """
        Remove objects from the bucket.

        Raises:
            StorageError: If the store rejects the request or cannot be reached
        """
        prefixes = [p for p in storage_paths if p]
        if not prefixes:
            return

        logger.info(f"Removing {len(prefixes)} object(s) from bucket '{self.bucket}'")
        try:
            response = await self._client.request(
                'DELETE',
                f"{self._object_root}/{self.bucket}",
                json={'prefixes': prefixes},
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to remove objects: {e}") from e

        if response.is_error:
            raise StorageError(f"Failed to remove objects: {_error_message(response)}")

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["StorageService", "is_retryable_error"]
