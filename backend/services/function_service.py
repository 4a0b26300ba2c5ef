"""Remote transcription function client."""
from __future__ import annotations

from typing import Any
import logging

import httpx

from constants import StorageDefaults
from exceptions import TranscriptionError

logger = logging.getLogger(__name__)


class TranscriptionService:
    """
    Invokes the hosted transcription function for a store path.

    The function receives ``{"storagePath": ...}`` and answers
    ``{"transcription": "..."}``. Calls are never retried.
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        function_name: str = StorageDefaults.TRANSCRIPTION_FUNCTION,
        *,
        timeout: float = 300.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")

        self.function_name = function_name
        self._url = f"{base_url.rstrip('/')}/functions/v1/{function_name}"
        self._headers = {
            'Authorization': f"Bearer {service_key}",
            'apikey': service_key,
        }
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    def _invalid_response(self) -> TranscriptionError:
        return TranscriptionError(
            f"Invalid or missing transcription data from transcription function '{self.function_name}'.",
            self.function_name,
        )

    async def transcribe(self, storage_path: str) -> str:
        """
        Transcribe the object at ``storage_path``.

        Returns:
            The transcription text

        Raises:
            TranscriptionError: On transport errors, non-success responses or a
                response without a string ``transcription`` field
        """
        logger.info(f"Invoking transcription function '{self.function_name}' for path: {storage_path}")

        try:
            response = await self._client.post(
                self._url, json={'storagePath': storage_path}, headers=self._headers
            )
        except httpx.HTTPError as e:
            raise TranscriptionError(
                f"Transcription function '{self.function_name}' failed: {e}", self.function_name
            ) from e

        if response.is_error:
            detail = response.text.strip() or response.reason_phrase
            raise TranscriptionError(
                f"Transcription function '{self.function_name}' failed: "
                f"HTTP {response.status_code}: {detail}",
                self.function_name,
            )

        try:
            data: Any = response.json()
        except ValueError:
            logger.error(f"Non-JSON response from {self.function_name}: {response.text[:200]!r}")
            raise self._invalid_response()

        if not isinstance(data, dict) or not isinstance(data.get('transcription'), str):
            logger.error(f"Unexpected response from {self.function_name}: {data!r}")
            raise self._invalid_response()

        logger.info("Transcription received successfully from function.")
        return data['transcription']

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["TranscriptionService"]
