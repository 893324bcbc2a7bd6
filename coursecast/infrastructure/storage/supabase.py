"""
Direct object store backend (Supabase Storage REST API).

Small files go up in a single request. Files above the chunk threshold
are split into fixed-size byte ranges and sent one after another with
Content-Range headers, reporting progress after every chunk.
"""

import logging
import math
from typing import Optional

import httpx

from ...core.storage import (
    CancellationToken,
    ConnectionTestResult,
    DeleteError,
    NotConfiguredError,
    ProgressCallback,
    StorageProvider,
    StorageSettings,
    UploadError,
    UrlResolutionError,
    VideoFile,
)
from .base import report_progress, response_text

logger = logging.getLogger(__name__)

CHUNK_THRESHOLD_BYTES = 50 * 1024 * 1024
CHUNK_SIZE_BYTES = 6 * 1024 * 1024


class SupabaseStorageBackend:
    """
    Uploads, signs and deletes objects in a Supabase Storage bucket.

    The project URL and service key are process configuration; the bucket
    name comes from the storage settings record.
    """

    provider = StorageProvider.SUPABASE

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: Optional[str],
        service_key: Optional[str],
        chunk_threshold: int = CHUNK_THRESHOLD_BYTES,
        chunk_size: int = CHUNK_SIZE_BYTES,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._client = client
        self._base_url = base_url.rstrip("/") if base_url else None
        self._service_key = service_key
        self._chunk_threshold = chunk_threshold
        self._chunk_size = chunk_size

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload(
        self,
        file: VideoFile,
        path: str,
        settings: StorageSettings,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        if file.size > self._chunk_threshold:
            await self._upload_chunked(file, path, settings, on_progress, cancel_token)
        else:
            await self._upload_single(file, path, settings, on_progress, cancel_token)

        logger.info(
            "Uploaded video to Supabase",
            extra={
                "bucket": settings.supabase_bucket,
                "storage_path": path,
                "size_bytes": file.size,
            }
        )
        return path

    async def _upload_single(
        self,
        file: VideoFile,
        path: str,
        settings: StorageSettings,
        on_progress: Optional[ProgressCallback],
        cancel_token: Optional[CancellationToken],
    ) -> None:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        headers = {
            **self._auth_headers(),
            "Content-Type": file.content_type or "application/octet-stream",
            "Cache-Control": "max-age=3600",
            "x-upsert": "false",
        }
        url = self._object_url(settings.supabase_bucket, path)

        try:
            response = await self._client.put(url, headers=headers, content=file.data)
        except httpx.HTTPError as e:
            raise UploadError(f"Supabase upload failed: {e}") from e

        if not response.is_success:
            raise UploadError(
                "Supabase upload failed",
                status_code=response.status_code,
                body=response_text(response),
            )

        report_progress(on_progress, file.size, file.size)

    async def _upload_chunked(
        self,
        file: VideoFile,
        path: str,
        settings: StorageSettings,
        on_progress: Optional[ProgressCallback],
        cancel_token: Optional[CancellationToken],
    ) -> None:
        total_chunks = math.ceil(file.size / self._chunk_size)
        url = self._object_url(settings.supabase_bucket, path)
        uploaded_bytes = 0

        logger.info(
            "Starting chunked Supabase upload",
            extra={"storage_path": path, "total_chunks": total_chunks}
        )

        for chunk_index in range(total_chunks):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            start = chunk_index * self._chunk_size
            end = min(start + self._chunk_size, file.size)
            chunk = file.slice(start, end)

            headers = {
                **self._auth_headers(),
                "Content-Type": file.content_type or "application/octet-stream",
                "Content-Range": f"bytes {start}-{end - 1}/{file.size}",
                "x-upsert": "false",
            }
            method = "POST" if chunk_index == 0 else "PUT"

            try:
                response = await self._client.request(
                    method, url, headers=headers, content=chunk
                )
            except httpx.HTTPError as e:
                raise UploadError(
                    f"Chunk {chunk_index + 1}/{total_chunks} upload failed: {e}"
                ) from e

            if not response.is_success:
                raise UploadError(
                    f"Chunk {chunk_index + 1}/{total_chunks} upload failed",
                    status_code=response.status_code,
                    body=response_text(response),
                )

            uploaded_bytes += len(chunk)
            report_progress(on_progress, uploaded_bytes, file.size)

    # ------------------------------------------------------------------
    # URLs and deletion
    # ------------------------------------------------------------------

    async def get_url(self, path: str, settings: StorageSettings) -> str:
        """Ask Supabase for a signed URL that expires per the settings."""
        base_url = self._require_base_url()
        url = f"{base_url}/storage/v1/object/sign/{settings.supabase_bucket}/{path}"

        try:
            response = await self._client.post(
                url,
                headers=self._auth_headers(),
                json={"expiresIn": settings.signed_url_expiry_seconds},
            )
        except httpx.HTTPError as e:
            raise UrlResolutionError(f"Supabase signed URL request failed: {e}") from e

        if not response.is_success:
            raise UrlResolutionError(
                "Supabase signed URL request failed",
                status_code=response.status_code,
                body=response_text(response),
            )

        payload = response.json()
        signed = payload.get("signedURL") or payload.get("signedUrl")
        if not signed:
            raise UrlResolutionError("Supabase returned no signed URL")

        if signed.startswith("http"):
            return signed
        return f"{base_url}/storage/v1{signed}"

    async def delete(self, path: str, settings: StorageSettings) -> None:
        base_url = self._require_base_url()
        url = f"{base_url}/storage/v1/object/{settings.supabase_bucket}"

        try:
            response = await self._client.request(
                "DELETE",
                url,
                headers=self._auth_headers(),
                json={"prefixes": [path]},
            )
        except httpx.HTTPError as e:
            raise DeleteError(f"Supabase delete failed: {e}") from e

        if not response.is_success:
            raise DeleteError(
                "Supabase delete failed",
                status_code=response.status_code,
                body=response_text(response),
            )

        logger.info(
            "Deleted video from Supabase",
            extra={"bucket": settings.supabase_bucket, "storage_path": path}
        )

    async def test_connection(self, settings: StorageSettings) -> ConnectionTestResult:
        """Read the bucket's metadata to confirm URL, key and bucket name."""
        base_url = self._require_base_url()
        url = f"{base_url}/storage/v1/bucket/{settings.supabase_bucket}"

        try:
            response = await self._client.get(url, headers=self._auth_headers())
        except httpx.HTTPError as e:
            return ConnectionTestResult(self.provider, False, f"Connection failed: {e}")

        if response.is_success:
            return ConnectionTestResult(
                self.provider,
                True,
                f"Bucket '{settings.supabase_bucket}' is reachable",
            )
        return ConnectionTestResult(
            self.provider,
            False,
            f"Test failed ({response.status_code}): {response_text(response)}",
            details={"status_code": response.status_code},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_base_url(self) -> str:
        if not self._base_url or not self._service_key:
            raise NotConfiguredError(
                self.provider.value,
                "Supabase URL and service key must be configured",
            )
        return self._base_url

    def _object_url(self, bucket: str, path: str) -> str:
        return f"{self._require_base_url()}/storage/v1/object/{bucket}/{path}"

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key or "",
        }
