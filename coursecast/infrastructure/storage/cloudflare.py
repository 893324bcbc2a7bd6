"""
Worker-mediated Cloudflare R2 backend.

Uploads go through a Cloudflare Worker in three phases:

    POST /upload    -> {uploadId, objectKey}
    PUT  /chunk     (X-Upload-ID, X-Chunk-Index, X-Total-Chunks), repeated
    POST /complete  -> {objectKey}

The key returned by /complete is authoritative; the worker may rename
the object. Playback URLs come from the bucket's public URL when one is
configured, otherwise from the worker, otherwise from an S3 SigV4
presigned URL when R2 API credentials are available.
"""

import asyncio
import logging
import math
from typing import Any, Optional

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
    UploadSession,
    UrlResolutionError,
    VideoFile,
)
from .base import report_progress, response_text

logger = logging.getLogger(__name__)

CHUNK_SIZE_BYTES = 50 * 1024 * 1024


def _course_id_from_path(path: str) -> str:
    """Pull the course id out of courses/{course_id}/{file}."""
    parts = path.split("/")
    if len(parts) >= 3 and parts[0] == "courses":
        return parts[1]
    return ""


class CloudflareWorkerBackend:
    """Chunked uploads through an R2 worker, plus URL and delete calls."""

    provider = StorageProvider.CLOUDFLARE

    def __init__(
        self,
        client: httpx.AsyncClient,
        chunk_size: int = CHUNK_SIZE_BYTES,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._client = client
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
        worker_url = self._require_worker_url(settings)

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        session = await self._initiate(worker_url, file, path)

        while not session.is_complete:
            if cancel_token is not None and cancel_token.cancelled:
                await self.cancel_upload(session.upload_id, settings)
                cancel_token.raise_if_cancelled()
            await self._send_chunk(worker_url, file, session)
            report_progress(on_progress, session.uploaded_bytes, file.size)

        object_key = await self._complete(worker_url, session)

        logger.info(
            "Uploaded video through R2 worker",
            extra={
                "upload_id": session.upload_id,
                "object_key": object_key,
                "total_chunks": session.total_chunks,
                "size_bytes": file.size,
            }
        )
        return object_key

    async def _initiate(self, worker_url: str, file: VideoFile, path: str) -> UploadSession:
        payload = await self._post_json(
            f"{worker_url}/upload",
            {
                "fileName": file.name,
                "courseId": _course_id_from_path(path),
                "contentType": file.content_type or "video/mp4",
                "path": path,
            },
            phase="initiate",
        )

        upload_id = payload.get("uploadId")
        if not upload_id:
            raise UploadError("Upload initiate failed: worker returned no uploadId")

        return UploadSession(
            upload_id=upload_id,
            object_key=payload.get("objectKey") or path,
            total_chunks=max(1, math.ceil(file.size / self._chunk_size)),
        )

    async def _send_chunk(
        self,
        worker_url: str,
        file: VideoFile,
        session: UploadSession,
    ) -> None:
        start = session.chunk_index * self._chunk_size
        end = min(start + self._chunk_size, file.size)
        chunk = file.slice(start, end)

        headers = {
            "Content-Type": "application/octet-stream",
            "X-Upload-ID": session.upload_id,
            "X-Chunk-Index": str(session.chunk_index),
            "X-Total-Chunks": str(session.total_chunks),
        }

        try:
            response = await self._client.put(
                f"{worker_url}/chunk", headers=headers, content=chunk
            )
        except httpx.HTTPError as e:
            raise UploadError(
                f"Chunk {session.chunk_index + 1}/{session.total_chunks} upload failed: {e}"
            ) from e

        if not response.is_success:
            raise UploadError(
                f"Chunk {session.chunk_index + 1}/{session.total_chunks} upload failed",
                status_code=response.status_code,
                body=response_text(response),
            )

        session.chunk_index += 1
        session.uploaded_bytes += len(chunk)

    async def _complete(self, worker_url: str, session: UploadSession) -> str:
        payload = await self._post_json(
            f"{worker_url}/complete",
            {"uploadId": session.upload_id, "totalChunks": session.total_chunks},
            phase="complete",
        )
        return payload.get("objectKey") or session.object_key

    async def cancel_upload(self, upload_id: str, settings: StorageSettings) -> None:
        """Ask the worker to drop a partial session. Failures are only logged."""
        worker_url = self._require_worker_url(settings)
        try:
            response = await self._client.delete(f"{worker_url}/cancel/{upload_id}")
            if not response.is_success:
                logger.warning(
                    "Worker refused upload cancellation",
                    extra={"upload_id": upload_id, "status": response.status_code}
                )
        except httpx.HTTPError as e:
            logger.warning(
                "Failed to cancel worker upload",
                extra={"upload_id": upload_id, "error": str(e)}
            )

    async def get_upload_status(
        self,
        upload_id: str,
        settings: StorageSettings,
    ) -> Optional[dict[str, Any]]:
        """Session metadata held by the worker, or None once it is gone."""
        worker_url = self._require_worker_url(settings)
        try:
            response = await self._client.get(f"{worker_url}/status/{upload_id}")
        except httpx.HTTPError as e:
            raise UploadError(f"Upload status request failed: {e}") from e

        if response.status_code == 404:
            return None
        if not response.is_success:
            raise UploadError(
                "Upload status request failed",
                status_code=response.status_code,
                body=response_text(response),
            )
        return response.json()

    # ------------------------------------------------------------------
    # URLs and deletion
    # ------------------------------------------------------------------

    async def get_url(self, path: str, settings: StorageSettings) -> str:
        if settings.cloudflare_public_url:
            return f"{settings.cloudflare_public_url.rstrip('/')}/{path}"

        if settings.cloudflare_worker_url:
            worker_url = settings.cloudflare_worker_url.rstrip("/")
            try:
                response = await self._client.post(
                    f"{worker_url}/get-url",
                    json={
                        "objectKey": path,
                        "expiresIn": settings.signed_url_expiry_seconds,
                    },
                )
            except httpx.HTTPError as e:
                raise UrlResolutionError(f"Worker URL request failed: {e}") from e

            if not response.is_success:
                raise UrlResolutionError(
                    "Worker URL request failed",
                    status_code=response.status_code,
                    body=response_text(response),
                )
            url = response.json().get("url")
            if not url:
                raise UrlResolutionError("Worker returned no URL")
            return url

        if self._has_r2_credentials(settings):
            return self._presign_get(path, settings)

        raise NotConfiguredError(
            self.provider.value,
            "Set a public bucket URL, a worker URL or R2 API credentials",
        )

    async def delete(self, path: str, settings: StorageSettings) -> None:
        if settings.cloudflare_worker_url:
            worker_url = settings.cloudflare_worker_url.rstrip("/")
            try:
                response = await self._client.post(
                    f"{worker_url}/delete", json={"objectKey": path}
                )
            except httpx.HTTPError as e:
                raise DeleteError(f"Failed to delete from Cloudflare R2: {e}") from e

            if not response.is_success:
                raise DeleteError(
                    "Failed to delete from Cloudflare R2",
                    status_code=response.status_code,
                    body=response_text(response),
                )
        elif self._has_r2_credentials(settings):
            await self._delete_with_credentials(path, settings)
        else:
            raise NotConfiguredError(
                self.provider.value,
                "Set a worker URL or R2 API credentials",
            )

        logger.info("Deleted video from R2", extra={"object_key": path})

    async def test_connection(self, settings: StorageSettings) -> ConnectionTestResult:
        """Send a CORS preflight to the worker's upload route."""
        worker_url = self._require_worker_url(settings)
        try:
            response = await self._client.options(f"{worker_url}/upload")
        except httpx.HTTPError as e:
            return ConnectionTestResult(self.provider, False, f"Worker unreachable: {e}")

        if response.status_code < 400:
            return ConnectionTestResult(self.provider, True, "Worker is reachable")
        return ConnectionTestResult(
            self.provider,
            False,
            f"Worker responded with {response.status_code}",
            details={"status_code": response.status_code},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_worker_url(self, settings: StorageSettings) -> str:
        if not settings.cloudflare_worker_url:
            raise NotConfiguredError(
                self.provider.value,
                "Cloudflare R2 worker URL is not configured",
            )
        return settings.cloudflare_worker_url.rstrip("/")

    async def _post_json(self, url: str, body: dict, phase: str) -> dict[str, Any]:
        try:
            response = await self._client.post(url, json=body)
        except httpx.HTTPError as e:
            raise UploadError(f"Upload {phase} failed: {e}") from e

        if not response.is_success:
            raise UploadError(
                f"Upload {phase} failed",
                status_code=response.status_code,
                body=response_text(response),
            )
        return response.json()

    @staticmethod
    def _has_r2_credentials(settings: StorageSettings) -> bool:
        return bool(
            settings.cloudflare_account_id
            and settings.cloudflare_access_key
            and settings.cloudflare_secret_key
            and settings.cloudflare_bucket
        )

    @staticmethod
    def _s3_client(settings: StorageSettings):
        """
        boto3 S3 client pointed at the account's R2 endpoint.

        R2 wants SigV4 and path-style addressing with region 'auto'.
        """
        try:
            import boto3
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 is required for R2 presigned URLs. Install with: pip install boto3"
            )

        return boto3.client(
            "s3",
            endpoint_url=f"https://{settings.cloudflare_account_id}.r2.cloudflarestorage.com",
            aws_access_key_id=settings.cloudflare_access_key,
            aws_secret_access_key=settings.cloudflare_secret_key,
            region_name="auto",
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    def _presign_get(self, path: str, settings: StorageSettings) -> str:
        try:
            return self._s3_client(settings).generate_presigned_url(
                "get_object",
                Params={"Bucket": settings.cloudflare_bucket, "Key": path},
                ExpiresIn=settings.signed_url_expiry_seconds,
            )
        except Exception as e:
            logger.error(
                "Failed to generate R2 presigned URL",
                extra={"object_key": path, "error": str(e)}
            )
            raise UrlResolutionError(f"Presigned URL generation failed: {e}") from e

    async def _delete_with_credentials(self, path: str, settings: StorageSettings) -> None:
        client = self._s3_client(settings)
        try:
            await asyncio.to_thread(
                client.delete_object, Bucket=settings.cloudflare_bucket, Key=path
            )
        except Exception as e:
            raise DeleteError(f"Failed to delete from Cloudflare R2: {e}") from e
