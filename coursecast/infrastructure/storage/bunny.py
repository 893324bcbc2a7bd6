"""
Bunny.net CDN storage zone backend.

Files are written with a single PUT authenticated by the zone password in
the AccessKey header. Playback goes through the zone's pull zone with a
token that is an HMAC over the path and expiry, so a token for one path
or expiry cannot be turned into a token for another.
"""

import base64
import hashlib
import hmac
import logging
import time
from typing import Callable, Optional
from urllib.parse import urlencode

import httpx

from ...core.storage import (
    AuthenticationError,
    CancellationToken,
    ConnectionTestResult,
    DeleteError,
    NotConfiguredError,
    ProgressCallback,
    StorageProvider,
    StorageSettings,
    UploadError,
    VideoFile,
)
from .base import report_progress, response_text

logger = logging.getLogger(__name__)


def _auth_hint(zone: str) -> str:
    return (
        "Please verify you're using the storage zone PASSWORD (not the Read Only "
        f"Password) from: Bunny Dashboard > Storage > {zone} > FTP & API Access > Password"
    )


def sign_token(secret: str, path: str, expires_at: int) -> str:
    """urlsafe base64 (unpadded) HMAC-SHA256 of '/{path}{expires_at}'."""
    message = f"/{path.lstrip('/')}{expires_at}".encode()
    digest = hmac.new(secret.encode(), message, hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


def verify_token(secret: str, path: str, expires_at: int, token: str, now: Optional[float] = None) -> bool:
    """Check a token the way the edge would: right signature and not expired."""
    current = time.time() if now is None else now
    if expires_at < current:
        return False
    return hmac.compare_digest(sign_token(secret, path, expires_at), token)


class BunnyStorageBackend:
    """Single-request uploads to a storage zone, token URLs from the CDN."""

    provider = StorageProvider.BUNNY

    def __init__(
        self,
        client: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._clock = clock

    async def upload(
        self,
        file: VideoFile,
        path: str,
        settings: StorageSettings,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        url, api_key = self._zone_url(settings, path)

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        try:
            response = await self._client.put(
                url,
                headers={
                    "AccessKey": api_key,
                    "Content-Type": "application/octet-stream",
                },
                content=file.data,
            )
        except httpx.HTTPError as e:
            raise UploadError(f"Bunny.net upload failed: {e}") from e

        self._raise_for_status(response, settings, UploadError, "Bunny.net upload failed")

        report_progress(on_progress, file.size, file.size)

        logger.info(
            "Uploaded video to Bunny storage zone",
            extra={
                "storage_zone": settings.bunny_storage_zone,
                "storage_path": path,
                "size_bytes": file.size,
            }
        )
        return path

    async def get_url(self, path: str, settings: StorageSettings) -> str:
        if not settings.bunny_cdn_url:
            raise NotConfiguredError(self.provider.value, "Bunny CDN URL not configured")

        secret = settings.bunny_token_key or settings.bunny_api_key
        if not secret:
            raise NotConfiguredError(
                self.provider.value,
                "A token authentication key or storage zone password is required",
            )

        expires_at = int(self._clock()) + settings.signed_url_expiry_seconds
        token = sign_token(secret, path, expires_at)
        query = urlencode({"token": token, "expires": expires_at})
        return f"{settings.bunny_cdn_url.rstrip('/')}/{path}?{query}"

    async def delete(self, path: str, settings: StorageSettings) -> None:
        url, api_key = self._zone_url(settings, path)

        try:
            response = await self._client.delete(url, headers={"AccessKey": api_key})
        except httpx.HTTPError as e:
            raise DeleteError(f"Failed to delete from Bunny.net: {e}") from e

        if response.status_code == 404:
            logger.info(
                "Object already absent from Bunny storage zone",
                extra={"storage_zone": settings.bunny_storage_zone, "storage_path": path}
            )
            return

        self._raise_for_status(response, settings, DeleteError, "Failed to delete from Bunny.net")

        logger.info(
            "Deleted video from Bunny storage zone",
            extra={"storage_zone": settings.bunny_storage_zone, "storage_path": path}
        )

    async def test_connection(self, settings: StorageSettings) -> ConnectionTestResult:
        """Write and remove a small text file in the zone."""
        test_path = f"test-connection-{int(self._clock() * 1000)}.txt"
        sample = VideoFile(
            name=test_path,
            data=b"Bunny.net connection test",
            content_type="text/plain",
        )

        try:
            await self.upload(sample, test_path, settings)
        except AuthenticationError as e:
            return ConnectionTestResult(
                self.provider,
                False,
                f"Authentication Failed (401): The Storage Zone Password is incorrect. {e.hint}",
                details={"status_code": 401},
            )
        except (NotConfiguredError, UploadError) as e:
            return ConnectionTestResult(self.provider, False, f"Test failed: {e}")

        try:
            await self.delete(test_path, settings)
        except (DeleteError, AuthenticationError) as e:
            logger.warning(
                "Could not remove connection test file",
                extra={"storage_path": test_path, "error": str(e)}
            )

        return ConnectionTestResult(
            self.provider,
            True,
            "Connection successful! Your Bunny.net credentials are correct.",
        )

    def _zone_url(self, settings: StorageSettings, path: str) -> tuple[str, str]:
        if not settings.bunny_api_key or not settings.bunny_storage_zone:
            raise NotConfiguredError(self.provider.value, "Bunny.net not configured")
        host = settings.bunny_storage_host.strip().rstrip("/")
        zone = settings.bunny_storage_zone.strip()
        return f"https://{host}/{zone}/{path}", settings.bunny_api_key.strip()

    def _raise_for_status(
        self,
        response: httpx.Response,
        settings: StorageSettings,
        error_cls: type,
        message: str,
    ) -> None:
        if response.is_success:
            return

        zone = settings.bunny_storage_zone or ""
        if response.status_code == 401:
            raise AuthenticationError(
                self.provider.value,
                f"{message}: authentication failed (401).",
                _auth_hint(zone),
            )
        if response.status_code == 404:
            raise NotConfiguredError(
                self.provider.value,
                f'Storage zone "{zone}" does not exist. '
                "Please check the Storage Zone Name in your Bunny.net dashboard.",
            )
        raise error_cls(
            message,
            status_code=response.status_code,
            body=response_text(response),
        )
