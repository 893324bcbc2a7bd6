"""
In-memory storage backend for local development.

Stands in for any provider so the API can be exercised without
credentials. Objects live in a dictionary and URLs point at a fake
host that `build_mock_transport` answers.
"""

import logging
from typing import Iterable, Optional

import httpx

from ...core.storage import (
    CancellationToken,
    ConnectionTestResult,
    DeleteError,
    ProgressCallback,
    StorageProvider,
    StorageSettings,
    UrlResolutionError,
    VideoFile,
)
from .base import report_progress

logger = logging.getLogger(__name__)

MOCK_BASE_URL = "http://mock-storage.local"


class InMemoryStorageBackend:
    """Keeps uploaded bytes in memory under one provider name."""

    def __init__(self, provider: StorageProvider) -> None:
        self.provider = provider
        self._objects: dict[str, bytes] = {}
        logger.info(
            "Initialized in-memory storage backend",
            extra={"provider": provider.value}
        )

    async def upload(
        self,
        file: VideoFile,
        path: str,
        settings: StorageSettings,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        self._objects[path] = file.data
        report_progress(on_progress, file.size, file.size)

        logger.debug(
            "Stored video in memory",
            extra={"provider": self.provider.value, "storage_path": path, "size_bytes": file.size}
        )
        return path

    async def get_url(self, path: str, settings: StorageSettings) -> str:
        if path not in self._objects:
            raise UrlResolutionError(f"Video not found: {path}")
        return f"{MOCK_BASE_URL}/{self.provider.value}/{path}"

    async def delete(self, path: str, settings: StorageSettings) -> None:
        if self._objects.pop(path, None) is None:
            raise DeleteError(f"Video not found: {path}")

    async def test_connection(self, settings: StorageSettings) -> ConnectionTestResult:
        return ConnectionTestResult(self.provider, True, "In-memory storage is always available")

    def contains(self, path: str) -> bool:
        return path in self._objects

    def read(self, path: str) -> bytes:
        return self._objects[path]


def build_mock_transport(backends: Iterable[InMemoryStorageBackend]) -> httpx.MockTransport:
    """
    httpx transport that serves GETs for URLs handed out by in-memory backends.

    Lets the download step of a migration run unchanged in mock mode.
    """
    by_provider = {backend.provider.value: backend for backend in backends}

    def handler(request: httpx.Request) -> httpx.Response:
        provider, _, path = request.url.path.lstrip("/").partition("/")
        backend = by_provider.get(provider)
        if request.method != "GET" or backend is None or not backend.contains(path):
            return httpx.Response(404, text="Not found")
        return httpx.Response(
            200,
            content=backend.read(path),
            headers={"Content-Type": "video/mp4"},
        )

    return httpx.MockTransport(handler)
