"""
Capabilities every video storage backend provides.

A backend is one provider's wire protocol for pushing bytes, handing out
a playable URL and removing an object. The storage service picks a
backend from the registry by provider and never branches on provider
names itself.
"""

import logging
from typing import Optional, Protocol

import httpx

from ...core.storage import (
    CancellationToken,
    ConnectionTestResult,
    ProgressCallback,
    StorageProvider,
    StorageSettings,
    UploadProgress,
    VideoFile,
)

logger = logging.getLogger(__name__)


class Uploader(Protocol):

    async def upload(
        self,
        file: VideoFile,
        path: str,
        settings: StorageSettings,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Push the file and return the final object path."""
        ...


class UrlResolver(Protocol):

    async def get_url(self, path: str, settings: StorageSettings) -> str:
        """Return a time-bounded playable URL for a stored object."""
        ...


class Deleter(Protocol):

    async def delete(self, path: str, settings: StorageSettings) -> None:
        """Remove an object from the provider."""
        ...


class StorageBackend(Uploader, UrlResolver, Deleter, Protocol):
    """Full capability set of one provider."""

    provider: StorageProvider

    async def test_connection(self, settings: StorageSettings) -> ConnectionTestResult:
        """Check credentials without touching real content."""
        ...


def report_progress(
    on_progress: Optional[ProgressCallback],
    loaded: int,
    total: int,
) -> None:
    if on_progress is None:
        return
    on_progress(UploadProgress.of(loaded, total))


def response_text(response: httpx.Response) -> str:
    """Body of an error response, or the reason phrase when empty."""
    return response.text or response.reason_phrase
