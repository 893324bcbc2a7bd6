"""
Errors raised by the video storage subsystem.

Upload, URL and migration failures propagate to the caller. Delete
failures are caught by the storage service and only logged.
"""

from typing import Optional


class VideoStorageError(Exception):
    """Base class for all video storage failures."""
    pass


class ConfigurationError(VideoStorageError):
    """Storage settings are missing or incomplete."""
    pass


class FileTooLargeError(VideoStorageError):
    """Raised before any network call when a file exceeds the size limit."""

    def __init__(self, size_bytes: int, max_file_size_mb: int) -> None:
        self.size_bytes = size_bytes
        self.max_file_size_mb = max_file_size_mb
        super().__init__(
            f"File size exceeds maximum allowed size of {max_file_size_mb}MB"
        )


class UnsupportedProviderError(VideoStorageError):
    """No backend is registered for the requested provider."""

    def __init__(self, provider: object) -> None:
        self.provider = provider
        super().__init__(f"Invalid storage provider: {provider}")


class NotConfiguredError(VideoStorageError):
    """The provider is selected but a required endpoint or credential is missing."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class AuthenticationError(VideoStorageError):
    """A provider rejected our credentials (HTTP 401)."""

    def __init__(self, provider: str, message: str, hint: str) -> None:
        self.provider = provider
        self.hint = hint
        super().__init__(f"{message} {hint}")


class _ProviderResponseError(VideoStorageError):

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        if body:
            message = f"{message}: {body}"
        super().__init__(message)


class UploadError(_ProviderResponseError):
    """A provider refused or failed an upload."""
    pass


class DeleteError(_ProviderResponseError):
    """A provider failed to delete an object."""
    pass


class UrlResolutionError(_ProviderResponseError):
    """A provider could not produce a playable URL."""
    pass


class UploadCancelledError(VideoStorageError):
    """The caller cancelled an upload between chunks."""
    pass


class MissingStoragePathError(VideoStorageError):
    """A stored video has no object path recorded."""

    def __init__(self, content_id: str) -> None:
        self.content_id = content_id
        super().__init__(f"Video storage path not found for content {content_id}")


class InvalidOperationError(VideoStorageError):
    """The operation makes no sense for this content (e.g. migrating a link)."""
    pass


class DownloadError(_ProviderResponseError):
    """Fetching a stored video back from its provider failed."""
    pass


class ContentNotFoundError(VideoStorageError):

    def __init__(self, content_id: str) -> None:
        self.content_id = content_id
        super().__init__(f"Content {content_id} not found")
