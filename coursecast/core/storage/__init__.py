"""
Course video storage domain.

Models, errors and cancellation shared by every provider backend and the
storage service.
"""

from .cancellation import CancellationToken
from .errors import (
    AuthenticationError,
    ConfigurationError,
    ContentNotFoundError,
    DeleteError,
    DownloadError,
    FileTooLargeError,
    InvalidOperationError,
    MissingStoragePathError,
    NotConfiguredError,
    UnsupportedProviderError,
    UploadCancelledError,
    UploadError,
    UrlResolutionError,
    VideoStorageError,
)
from .models import (
    BYTES_PER_MB,
    ConnectionTestResult,
    ContentStorageRef,
    MigrationState,
    ProcessingStatus,
    ProgressCallback,
    StorageProvider,
    StorageRecord,
    StorageSettings,
    UploadProgress,
    UploadSession,
    VideoFile,
    build_object_path,
    extension_from_path,
    sanitize_filename,
)
from .settings_cache import SettingsCache

__all__ = [
    "BYTES_PER_MB",
    "AuthenticationError",
    "CancellationToken",
    "ConfigurationError",
    "ConnectionTestResult",
    "ContentNotFoundError",
    "ContentStorageRef",
    "DeleteError",
    "DownloadError",
    "FileTooLargeError",
    "InvalidOperationError",
    "MigrationState",
    "MissingStoragePathError",
    "NotConfiguredError",
    "ProcessingStatus",
    "ProgressCallback",
    "SettingsCache",
    "StorageProvider",
    "StorageRecord",
    "StorageSettings",
    "UnsupportedProviderError",
    "UploadCancelledError",
    "UploadError",
    "UploadProgress",
    "UrlResolutionError",
    "UploadSession",
    "VideoFile",
    "VideoStorageError",
    "build_object_path",
    "extension_from_path",
    "sanitize_filename",
]
