"""
Domain models for course video storage.

These models describe where a video's bytes live and how an upload
progresses. They carry no knowledge of HTTP, SQL or any particular
provider SDK.
"""

import math
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional


BYTES_PER_MB = 1024 * 1024

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9.-]")


class StorageProvider(str, Enum):
    """Backends that can hold video bytes."""
    SUPABASE = "supabase"      # Direct object store
    CLOUDFLARE = "cloudflare"  # Worker-mediated R2
    BUNNY = "bunny"            # CDN storage zone
    EXTERNAL = "external"      # Raw external link, nothing stored

    @property
    def is_stored(self) -> bool:
        return self is not StorageProvider.EXTERNAL


class MigrationState(str, Enum):
    PENDING = "pending-migration"
    MIGRATED = "migrated"
    FAILED_ORPHAN = "migration-failed-orphan"


class ProcessingStatus(str, Enum):
    """Whether a stored video is ready to be played."""
    READY = "ready"
    PROCESSING = "processing"
    ERROR = "error"


@dataclass(frozen=True)
class StorageSettings:
    """
    Provider configuration record.

    One row in the database holds this. The active provider selects the
    backend for new uploads only; existing videos keep resolving through
    the provider recorded on their content row.
    """
    active_provider: StorageProvider
    supabase_bucket: str = "course-videos"
    cloudflare_account_id: Optional[str] = None
    cloudflare_access_key: Optional[str] = None
    cloudflare_secret_key: Optional[str] = None
    cloudflare_bucket: Optional[str] = None
    cloudflare_worker_url: Optional[str] = None
    cloudflare_public_url: Optional[str] = None
    bunny_api_key: Optional[str] = None
    bunny_storage_zone: Optional[str] = None
    bunny_storage_host: str = "storage.bunnycdn.com"
    bunny_cdn_url: Optional[str] = None
    bunny_token_key: Optional[str] = None
    signed_url_expiry_seconds: int = 3600
    max_file_size_mb: int = 500
    auto_compress: bool = False

    def __post_init__(self) -> None:
        if self.signed_url_expiry_seconds <= 0:
            raise ValueError("signed_url_expiry_seconds must be positive")
        if self.max_file_size_mb <= 0:
            raise ValueError("max_file_size_mb must be positive")

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * BYTES_PER_MB

    def with_provider(self, provider: StorageProvider) -> "StorageSettings":
        """Return a copy that uploads to a different provider."""
        return replace(self, active_provider=provider)


@dataclass(frozen=True)
class VideoFile:
    """An in-memory video ready to be pushed to a provider."""
    name: str
    data: bytes
    content_type: str = "video/mp4"

    @property
    def size(self) -> int:
        return len(self.data)

    def slice(self, start: int, end: int) -> bytes:
        return self.data[start:end]


@dataclass(frozen=True)
class UploadProgress:
    loaded: int
    total: int
    percentage: int

    @classmethod
    def of(cls, loaded: int, total: int) -> "UploadProgress":
        """Build a progress report, rounding half up like a browser would."""
        if total <= 0:
            return cls(loaded=loaded, total=total, percentage=100)
        percentage = math.floor(loaded * 100 / total + 0.5)
        return cls(loaded=loaded, total=total, percentage=min(percentage, 100))


ProgressCallback = Callable[[UploadProgress], None]


@dataclass(frozen=True)
class StorageRecord:
    """What an upload hands back for the caller to persist."""
    path: str
    provider: StorageProvider
    size_bytes: int


@dataclass
class UploadSession:
    """
    Server-side multipart session on the worker-mediated path.

    Created by the initiate call, advanced one chunk at a time and closed
    by the complete call. Never persisted.
    """
    upload_id: str
    object_key: str
    total_chunks: int
    chunk_index: int = 0
    uploaded_bytes: int = 0

    @property
    def is_complete(self) -> bool:
        return self.chunk_index >= self.total_chunks


@dataclass
class ContentStorageRef:
    """
    The storage-related columns of a course content row.

    `provider` and `path` together point at exactly one stored object,
    unless the provider is EXTERNAL, in which case `content_url` is the
    playable link and nothing is stored.
    """
    content_id: str
    course_id: str
    provider: StorageProvider
    path: Optional[str] = None
    content_url: Optional[str] = None
    size_bytes: Optional[int] = None
    migration_state: Optional[MigrationState] = None
    orphan_provider: Optional[StorageProvider] = None
    orphan_path: Optional[str] = None
    processing_status: ProcessingStatus = ProcessingStatus.READY

    @property
    def is_external(self) -> bool:
        return self.provider is StorageProvider.EXTERNAL

    @property
    def has_orphan(self) -> bool:
        return (
            self.migration_state is MigrationState.FAILED_ORPHAN
            and self.orphan_provider is not None
            and bool(self.orphan_path)
        )


@dataclass(frozen=True)
class ConnectionTestResult:
    provider: StorageProvider
    ok: bool
    message: str
    details: dict = field(default_factory=dict)


def sanitize_filename(name: str) -> str:
    """Replace every character outside [A-Za-z0-9.-] with an underscore."""
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def build_object_path(course_id: str, filename: str, timestamp_ms: int) -> str:
    """courses/{course_id}/{timestamp_ms}_{sanitized filename}"""
    return f"courses/{course_id}/{timestamp_ms}_{sanitize_filename(filename)}"


def extension_from_path(path: Optional[str]) -> str:
    """File extension including the dot, defaulting to .mp4."""
    if path:
        match = re.search(r"\.[^./]+$", path)
        if match:
            return match.group(0)
    return ".mp4"
