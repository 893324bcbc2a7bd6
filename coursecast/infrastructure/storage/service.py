"""
Video storage service: the single entry point for course video storage.

Admin screens call `upload_video` and persist the returned record on the
content row. Learner screens call `get_signed_url` for that row. Deleting
a lesson calls `delete_video`, which never raises for backend failures so
the database row can always be removed.

Settings writes go through `save_settings`, which invalidates the
settings cache. Anything that writes the settings row another way must
call `clear_cache()` afterwards.
"""

import logging
import time
from typing import Any, Callable, Optional, Union

import httpx

from ...core.storage import (
    CancellationToken,
    ConfigurationError,
    ConnectionTestResult,
    ContentNotFoundError,
    ContentStorageRef,
    DownloadError,
    FileTooLargeError,
    InvalidOperationError,
    MigrationState,
    MissingStoragePathError,
    ProcessingStatus,
    ProgressCallback,
    SettingsCache,
    StorageProvider,
    StorageRecord,
    StorageSettings,
    VideoFile,
    build_object_path,
    extension_from_path,
)
from ...core.storage.settings_cache import DEFAULT_TTL_SECONDS
from ..snowflake.client import ConnectionProvider
from ..snowflake.repositories import ContentRepository, StorageSettingsRepository
from .base import response_text
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


class VideoStorageService:
    """
    Uploads, signs, deletes and migrates course videos across providers.

    Owns the settings cache and the shared HTTP client. One instance is
    meant to live for the whole process.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        connection_provider: ConnectionProvider,
        http_client: httpx.AsyncClient,
        settings_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        cache_clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._connect = connection_provider
        self._http = http_client
        self._clock = clock
        self._settings_cache = SettingsCache(
            self._load_settings,
            ttl_seconds=settings_ttl_seconds,
            clock=cache_clock,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> StorageSettings:
        return self._settings_cache.get()

    def clear_cache(self) -> None:
        """Force the next `get_settings()` to re-read the settings row."""
        self._settings_cache.invalidate()
        logger.debug("Cleared storage settings cache")

    def save_settings(self, settings: StorageSettings) -> None:
        """Write the settings row and invalidate the cache."""
        with self._connect() as conn:
            StorageSettingsRepository(conn).save(settings)
        self.clear_cache()

    def _load_settings(self) -> StorageSettings:
        try:
            with self._connect() as conn:
                settings = StorageSettingsRepository(conn).get()
        except ValueError as e:
            raise ConfigurationError(f"Invalid storage settings: {e}") from e

        if settings is None:
            logger.error("Storage settings row is missing")
            raise ConfigurationError("Failed to load storage settings: no settings found")
        return settings

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload_video(
        self,
        file: VideoFile,
        course_id: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> StorageRecord:
        """Upload to the active provider and return what to store on the content row."""
        settings = self.get_settings()
        return await self.upload_with_provider(
            file,
            course_id,
            settings.active_provider,
            settings,
            on_progress=on_progress,
            cancel_token=cancel_token,
        )

    async def upload_with_provider(
        self,
        file: VideoFile,
        course_id: str,
        provider: Union[StorageProvider, str],
        settings: StorageSettings,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> StorageRecord:
        """
        Upload to an explicit provider, leaving the cached settings alone.

        The size limit is checked before anything goes over the network.
        The returned path is whatever the backend reports as final, which
        can differ from the path requested here.
        """
        if file.size > settings.max_file_size_bytes:
            raise FileTooLargeError(file.size, settings.max_file_size_mb)

        backend = self._registry.get(provider)
        path = build_object_path(course_id, file.name, int(self._clock() * 1000))

        logger.info(
            "Uploading video",
            extra={
                "provider": backend.provider.value,
                "course_id": course_id,
                "storage_path": path,
                "size_bytes": file.size,
            }
        )

        final_path = await backend.upload(
            file,
            path,
            settings,
            on_progress=on_progress,
            cancel_token=cancel_token,
        )

        return StorageRecord(
            path=final_path,
            provider=backend.provider,
            size_bytes=file.size,
        )

    async def record_upload(self, content_id: str, course_id: str, record: StorageRecord) -> ContentStorageRef:
        """
        Point a content row at a freshly uploaded object.

        Replacing a lesson's video deletes the object it pointed at before,
        best effort. If that delete fails, the old object is recorded as an
        orphan for `reconcile_orphans`. A row that is mid-migration or still
        has an orphan is refused, and the new object is deleted again so it
        is not left untracked.
        """
        with self._connect() as conn:
            repo = ContentRepository(conn)
            try:
                existing = repo.get(content_id)
            except ContentNotFoundError:
                existing = None

            if existing is None:
                ref = ContentStorageRef(
                    content_id=content_id,
                    course_id=course_id,
                    provider=record.provider,
                    path=record.path,
                    size_bytes=record.size_bytes,
                )
                repo.save(ref)
                return ref

            if existing.has_orphan or existing.migration_state is MigrationState.PENDING:
                refusal = (
                    f"Content {content_id} is being migrated or still has an orphaned "
                    "copy; reconcile it before replacing the video"
                )
            else:
                refusal = None
                repo.update_storage(content_id, record.provider, record.path, record.size_bytes)

        if refusal is not None:
            await self.delete_object(record.provider, record.path)
            raise InvalidOperationError(refusal)

        replaced = (
            not existing.is_external
            and existing.path
            and (existing.provider, existing.path) != (record.provider, record.path)
        )
        if replaced and not await self.delete_object(existing.provider, existing.path):
            logger.warning(
                "Replaced video left behind",
                extra={
                    "content_id": content_id,
                    "orphan_provider": existing.provider.value,
                    "orphan_path": existing.path,
                }
            )
            self._set_migration_state(
                content_id,
                MigrationState.FAILED_ORPHAN,
                orphan_provider=existing.provider,
                orphan_path=existing.path,
            )

        return self._get_content(content_id)

    # ------------------------------------------------------------------
    # Playback URLs
    # ------------------------------------------------------------------

    async def get_signed_url(self, content_id: str) -> str:
        ref = self._get_content(content_id)

        if ref.is_external:
            if not ref.content_url:
                raise MissingStoragePathError(content_id)
            return ref.content_url

        if not ref.path:
            raise MissingStoragePathError(content_id)

        settings = self.get_settings()
        backend = self._registry.get(ref.provider)
        return await backend.get_url(ref.path, settings)

    def get_processing_status(self, content_id: str) -> ProcessingStatus:
        ref = self._get_content(content_id)
        if ref.is_external:
            return ProcessingStatus.READY
        return ref.processing_status

    def set_processing_status(self, content_id: str, status: ProcessingStatus) -> None:
        """Record the outcome reported by the processing pipeline."""
        with self._connect() as conn:
            ContentRepository(conn).set_processing_status(content_id, status)
        logger.info(
            "Processing status updated",
            extra={"content_id": content_id, "status": status.value}
        )

    async def get_upload_status(
        self,
        upload_id: str,
        provider: Union[StorageProvider, str] = StorageProvider.CLOUDFLARE,
    ) -> Optional[dict[str, Any]]:
        """
        Session metadata for a chunked upload the provider tracks itself.

        Only the worker-mediated backend keeps sessions; None means the
        session is gone (completed, cancelled or expired).
        """
        backend = self._registry.get(provider)
        status_of = getattr(backend, "get_upload_status", None)
        if status_of is None:
            raise InvalidOperationError(
                f"{backend.provider.value} does not track upload sessions"
            )
        return await status_of(upload_id, self.get_settings())

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_video(self, content_id: str) -> bool:
        """
        Remove a content row's stored object, best effort.

        Returns True when the backend confirmed the delete. External links
        and rows without a path are left alone and return False.
        """
        ref = self._get_content(content_id)

        if ref.is_external or not ref.path:
            logger.debug(
                "Nothing to delete from storage",
                extra={"content_id": content_id, "provider": ref.provider.value}
            )
            return False

        return await self.delete_object(ref.provider, ref.path)

    async def delete_object(self, provider: StorageProvider, path: str) -> bool:
        """Delete one object by provider and path; failures are logged, not raised."""
        try:
            settings = self.get_settings()
            backend = self._registry.get(provider)
            await backend.delete(path, settings)
            return True
        except Exception as e:
            logger.error(
                "Error deleting video from storage",
                extra={
                    "provider": getattr(provider, "value", provider),
                    "storage_path": path,
                    "error": str(e),
                },
                exc_info=e,
            )
            return False

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    async def migrate_video(
        self,
        content_id: str,
        target_provider: Union[StorageProvider, str],
    ) -> StorageRecord:
        """
        Copy a stored video to another provider and repoint its content row.

        The row moves through pending-migration to migrated. When the old
        copy cannot be deleted the row ends in migration-failed-orphan with
        the old provider and path recorded for `reconcile_orphans`.
        """
        ref = self._get_content(content_id)

        if ref.is_external:
            raise InvalidOperationError("Cannot migrate external videos")
        if not ref.path:
            raise MissingStoragePathError(content_id)
        if ref.migration_state is MigrationState.PENDING:
            raise InvalidOperationError(f"Content {content_id} is already being migrated")
        if ref.has_orphan:
            raise InvalidOperationError(
                f"Content {content_id} still has an orphaned copy; reconcile it first"
            )

        target = self._registry.get(target_provider).provider
        if target is ref.provider:
            raise InvalidOperationError(f"Video is already stored on {target.value}")

        settings = self.get_settings()

        logger.info(
            "Starting video migration",
            extra={
                "content_id": content_id,
                "from_provider": ref.provider.value,
                "to_provider": target.value,
            }
        )

        with self._connect() as conn:
            claimed = ContentRepository(conn).begin_migration(content_id)
        if not claimed:
            raise InvalidOperationError(f"Content {content_id} is already being migrated")

        record = None
        try:
            source = self._registry.get(ref.provider)
            url = await source.get_url(ref.path, settings)
            file = await self._download(url, f"video{extension_from_path(ref.path)}")
            record = await self.upload_with_provider(file, ref.course_id, target, settings)
            with self._connect() as conn:
                ContentRepository(conn).update_storage(
                    content_id, record.provider, record.path, record.size_bytes
                )
        except Exception:
            if record is not None:
                await self.delete_object(record.provider, record.path)
            self._set_migration_state(content_id, ref.migration_state)
            raise

        if await self.delete_object(ref.provider, ref.path):
            self._set_migration_state(content_id, MigrationState.MIGRATED)
        else:
            logger.warning(
                "Old copy left behind after migration",
                extra={
                    "content_id": content_id,
                    "orphan_provider": ref.provider.value,
                    "orphan_path": ref.path,
                }
            )
            self._set_migration_state(
                content_id,
                MigrationState.FAILED_ORPHAN,
                orphan_provider=ref.provider,
                orphan_path=ref.path,
            )

        self.clear_cache()

        logger.info(
            "Video migration finished",
            extra={"content_id": content_id, "provider": record.provider.value, "storage_path": record.path}
        )
        return record

    async def reconcile_orphans(self) -> int:
        """Retry deleting old copies left by migrations; returns how many were cleaned."""
        with self._connect() as conn:
            orphans = ContentRepository(conn).list_orphaned()

        reconciled = 0
        for ref in orphans:
            if not ref.has_orphan:
                continue
            if await self.delete_object(ref.orphan_provider, ref.orphan_path):
                self._set_migration_state(ref.content_id, MigrationState.MIGRATED)
                reconciled += 1

        logger.info(
            "Reconciled orphaned video copies",
            extra={"found": len(orphans), "reconciled": reconciled}
        )
        return reconciled

    def list_orphaned(self) -> list[ContentStorageRef]:
        with self._connect() as conn:
            return ContentRepository(conn).list_orphaned()

    # ------------------------------------------------------------------
    # Diagnostics and lifecycle
    # ------------------------------------------------------------------

    async def test_connection(
        self,
        provider: Optional[Union[StorageProvider, str]] = None,
    ) -> ConnectionTestResult:
        settings = self.get_settings()
        backend = self._registry.get(provider or settings.active_provider)
        return await backend.test_connection(settings)

    @property
    def providers(self) -> list[StorageProvider]:
        """Providers with a registered backend."""
        return self._registry.providers

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_content(self, content_id: str) -> ContentStorageRef:
        with self._connect() as conn:
            return ContentRepository(conn).get(content_id)

    def _set_migration_state(
        self,
        content_id: str,
        state: Optional[MigrationState],
        orphan_provider: Optional[StorageProvider] = None,
        orphan_path: Optional[str] = None,
    ) -> None:
        with self._connect() as conn:
            ContentRepository(conn).set_migration_state(
                content_id, state, orphan_provider, orphan_path
            )

    async def _download(self, url: str, name: str) -> VideoFile:
        try:
            response = await self._http.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to download video for migration: {e}") from e

        if not response.is_success:
            raise DownloadError(
                "Failed to download video for migration",
                status_code=response.status_code,
                body=response_text(response),
            )

        content_type = response.headers.get("content-type", "video/mp4").split(";")[0].strip()
        return VideoFile(name=name, data=response.content, content_type=content_type or "video/mp4")
