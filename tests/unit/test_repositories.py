"""
Unit tests for the Snowflake repositories, run against the in-memory mock
connection.
"""

import pytest

from coursecast.core.storage import (
    ContentNotFoundError,
    MigrationState,
    ProcessingStatus,
    StorageProvider,
    StorageSettings,
    UnsupportedProviderError,
)
from coursecast.infrastructure.snowflake.client import MockSnowflakeConnection
from coursecast.infrastructure.snowflake.repositories import (
    ContentRepository,
    StorageSettingsRepository,
)


class TestStorageSettingsRepository:

    def test_missing_row_is_none(self):
        assert StorageSettingsRepository(MockSnowflakeConnection()).get() is None

    def test_save_then_get_round_trips(self, settings):
        conn = MockSnowflakeConnection()
        repo = StorageSettingsRepository(conn)

        repo.save(settings)

        assert repo.get() == settings
        assert conn.commits == 1

    def test_save_overwrites_single_row(self, settings):
        conn = MockSnowflakeConnection()
        repo = StorageSettingsRepository(conn)

        repo.save(settings)
        repo.save(settings.with_provider(StorageProvider.BUNNY))

        assert repo.get().active_provider is StorageProvider.BUNNY

    def test_blank_defaults_are_restored(self):
        """Empty bucket or host columns fall back to the model defaults."""
        conn = MockSnowflakeConnection()
        repo = StorageSettingsRepository(conn)
        repo.save(StorageSettings(
            active_provider=StorageProvider.BUNNY,
            bunny_storage_host="",
            supabase_bucket="",
        ))

        loaded = repo.get()

        assert loaded.bunny_storage_host == "storage.bunnycdn.com"
        assert loaded.supabase_bucket == "course-videos"


class TestContentRepository:

    def test_get_unknown_content_raises(self, mock_connection):
        with pytest.raises(ContentNotFoundError):
            ContentRepository(mock_connection).get("nope")

    def test_saved_reference_is_loaded(self, mock_connection, save_content):
        saved = save_content(size_bytes=42)

        loaded = ContentRepository(mock_connection).get(saved.content_id)

        assert loaded == saved
        assert loaded.processing_status is ProcessingStatus.READY

    def test_update_storage_repoints_row(self, mock_connection, save_content):
        save_content()
        repo = ContentRepository(mock_connection)

        repo.update_storage("lesson-1", StorageProvider.BUNNY, "courses/course-1/2_intro.mp4", 7)

        loaded = repo.get("lesson-1")
        assert loaded.provider is StorageProvider.BUNNY
        assert loaded.path == "courses/course-1/2_intro.mp4"
        assert loaded.size_bytes == 7

    def test_update_of_unknown_row_raises(self, mock_connection):
        with pytest.raises(ContentNotFoundError):
            ContentRepository(mock_connection).set_processing_status(
                "nope", ProcessingStatus.READY
            )

    def test_list_orphaned(self, mock_connection, save_content):
        save_content("lesson-1")
        save_content("lesson-2")
        repo = ContentRepository(mock_connection)
        repo.set_migration_state(
            "lesson-2",
            MigrationState.FAILED_ORPHAN,
            StorageProvider.SUPABASE,
            "courses/course-1/old.mp4",
        )

        orphans = repo.list_orphaned()

        assert [ref.content_id for ref in orphans] == ["lesson-2"]
        assert orphans[0].has_orphan

    def test_clearing_migration_state_drops_orphan(self, mock_connection, save_content):
        save_content()
        repo = ContentRepository(mock_connection)
        repo.set_migration_state(
            "lesson-1", MigrationState.FAILED_ORPHAN, StorageProvider.BUNNY, "old.mp4"
        )

        repo.set_migration_state("lesson-1", MigrationState.MIGRATED)

        loaded = repo.get("lesson-1")
        assert loaded.migration_state is MigrationState.MIGRATED
        assert loaded.orphan_provider is None
        assert loaded.orphan_path is None

    def test_begin_migration_claims_once(self, mock_connection, save_content):
        save_content()
        repo = ContentRepository(mock_connection)

        assert repo.begin_migration("lesson-1") is True
        assert repo.begin_migration("lesson-1") is False
        assert repo.get("lesson-1").migration_state is MigrationState.PENDING

    def test_begin_migration_after_finished_migration(self, mock_connection, save_content):
        save_content(migration_state=MigrationState.MIGRATED)
        repo = ContentRepository(mock_connection)

        assert repo.begin_migration("lesson-1") is True

    def test_begin_migration_on_missing_row(self, mock_connection):
        assert ContentRepository(mock_connection).begin_migration("missing") is False

    def test_missing_provider_column_reads_as_external(self, mock_connection):
        mock_connection._storage["course_content"]["link"] = {
            "content_id": "link",
            "course_id": "course-1",
            "content_url": "https://youtube.com/embed/xyz",
        }

        assert ContentRepository(mock_connection).get("link").is_external

    def test_unknown_provider_is_rejected(self, mock_connection):
        mock_connection._storage["course_content"]["odd"] = {
            "content_id": "odd",
            "course_id": "course-1",
            "storage_provider": "dropbox",
        }

        with pytest.raises(UnsupportedProviderError):
            ContentRepository(mock_connection).get("odd")
