"""
Snowflake repository for the storage columns of course content rows.

Lesson titles, ordering and the rest of the content row belong to the
course management screens. This repository only reads and writes where a
video is stored, its migration state and its processing status.
"""

import logging
from typing import Optional

from ....core.storage import (
    ContentNotFoundError,
    ContentStorageRef,
    MigrationState,
    ProcessingStatus,
    StorageProvider,
    UnsupportedProviderError,
)
from .storage_settings import SnowflakeConnection

logger = logging.getLogger(__name__)

CONTENT_COLUMNS = (
    "content_id",
    "course_id",
    "storage_provider",
    "storage_path",
    "content_url",
    "file_size_bytes",
    "migration_state",
    "orphan_provider",
    "orphan_path",
    "processing_status",
)


class ContentRepository:
    """
    Storage reference persistence for course content.

    - get: Load the storage reference of one content row
    - save: Upsert a full storage reference
    - update_storage: Repoint a row at a new provider/path
    - begin_migration: Claim a row for one migration at a time
    - set_migration_state: Record migration progress or an orphaned copy
    - set_processing_status: Record the processing pipeline's result
    - list_orphaned: Rows whose old copy still needs deleting
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def get(self, content_id: str) -> ContentStorageRef:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(CONTENT_COLUMNS)}
                FROM course_content
                WHERE content_id = %(content_id)s
            """, {"content_id": content_id})

            row = cursor.fetchone()
            if not row:
                raise ContentNotFoundError(content_id)

            return self._row_to_ref(row)

        finally:
            cursor.close()

    def save(self, ref: ContentStorageRef) -> None:
        """Upsert every storage column of a content row."""
        params = self._ref_to_params(ref)
        value_columns = CONTENT_COLUMNS[1:]

        assignments = ", ".join(f"{col} = %({col})s" for col in value_columns)
        insert_columns = ", ".join(CONTENT_COLUMNS)
        insert_values = ", ".join(f"%({col})s" for col in CONTENT_COLUMNS)

        self._execute_write(f"""
            MERGE INTO course_content t
            USING (SELECT %(content_id)s AS content_id) s
            ON t.content_id = s.content_id
            WHEN MATCHED THEN UPDATE SET {assignments},
                updated_at = CURRENT_TIMESTAMP()
            WHEN NOT MATCHED THEN INSERT ({insert_columns})
                VALUES ({insert_values})
        """, params)

    def update_storage(
        self,
        content_id: str,
        provider: StorageProvider,
        path: str,
        size_bytes: Optional[int] = None,
    ) -> None:
        """Point a content row at a new stored object."""
        self._update(content_id, {
            "storage_provider": provider.value,
            "storage_path": path,
            "file_size_bytes": size_bytes,
        })

    def set_migration_state(
        self,
        content_id: str,
        state: Optional[MigrationState],
        orphan_provider: Optional[StorageProvider] = None,
        orphan_path: Optional[str] = None,
    ) -> None:
        self._update(content_id, {
            "migration_state": state.value if state else None,
            "orphan_provider": orphan_provider.value if orphan_provider else None,
            "orphan_path": orphan_path,
        })

    def begin_migration(self, content_id: str) -> bool:
        """
        Mark a row pending-migration unless it already is.

        Returns False when another migration holds the row.
        """
        rowcount = self._execute_write("""
            UPDATE course_content
            SET migration_state = %(migration_state)s, updated_at = CURRENT_TIMESTAMP()
            WHERE content_id = %(content_id)s
              AND migration_state IS DISTINCT FROM %(migration_state)s
        """, {
            "content_id": content_id,
            "migration_state": MigrationState.PENDING.value,
        })
        return rowcount == 1

    def set_processing_status(self, content_id: str, status: ProcessingStatus) -> None:
        self._update(content_id, {"processing_status": status.value})

    def list_orphaned(self) -> list[ContentStorageRef]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(CONTENT_COLUMNS)}
                FROM course_content
                WHERE migration_state = %(migration_state)s
                ORDER BY updated_at
            """, {"migration_state": MigrationState.FAILED_ORPHAN.value})

            return [self._row_to_ref(row) for row in cursor.fetchall()]

        finally:
            cursor.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _update(self, content_id: str, values: dict) -> None:
        assignments = ", ".join(f"{col} = %({col})s" for col in values)
        params = dict(values, content_id=content_id)

        rowcount = self._execute_write(f"""
            UPDATE course_content
            SET {assignments}, updated_at = CURRENT_TIMESTAMP()
            WHERE content_id = %(content_id)s
        """, params)

        if rowcount == 0:
            raise ContentNotFoundError(content_id)

    def _execute_write(self, query: str, params: dict) -> int:
        cursor = self._conn.cursor()

        try:
            cursor.execute(query, params)
            rowcount = cursor.rowcount
            self._conn.commit()
            return rowcount

        except Exception as e:
            logger.error(
                "Failed to write course content",
                extra={"content_id": params.get("content_id"), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    @staticmethod
    def _row_to_ref(row: tuple) -> ContentStorageRef:
        values = dict(zip(CONTENT_COLUMNS, row))
        raw_provider = values["storage_provider"] or StorageProvider.EXTERNAL.value
        try:
            provider = StorageProvider(raw_provider)
        except ValueError:
            raise UnsupportedProviderError(raw_provider)

        return ContentStorageRef(
            content_id=str(values["content_id"]),
            course_id=str(values["course_id"]),
            provider=provider,
            path=values["storage_path"],
            content_url=values["content_url"],
            size_bytes=values["file_size_bytes"],
            migration_state=(
                MigrationState(values["migration_state"])
                if values["migration_state"] else None
            ),
            orphan_provider=(
                StorageProvider(values["orphan_provider"])
                if values["orphan_provider"] else None
            ),
            orphan_path=values["orphan_path"],
            processing_status=ProcessingStatus(
                values["processing_status"] or ProcessingStatus.READY.value
            ),
        )

    @staticmethod
    def _ref_to_params(ref: ContentStorageRef) -> dict:
        return {
            "content_id": ref.content_id,
            "course_id": ref.course_id,
            "storage_provider": ref.provider.value,
            "storage_path": ref.path,
            "content_url": ref.content_url,
            "file_size_bytes": ref.size_bytes,
            "migration_state": ref.migration_state.value if ref.migration_state else None,
            "orphan_provider": ref.orphan_provider.value if ref.orphan_provider else None,
            "orphan_path": ref.orphan_path,
            "processing_status": ref.processing_status.value,
        }
