"""
Snowflake repository for the video storage settings record.

There is exactly one settings row. The admin settings form writes it and
the storage service reads it through its settings cache.
"""

import logging
from typing import Optional, Protocol

from ....core.storage import StorageProvider, StorageSettings

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1

SETTINGS_COLUMNS = (
    "active_provider",
    "supabase_bucket",
    "cloudflare_account_id",
    "cloudflare_access_key",
    "cloudflare_secret_key",
    "cloudflare_bucket",
    "cloudflare_worker_url",
    "cloudflare_public_url",
    "bunny_api_key",
    "bunny_storage_zone",
    "bunny_storage_host",
    "bunny_cdn_url",
    "bunny_token_key",
    "signed_url_expiry_seconds",
    "max_file_size_mb",
    "auto_compress",
)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Tests provide the in-memory mock without importing
    snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...


class StorageSettingsRepository:
    """Reads and writes the single storage settings row."""

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def get(self) -> Optional[StorageSettings]:
        """Load the settings row, or None when it has never been written."""
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {", ".join(SETTINGS_COLUMNS)}
                FROM video_storage_settings
                WHERE settings_id = %(settings_id)s
            """, {"settings_id": SETTINGS_ROW_ID})

            row = cursor.fetchone()
            if not row:
                return None

            return self._row_to_settings(row)

        finally:
            cursor.close()

    def save(self, settings: StorageSettings) -> None:
        """
        Upsert the settings row.

        Callers must invalidate the storage service's settings cache
        afterwards; `VideoStorageService.save_settings` does both.
        """
        cursor = self._conn.cursor()

        params = self._settings_to_params(settings)
        params["settings_id"] = SETTINGS_ROW_ID

        assignments = ", ".join(f"{col} = %({col})s" for col in SETTINGS_COLUMNS)
        insert_columns = ", ".join(("settings_id",) + SETTINGS_COLUMNS)
        insert_values = ", ".join(f"%({col})s" for col in ("settings_id",) + SETTINGS_COLUMNS)

        try:
            cursor.execute(f"""
                MERGE INTO video_storage_settings t
                USING (SELECT %(settings_id)s AS settings_id) s
                ON t.settings_id = s.settings_id
                WHEN MATCHED THEN UPDATE SET {assignments},
                    updated_at = CURRENT_TIMESTAMP()
                WHEN NOT MATCHED THEN INSERT ({insert_columns})
                    VALUES ({insert_values})
            """, params)

            self._conn.commit()

            logger.info(
                "Saved storage settings",
                extra={"active_provider": params["active_provider"]}
            )

        except Exception as e:
            logger.error("Failed to save storage settings", extra={"error": str(e)})
            raise
        finally:
            cursor.close()

    @staticmethod
    def _row_to_settings(row: tuple) -> StorageSettings:
        values = dict(zip(SETTINGS_COLUMNS, row))
        try:
            values["active_provider"] = StorageProvider(values["active_provider"])
        except ValueError:
            # Left as the raw value; uploads then fail with UnsupportedProviderError
            logger.warning(
                "Unknown active storage provider in settings",
                extra={"active_provider": values["active_provider"]}
            )
        values["auto_compress"] = bool(values["auto_compress"])
        if not values.get("bunny_storage_host"):
            values.pop("bunny_storage_host")
        if not values.get("supabase_bucket"):
            values.pop("supabase_bucket")
        return StorageSettings(**values)

    @staticmethod
    def _settings_to_params(settings: StorageSettings) -> dict:
        params = {col: getattr(settings, col) for col in SETTINGS_COLUMNS}
        params["active_provider"] = getattr(
            settings.active_provider, "value", settings.active_provider
        )
        return params
