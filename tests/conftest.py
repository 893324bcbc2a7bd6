"""
Shared fixtures for the unit tests.

Nothing here touches the network or a real database: persistence uses
the in-memory Snowflake mock. HTTP helpers live in `tests.helpers`.
"""

from typing import Callable, Optional

import pytest

from coursecast.core.storage import (
    ContentStorageRef,
    StorageProvider,
    StorageSettings,
)
from coursecast.infrastructure.snowflake.client import (
    MockSnowflakeConnection,
    create_connection_provider,
)
from coursecast.infrastructure.snowflake.repositories import (
    ContentRepository,
    StorageSettingsRepository,
)


@pytest.fixture
def settings() -> StorageSettings:
    return StorageSettings(
        active_provider=StorageProvider.SUPABASE,
        supabase_bucket="course-videos",
        cloudflare_worker_url="https://r2-upload.example.workers.dev",
        bunny_api_key="zone-password",
        bunny_storage_zone="coursecast-videos",
        bunny_cdn_url="https://coursecast.b-cdn.net",
        bunny_token_key="token-secret",
        signed_url_expiry_seconds=3600,
        max_file_size_mb=500,
    )


@pytest.fixture
def mock_connection(settings) -> MockSnowflakeConnection:
    """In-memory database holding the settings fixture."""
    conn = MockSnowflakeConnection()
    StorageSettingsRepository(conn).save(settings)
    return conn


@pytest.fixture
def connection_provider(mock_connection):
    return create_connection_provider(mock_mode=True, mock_connection=mock_connection)


@pytest.fixture
def save_content(mock_connection) -> Callable[..., ContentStorageRef]:
    """Insert a content row and return its storage reference."""

    def save(
        content_id: str = "lesson-1",
        course_id: str = "course-1",
        provider: StorageProvider = StorageProvider.SUPABASE,
        path: Optional[str] = "courses/course-1/1700000000000_intro.mp4",
        **kwargs,
    ) -> ContentStorageRef:
        ref = ContentStorageRef(
            content_id=content_id,
            course_id=course_id,
            provider=provider,
            path=path,
            **kwargs,
        )
        ContentRepository(mock_connection).save(ref)
        return ref

    return save
