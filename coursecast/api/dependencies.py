"""
FastAPI dependency injection.

Dependencies provide the storage service and configuration to route
handlers. Routes never build their own clients, which keeps them easy to
test: tests swap `get_storage_service` through `app.dependency_overrides`.

The storage service is long-lived. It owns the settings cache and the
shared HTTP client, so one instance is created per process and closed in
the application lifespan.
"""

import logging
from typing import Annotated, Optional

import httpx
from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.storage import StorageProvider, StorageSettings
from ..infrastructure.snowflake.client import (
    ConnectionProvider,
    MockSnowflakeConnection,
    SnowflakeConfig,
    create_connection_provider,
)
from ..infrastructure.snowflake.repositories import StorageSettingsRepository
from ..infrastructure.storage import (
    VideoStorageService,
    build_mock_transport,
    create_provider_registry,
)

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Process-wide instances
_storage_service: Optional[VideoStorageService] = None
_mock_snowflake_connection: Optional[MockSnowflakeConnection] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


# ---------------------------------------------------------------------------
# Service construction
# ---------------------------------------------------------------------------

def create_seeded_mock_connection() -> MockSnowflakeConnection:
    """In-memory database holding default storage settings (direct object store)."""
    conn = MockSnowflakeConnection()
    StorageSettingsRepository(conn).save(
        StorageSettings(active_provider=StorageProvider.SUPABASE)
    )
    logger.info("Seeded mock Snowflake connection with default storage settings")
    return conn


def build_connection_provider(
    settings: Settings,
    mock_connection: Optional[MockSnowflakeConnection] = None,
) -> ConnectionProvider:
    """
    Connection provider for the configured database.

    In mock mode the same in-memory connection is reused so that data
    persists for the life of the process. A fresh mock is seeded with
    default storage settings pointing at the direct object store.
    """
    if settings.snowflake_mock_mode:
        if mock_connection is None:
            mock_connection = create_seeded_mock_connection()
        return create_connection_provider(mock_mode=True, mock_connection=mock_connection)

    config = SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )
    return create_connection_provider(config=config)


def build_storage_service(
    settings: Settings,
    mock_connection: Optional[MockSnowflakeConnection] = None,
) -> VideoStorageService:
    """
    Assemble the storage service from process configuration.

    In storage mock mode every provider is an in-memory backend and the
    HTTP client is wired to a transport that serves their URLs, so
    migrations can download what they uploaded.
    """
    timeout = httpx.Timeout(settings.http_timeout_seconds)

    if settings.storage_mock_mode:
        registry = create_provider_registry(mock_mode=True)
        client = httpx.AsyncClient(
            transport=build_mock_transport(registry.backends),
            timeout=timeout,
        )
    else:
        client = httpx.AsyncClient(timeout=timeout)
        registry = create_provider_registry(
            client=client,
            supabase_url=settings.supabase_url or None,
            supabase_service_key=settings.supabase_service_key or None,
        )

    logger.info(
        "Created video storage service",
        extra={
            "providers": [provider.value for provider in registry.providers],
            "mock_mode": {
                "snowflake": settings.snowflake_mock_mode,
                "storage": settings.storage_mock_mode,
            }
        }
    )

    return VideoStorageService(
        registry=registry,
        connection_provider=build_connection_provider(settings, mock_connection),
        http_client=client,
        settings_ttl_seconds=settings.storage_settings_ttl_seconds,
    )


def get_storage_service(
    settings: Annotated[Settings, Depends(get_settings)],
) -> VideoStorageService:
    """Provide the process-wide storage service, creating it on first use."""
    global _storage_service, _mock_snowflake_connection

    if _storage_service is None:
        if settings.snowflake_mock_mode and _mock_snowflake_connection is None:
            _mock_snowflake_connection = create_seeded_mock_connection()
        _storage_service = build_storage_service(settings, _mock_snowflake_connection)

    return _storage_service


async def close_storage_service() -> None:
    """Close the shared HTTP client; called on application shutdown."""
    global _storage_service

    if _storage_service is not None:
        await _storage_service.aclose()
        _storage_service = None
        logger.info("Closed video storage service")


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
StorageServiceDep = Annotated[VideoStorageService, Depends(get_storage_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
