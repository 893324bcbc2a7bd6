"""
Storage settings endpoints for the admin settings screen.

Secrets are write-only: reads report which ones are set, never their
values. On update, a secret left out (null) keeps its stored value and an
empty string clears it.
"""

import logging
from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field, field_validator

from ...core.storage import ConfigurationError, StorageProvider, StorageSettings
from ..dependencies import AuthenticatedUser, StorageServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()

SECRET_FIELDS = (
    "cloudflare_access_key",
    "cloudflare_secret_key",
    "bunny_api_key",
    "bunny_token_key",
)


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class StorageSettingsBase(BaseModel):
    active_provider: StorageProvider = Field(description="Provider used for new uploads")
    supabase_bucket: str = "course-videos"
    cloudflare_account_id: Optional[str] = None
    cloudflare_bucket: Optional[str] = None
    cloudflare_worker_url: Optional[str] = None
    cloudflare_public_url: Optional[str] = None
    bunny_storage_zone: Optional[str] = None
    bunny_storage_host: str = "storage.bunnycdn.com"
    bunny_cdn_url: Optional[str] = None
    signed_url_expiry_seconds: int = Field(default=3600, gt=0)
    max_file_size_mb: int = Field(default=500, gt=0)
    auto_compress: bool = Field(
        default=False,
        description="Advisory flag for the admin client; the server never transcodes"
    )


class StorageSettingsUpdate(StorageSettingsBase):
    cloudflare_access_key: Optional[str] = None
    cloudflare_secret_key: Optional[str] = None
    bunny_api_key: Optional[str] = None
    bunny_token_key: Optional[str] = None

    @field_validator("active_provider")
    @classmethod
    def provider_must_store_files(cls, value: StorageProvider) -> StorageProvider:
        if not value.is_stored:
            raise ValueError("external links cannot be the active storage provider")
        return value


class StorageSettingsResponse(StorageSettingsBase):
    configured_secrets: list[str] = Field(
        default_factory=list,
        description="Secret fields that currently hold a value"
    )

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "StorageSettingsResponse":
        values = asdict(settings)
        configured = [name for name in SECRET_FIELDS if values.pop(name)]
        return cls(**values, configured_secrets=configured)


class ConnectionTestRequest(BaseModel):
    provider: Optional[StorageProvider] = Field(
        default=None,
        description="Provider to test; defaults to the active provider"
    )


class ConnectionTestResponse(BaseModel):
    provider: StorageProvider
    ok: bool
    message: str
    details: dict[str, Any] = {}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/settings",
    response_model=StorageSettingsResponse,
    summary="Get storage settings",
)
async def get_storage_settings(
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
) -> StorageSettingsResponse:
    return StorageSettingsResponse.from_settings(storage.get_settings())


@router.put(
    "/settings",
    response_model=StorageSettingsResponse,
    summary="Update storage settings",
    description="Writes the settings row and invalidates the settings cache",
)
async def update_storage_settings(
    request: StorageSettingsUpdate,
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
) -> StorageSettingsResponse:
    try:
        current: Optional[StorageSettings] = storage.get_settings()
    except ConfigurationError:
        current = None

    values = request.model_dump()
    for name in SECRET_FIELDS:
        if values[name] is None and current is not None:
            values[name] = getattr(current, name)
        elif values[name] == "":
            values[name] = None

    settings = StorageSettings(**values)
    storage.save_settings(settings)

    logger.info(
        "Storage settings updated",
        extra={"active_provider": settings.active_provider.value}
    )

    return StorageSettingsResponse.from_settings(settings)


@router.post(
    "/settings/test-connection",
    response_model=ConnectionTestResponse,
    summary="Test provider credentials",
)
async def test_storage_connection(
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
    request: Optional[ConnectionTestRequest] = None,
) -> ConnectionTestResponse:
    provider = request.provider if request else None
    result = await storage.test_connection(provider)
    return ConnectionTestResponse(
        provider=result.provider,
        ok=result.ok,
        message=result.message,
        details=result.details,
    )
