"""
Health endpoints for the video API.

`/health` answers as long as the process is up. `/health/ready` loads the
storage settings row and checks that the active provider has a backend,
so a deployment with an empty settings table or a misconfigured registry
is kept out of rotation.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from ... import __version__
from ..dependencies import SettingsDep, StorageServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    details: dict[str, Any] = {}


class ReadinessCheck(BaseModel):
    name: str
    ok: bool
    error: Optional[str] = None


class ReadinessResponse(BaseModel):
    ready: bool
    version: str
    active_provider: Optional[str] = None
    checks: list[ReadinessCheck]


@router.get(
    "",
    response_model=HealthResponse,
    summary="Liveness",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        details={
            "mock_mode": {
                "snowflake": settings.snowflake_mock_mode,
                "storage": settings.storage_mock_mode,
            }
        }
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness",
    description="503 until configuration is complete and storage settings can be loaded.",
    responses={503: {"model": ReadinessResponse}},
)
async def readiness_check(
    response: Response,
    settings: SettingsDep,
    storage: StorageServiceDep,
) -> ReadinessResponse:
    checks: list[ReadinessCheck] = []
    active_provider = None

    missing_fields = settings.validate_required_fields()
    checks.append(ReadinessCheck(
        name="configuration",
        ok=not missing_fields,
        error=f"Missing: {', '.join(missing_fields)}" if missing_fields else None,
    ))

    try:
        active_provider = storage.get_settings().active_provider
        checks.append(ReadinessCheck(name="storage_settings", ok=True))
    except Exception as e:
        logger.error("Could not load storage settings", extra={"error": str(e)})
        checks.append(ReadinessCheck(name="storage_settings", ok=False, error=str(e)))

    if active_provider is not None:
        registered = active_provider in storage.providers
        checks.append(ReadinessCheck(
            name="active_provider_backend",
            ok=registered,
            error=None if registered else f"No backend registered for {active_provider.value}",
        ))

    ready = all(check.ok for check in checks)
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Not ready",
            extra={"failed_checks": [c.name for c in checks if not c.ok]}
        )

    return ReadinessResponse(
        ready=ready,
        version=__version__,
        active_provider=active_provider.value if active_provider else None,
        checks=checks,
    )
