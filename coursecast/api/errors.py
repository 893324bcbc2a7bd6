"""
HTTP mapping for video storage errors.

Routes let domain errors propagate; the handler registered in `create_app`
turns them into JSON responses. Provider failures keep the provider's
message, and authentication failures also carry their remediation hint.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ..core.storage import (
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

logger = logging.getLogger(__name__)

# First match wins, so subclasses go before their bases
ERROR_STATUS_CODES: tuple[tuple[type, int], ...] = (
    (ContentNotFoundError, status.HTTP_404_NOT_FOUND),
    (FileTooLargeError, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE),
    (InvalidOperationError, status.HTTP_400_BAD_REQUEST),
    (UnsupportedProviderError, status.HTTP_400_BAD_REQUEST),
    (MissingStoragePathError, status.HTTP_400_BAD_REQUEST),
    (UploadCancelledError, status.HTTP_409_CONFLICT),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NotConfiguredError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (AuthenticationError, status.HTTP_502_BAD_GATEWAY),
    (UploadError, status.HTTP_502_BAD_GATEWAY),
    (DeleteError, status.HTTP_502_BAD_GATEWAY),
    (UrlResolutionError, status.HTTP_502_BAD_GATEWAY),
    (DownloadError, status.HTTP_502_BAD_GATEWAY),
)


def status_code_for(exc: VideoStorageError) -> int:
    for error_cls, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_cls):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def video_storage_exception_handler(request: Request, exc: VideoStorageError) -> JSONResponse:
    status_code = status_code_for(exc)

    logger.warning(
        "Video storage request failed",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "status_code": status_code,
            "error": str(exc),
        }
    )

    content = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, AuthenticationError):
        content["hint"] = exc.hint

    return JSONResponse(status_code=status_code, content=content)
