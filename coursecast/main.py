"""
FastAPI application entry point.

This module creates and configures the FastAPI application through an
application factory (`create_app`), so tests can build fresh instances.

For local development:
    uvicorn coursecast.main:app --reload

For production:
    gunicorn coursecast.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.dependencies import close_storage_service
from .api.errors import video_storage_exception_handler
from .api.routes import health, storage_settings, videos
from .config.settings import get_settings
from .core.storage import VideoStorageError

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Validates configuration on startup and closes the storage service's
    HTTP client on shutdown.
    """
    settings = get_settings()

    logger.info(
        "CourseCast API starting",
        extra={
            "version": __version__,
            "mock_mode": {
                "snowflake": settings.snowflake_mock_mode,
                "storage": settings.storage_mock_mode,
            }
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # Logged rather than fatal so mock-mode development still starts
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    await close_storage_service()
    logger.info("CourseCast API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        Course video storage and playback API.

        ## Authentication

        All endpoints except health checks require an API key provided in
        the `X-API-Key` header.

        ## Workflow

        1. **Configure storage**: `PUT /api/v1/storage/settings`
           - Pick the active provider and enter its credentials
           - Check them with `POST /api/v1/storage/settings/test-connection`

        2. **Upload**: `POST /api/v1/videos/upload`
           - Stores the video on the active provider
           - Pass `content_id` to attach it to a lesson

        3. **Play**: `GET /api/v1/videos/{content_id}/url`
           - Signed or public URL from the provider holding the video

        4. **Move**: `POST /api/v1/videos/{content_id}/migrate`
           - Copies the video to another provider and repoints the lesson
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        videos.router,
        prefix="/api/v1/videos",
        tags=["Videos"],
    )

    app.include_router(
        storage_settings.router,
        prefix="/api/v1/storage",
        tags=["Storage Settings"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - points at the docs."""
        return {
            "message": "CourseCast Video API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    app.add_exception_handler(VideoStorageError, video_storage_exception_handler)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Logs the full error server-side but returns a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": __version__,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "coursecast.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
