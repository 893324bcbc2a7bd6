"""
Course video endpoints.

Upload flow:
1. Admin uploads a video for a course -> stored on the active provider
2. The returned record (provider, path, size) is saved on the lesson
3. Learners fetch a playable URL for that lesson

Migration moves an existing video to another provider and repoints the
lesson. Orphaned copies left behind by failed deletes are cleaned up by
`POST /reconcile-orphans`.
"""

import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, File, Form, HTTPException, Response, UploadFile, status
from pydantic import BaseModel, Field

from ...core.storage import ProcessingStatus, StorageProvider, StorageRecord, VideoFile
from ..dependencies import AuthenticatedUser, StorageServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class StorageRecordResponse(BaseModel):
    """Where an uploaded video now lives."""
    provider: StorageProvider = Field(description="Provider holding the video")
    path: str = Field(description="Object path on that provider")
    size_bytes: int = Field(description="Size of the stored video")
    content_id: Optional[str] = Field(
        default=None,
        description="Lesson the record was saved on, if one was given"
    )

    @classmethod
    def from_record(cls, record: StorageRecord, content_id: Optional[str] = None) -> "StorageRecordResponse":
        return cls(
            provider=record.provider,
            path=record.path,
            size_bytes=record.size_bytes,
            content_id=content_id,
        )


class PlaybackUrlResponse(BaseModel):
    content_id: str
    url: str = Field(description="Signed or public URL, valid for the configured expiry")


class ProcessingStatusResponse(BaseModel):
    content_id: str
    status: ProcessingStatus


class ProcessingStatusUpdate(BaseModel):
    status: ProcessingStatus = Field(description="Result reported by the processing pipeline")


class UploadSessionResponse(BaseModel):
    upload_id: str
    session: dict[str, Any] = Field(description="Session metadata as reported by the worker")


class MigrateRequest(BaseModel):
    target_provider: StorageProvider = Field(description="Provider to move the video to")


class ReconcileResponse(BaseModel):
    reconciled: int = Field(description="Orphaned copies successfully deleted")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=StorageRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a course video",
    description="Upload a video to the active storage provider",
)
async def upload_video(
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
    file: Annotated[UploadFile, File(description="Video file (MP4, MOV, WebM, ...)")],
    course_id: Annotated[str, Form(description="Course the video belongs to")],
    content_id: Annotated[Optional[str], Form(description="Lesson to attach the video to")] = None,
) -> StorageRecordResponse:
    """
    Store a video on the active provider.

    When `content_id` is given the lesson is pointed at the new object;
    otherwise the caller is expected to save the returned record itself.
    """
    if file.content_type and not file.content_type.startswith("video/"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported file type: {file.content_type}. Upload a video file."
        )

    data = await file.read()
    video = VideoFile(
        name=file.filename or "video.mp4",
        data=data,
        content_type=file.content_type or "video/mp4",
    )

    logger.info(
        "Video upload started",
        extra={
            "course_id": course_id,
            "content_id": content_id,
            "video_filename": video.name,
            "size_bytes": video.size,
        }
    )

    record = await storage.upload_video(video, course_id)

    if content_id:
        await storage.record_upload(content_id, course_id, record)

    return StorageRecordResponse.from_record(record, content_id)


@router.post(
    "/reconcile-orphans",
    response_model=ReconcileResponse,
    summary="Delete copies left behind by migrations",
)
async def reconcile_orphans(
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
) -> ReconcileResponse:
    reconciled = await storage.reconcile_orphans()
    return ReconcileResponse(reconciled=reconciled)


@router.get(
    "/uploads/{upload_id}",
    response_model=UploadSessionResponse,
    summary="Get a chunked upload session",
    description="Session state kept by the R2 upload worker; 404 once the session is gone",
)
async def get_upload_session(
    upload_id: str,
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
) -> UploadSessionResponse:
    session = await storage.get_upload_status(upload_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Upload session {upload_id} not found"
        )
    return UploadSessionResponse(upload_id=upload_id, session=session)


@router.get(
    "/{content_id}/url",
    response_model=PlaybackUrlResponse,
    summary="Get a playable URL",
)
async def get_playback_url(
    content_id: str,
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
) -> PlaybackUrlResponse:
    url = await storage.get_signed_url(content_id)
    return PlaybackUrlResponse(content_id=content_id, url=url)


@router.get(
    "/{content_id}/status",
    response_model=ProcessingStatusResponse,
    summary="Get processing status",
    description="Polled by the player while a video is still processing",
)
async def get_processing_status(
    content_id: str,
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
) -> ProcessingStatusResponse:
    return ProcessingStatusResponse(
        content_id=content_id,
        status=storage.get_processing_status(content_id),
    )


@router.put(
    "/{content_id}/status",
    response_model=ProcessingStatusResponse,
    summary="Set processing status",
    description="Called by the processing pipeline when a video becomes ready or fails",
)
async def set_processing_status(
    content_id: str,
    request: ProcessingStatusUpdate,
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
) -> ProcessingStatusResponse:
    storage.set_processing_status(content_id, request.status)
    return ProcessingStatusResponse(content_id=content_id, status=request.status)


@router.delete(
    "/{content_id}/storage",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a lesson's stored video",
    description="Best effort: storage failures are logged and never block deleting the lesson.",
)
async def delete_video(
    content_id: str,
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
) -> Response:
    await storage.delete_video(content_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{content_id}/migrate",
    response_model=StorageRecordResponse,
    summary="Move a video to another provider",
)
async def migrate_video(
    content_id: str,
    request: MigrateRequest,
    api_key: AuthenticatedUser,
    storage: StorageServiceDep,
) -> StorageRecordResponse:
    record = await storage.migrate_video(content_id, request.target_provider)
    return StorageRecordResponse.from_record(record, content_id)
