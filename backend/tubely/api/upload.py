"""
Tubely Video Upload API Endpoint

POST /api/video_upload/{video_id} accepts a multipart form whose ``video``
field holds an MP4 file, processes it and links the result to the caller's
video record.

Ownership and the declared body size are checked before the multipart body
is read, so a caller who does not own the record never gets a byte of
theirs written to disk. The ``video`` part is then streamed off the request
straight into the private staging directory, never spooled elsewhere.

The pipeline runs as a task while the handler watches the connection; if the
client goes away the task is cancelled, which kills any running media tool,
aborts the storage transfer and removes the staged files.
"""

import asyncio
import logging

from collections.abc import Awaitable, Callable
from typing import TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status

from tubely.config import Settings, get_settings
from tubely.core.auth import CallerIdentity, get_caller_identity
from tubely.core.errors import RequestCancelled
from tubely.core.storage import StorageClient, get_storage_client
from tubely.models.video import ErrorResponse, Video
from tubely.services.media_tools import (
    ContainerIntrospector,
    FastStartTranscoder,
    get_introspector,
    get_transcoder,
)
from tubely.services.video_repository import VideoRepository, get_video_repository
from tubely.services.video_upload_service import VideoUploadService
from tubely.utils.multipart_stream import MultipartFilePart


# Configure module logger
logger = logging.getLogger(__name__)

T = TypeVar("T")

VIDEO_FORM_FIELD = "video"


# ============================================================================
# Router Definition
# ============================================================================

router = APIRouter(
    tags=["upload"],
    responses={
        400: {"model": ErrorResponse, "description": "Malformed form or body too large"},
        401: {"model": ErrorResponse, "description": "Unauthorized - Invalid or missing token"},
        403: {"model": ErrorResponse, "description": "Caller does not own the video"},
        404: {"model": ErrorResponse, "description": "Video not found"},
        409: {"model": ErrorResponse, "description": "Video modified concurrently"},
        415: {"model": ErrorResponse, "description": "Unsupported media type"},
        500: {"model": ErrorResponse, "description": "Processing failed"},
        503: {"model": ErrorResponse, "description": "Object storage unavailable"},
    },
)


# ============================================================================
# Dependency Injection Functions
# ============================================================================


def get_video_upload_service(
    repository: VideoRepository = Depends(get_video_repository),
    storage: StorageClient = Depends(get_storage_client),
    transcoder: FastStartTranscoder = Depends(get_transcoder),
    introspector: ContainerIntrospector = Depends(get_introspector),
    settings: Settings = Depends(get_settings),
) -> VideoUploadService:
    """Dependency injection for VideoUploadService."""
    return VideoUploadService(
        repository=repository,
        storage=storage,
        transcoder=transcoder,
        introspector=introspector,
        settings=settings,
    )


# ============================================================================
# Helper Functions
# ============================================================================


def declared_content_length(request: Request) -> int | None:
    """Parse the Content-Length header, None when absent or malformed."""
    value = request.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


async def run_until_disconnected(
    request: Request,
    awaitable: Awaitable[T],
    poll_interval: float,
    receiving: Callable[[], bool] | None = None,
) -> T:
    """
    Await ``awaitable`` as a task, cancelling it if the client disconnects.

    While ``receiving()`` is true the task is still reading the request body
    and sees a disconnect itself, so the connection is not polled.

    Raises:
        RequestCancelled: If the client went away before the task finished.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if receiving is not None and receiving():
                # polling would swallow body messages the task still needs
                continue
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling %s %s", request.method, request.url.path)
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                raise RequestCancelled()
    finally:
        if not task.done():
            task.cancel()


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/video_upload/{video_id}",
    response_model=Video,
    status_code=status.HTTP_200_OK,
    summary="Upload a video file",
    description=(
        "Multipart upload of an MP4 file in the `video` field (max 1 GiB). The file is "
        "remuxed for fast-start playback, classified by aspect ratio, stored and linked "
        "to the video record."
    ),
)
async def upload_video(
    video_id: UUID,
    request: Request,
    caller: CallerIdentity = Depends(get_caller_identity),
    service: VideoUploadService = Depends(get_video_upload_service),
    settings: Settings = Depends(get_settings),
) -> Video:
    """
    Upload the media for a video record the caller owns.

    Returns:
        Video: The updated record with ``video_url`` pointing at the delivery domain.
    """
    await service.authorize(video_id, caller)

    content_length = declared_content_length(request)
    service.check_declared_size(content_length)

    upload = MultipartFilePart.from_request(request, VIDEO_FORM_FIELD)
    try:
        await upload.open()
        return await run_until_disconnected(
            request,
            service.process_upload(video_id, caller, upload, content_length),
            settings.disconnect_poll_interval_seconds,
            receiving=lambda: upload.receiving,
        )
    finally:
        await upload.aclose()


__all__ = ["get_video_upload_service", "router", "run_until_disconnected"]
