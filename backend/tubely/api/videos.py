"""
Video metadata API endpoints.

Create, list, fetch and delete video records. Every endpoint requires a
bearer token; a record can only be read or deleted by its owner.
"""

import logging

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from tubely.config import Settings, get_settings
from tubely.core.auth import CallerIdentity, get_caller_identity
from tubely.core.errors import Forbidden, StorageUnavailable
from tubely.core.storage import StorageClient, get_storage_client
from tubely.models.video import ErrorResponse, Video, VideoCreate
from tubely.services.video_repository import VideoRepository, get_video_repository
from tubely.utils.security import extract_key_from_url


logger = logging.getLogger(__name__)


router = APIRouter(
    tags=["videos"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized - Invalid or missing token"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)


# =============================================================================
# Helper Functions
# =============================================================================


async def get_owned_video(
    repository: VideoRepository,
    video_id: UUID,
    caller: CallerIdentity,
) -> Video:
    """
    Retrieve a record and verify it belongs to the caller.

    Raises:
        NotFound: If the record does not exist.
        Forbidden: If the caller does not own it.
    """
    video = await repository.get_video(video_id)
    if not video.is_owned_by(caller.user_id):
        logger.warning("User %s denied access to video %s", caller.user_id, video_id)
        raise Forbidden()
    return video


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/videos",
    response_model=Video,
    status_code=status.HTTP_201_CREATED,
    summary="Create a video record",
)
async def create_video(
    payload: VideoCreate,
    caller: CallerIdentity = Depends(get_caller_identity),
    repository: VideoRepository = Depends(get_video_repository),
) -> Video:
    video = Video(user_id=caller.user_id, title=payload.title, description=payload.description)
    return await repository.create_video(video)


@router.get(
    "/videos",
    response_model=list[Video],
    summary="List the caller's videos",
    description="Returns the caller's video records, newest first.",
)
async def list_videos(
    caller: CallerIdentity = Depends(get_caller_identity),
    repository: VideoRepository = Depends(get_video_repository),
) -> list[Video]:
    return await repository.list_videos(caller.user_id)


@router.get(
    "/videos/{video_id}",
    response_model=Video,
    summary="Get a video record",
    responses={
        403: {"model": ErrorResponse, "description": "Caller does not own the video"},
        404: {"model": ErrorResponse, "description": "Video not found"},
    },
)
async def get_video(
    video_id: UUID,
    caller: CallerIdentity = Depends(get_caller_identity),
    repository: VideoRepository = Depends(get_video_repository),
) -> Video:
    return await get_owned_video(repository, video_id, caller)


@router.delete(
    "/videos/{video_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete a video record and its stored media",
    responses={
        403: {"model": ErrorResponse, "description": "Caller does not own the video"},
        404: {"model": ErrorResponse, "description": "Video not found"},
    },
)
async def delete_video(
    video_id: UUID,
    caller: CallerIdentity = Depends(get_caller_identity),
    repository: VideoRepository = Depends(get_video_repository),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
) -> Response:
    """
    Delete the record and, when it has media, the stored object.

    A storage failure is logged and does not block removing the record.
    """
    video = await get_owned_video(repository, video_id, caller)

    key = extract_key_from_url(video.video_url) if video.video_url else None
    if key:
        try:
            await storage.delete_object(settings.s3_bucket_name, key)
        except StorageUnavailable:
            logger.warning("Could not delete stored media %s for video %s", key, video_id)

    await repository.delete_video(video_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["get_owned_video", "router"]
