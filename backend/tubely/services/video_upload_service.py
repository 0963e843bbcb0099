"""
Tubely Video Upload Service

Runs the upload pipeline for one request:

1. Resolve the video record and check the caller owns it
2. Enforce the body size ceiling
3. Decide the effective content type (declared, or sniffed when generic)
4. Stage the bytes in a private per-request directory
5. Remux for fast-start playback with ffmpeg
6. Probe the remuxed file with ffprobe and classify its aspect ratio
7. Upload it under ``<classification>/<token>.mp4``
8. Point the record's ``video_url`` at the delivery domain and persist it

Each step aborts the rest on failure. Nothing is written to object storage
before staging and remuxing succeed, and the record is only updated after
the object is stored. Staged files are removed on every exit path.
"""

import logging

from typing import Protocol
from uuid import UUID

from tubely.config import Settings, get_settings
from tubely.core.auth import CallerIdentity
from tubely.core.errors import BadRequest, Conflict, Forbidden, NotFound, StorageUnavailable
from tubely.core.storage import StorageClient
from tubely.models.video import Video
from tubely.services.media_tools import (
    ContainerIntrospector,
    FastStartTranscoder,
    fast_start_output_path,
)
from tubely.services.staging import AsyncReadable, staging_area
from tubely.services.video_repository import VideoRepository
from tubely.utils.aspect_ratio import classify_aspect_ratio
from tubely.utils.file_validator import require_mp4, resolve_content_type
from tubely.utils.logger import add_log_context
from tubely.utils.security import build_video_key


# Configure module logger
logger = logging.getLogger(__name__)

STAGED_UPLOAD_NAME = "upload.mp4"


class UploadSource(AsyncReadable, Protocol):
    """The uploaded file part: its bytes plus what the client declared about it."""

    filename: str | None
    content_type: str | None


class VideoUploadService:
    """
    Orchestrates the authenticated upload and processing pipeline.

    Attributes:
        repository: Video metadata store
        storage: Object store client
        transcoder: Fast-start remuxer
        introspector: Stream geometry reader
        settings: Application settings

    Example:
        ```python
        service = VideoUploadService(
            repository=VideoRepository(collection),
            storage=get_storage_client(),
            transcoder=FFmpegFastStartTranscoder(),
            introspector=FFprobeIntrospector(),
        )
        video = await service.process_upload(video_id, caller, upload)
        ```
    """

    def __init__(
        self,
        repository: VideoRepository,
        storage: StorageClient,
        transcoder: FastStartTranscoder,
        introspector: ContainerIntrospector,
        settings: Settings | None = None,
    ) -> None:
        self.repository = repository
        self.storage = storage
        self.transcoder = transcoder
        self.introspector = introspector
        self.settings = settings or get_settings()

    async def authorize(self, video_id: UUID, caller: CallerIdentity) -> Video:
        """
        Resolve the record and verify the caller owns it.

        Raises:
            NotFound: If the record does not exist.
            Forbidden: If the caller is not the record's owner.
        """
        video = await self.repository.get_video(video_id)
        if not video.is_owned_by(caller.user_id):
            logger.warning(
                "User %s attempted to upload to video %s owned by %s",
                caller.user_id,
                video_id,
                video.user_id,
            )
            raise Forbidden()
        return video

    def check_declared_size(self, content_length: int | None) -> None:
        """
        Raises:
            BadRequest: If a declared body size exceeds the upload ceiling.
        """
        if content_length is not None and content_length > self.settings.max_upload_size_bytes:
            raise BadRequest(
                "Upload exceeds the maximum allowed size",
                details={"max_bytes": self.settings.max_upload_size_bytes},
            )

    def delivery_url(self, key: str) -> str:
        return f"https://{self.settings.delivery_domain}/{key}"

    async def process_upload(
        self,
        video_id: UUID,
        caller: CallerIdentity,
        upload: UploadSource,
        content_length: int | None = None,
    ) -> Video:
        """
        Process an uploaded video and link it to the caller's record.

        Args:
            video_id: Target record.
            caller: Authenticated identity of the uploader.
            upload: The ``video`` part of the multipart form, read as it arrives.
            content_length: Declared request body size, if known.

        Returns:
            Video: The updated record with ``video_url`` set.

        Raises:
            NotFound, Forbidden, BadRequest, UnsupportedMediaType,
            ProcessingFailed, NoStreamsFound, StorageUnavailable, Conflict
        """
        ctx_logger = add_log_context(logger, video_id=str(video_id), user_id=str(caller.user_id))

        video = await self.authorize(video_id, caller)
        expected_version = video.version

        self.check_declared_size(content_length)

        head = await upload.read(self.settings.sniff_bytes)
        content_type = resolve_content_type(upload.content_type, head)
        require_mp4(content_type)

        ctx_logger.info("Processing upload '%s' (%s)", upload.filename, content_type)

        async with staging_area(self.settings.upload_temp_dir) as area:
            source = await area.write_stream(
                upload,
                STAGED_UPLOAD_NAME,
                prefix=head,
                max_bytes=self.settings.max_upload_size_bytes,
            )
            area.register(fast_start_output_path(source))

            processed = await self.transcoder.process(source)
            geometry = await self.introspector.probe(processed)
            aspect_ratio = classify_aspect_ratio(geometry.width, geometry.height)
            ctx_logger.info(
                "Video is %sx%s, classified as %s",
                geometry.width,
                geometry.height,
                aspect_ratio.value,
            )

            key = build_video_key(aspect_ratio)
            await self.storage.put_object(
                self.storage.bucket_name, key, processed, content_type
            )

        ctx_logger.info("Stored processed video as %s", key)

        changed = video.model_copy(update={"video_url": self.delivery_url(key)})
        try:
            updated = await self.repository.update_video(changed, expected_version)
        except (Conflict, NotFound):
            await self._discard_object(key)
            raise

        ctx_logger.info("Upload complete, video_url=%s", updated.video_url)
        return updated

    async def _discard_object(self, key: str) -> None:
        """Best-effort removal of an object whose record update was lost."""
        try:
            await self.storage.delete_object(self.storage.bucket_name, key)
        except StorageUnavailable:
            logger.warning("Could not remove orphaned object %s", key)


__all__ = ["UploadSource", "VideoUploadService"]
