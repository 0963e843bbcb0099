"""
Video metadata store backed by the MongoDB ``videos`` collection.

Updates are guarded by the record's ``version``: an update only applies when
the stored version still matches the one the caller read, and bumps it by
one. A mismatch means another writer got there first and surfaces as
Conflict.
"""

import logging

from datetime import UTC, datetime
from uuid import UUID

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from tubely.core.database import get_db_client
from tubely.core.errors import Conflict, Internal, NotFound
from tubely.models.video import Video


logger = logging.getLogger(__name__)

# Fields a metadata update may touch; id, owner and created_at are immutable
MUTABLE_FIELDS = ("title", "description", "thumbnail_url", "video_url", "updated_at")


class VideoRepository:
    """Async CRUD over video records."""

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self._collection = collection

    async def get_video(self, video_id: UUID) -> Video:
        """
        Fetch a record by id.

        Raises:
            NotFound: If no record has this id.
        """
        try:
            document = await self._collection.find_one({"_id": str(video_id)})
        except PyMongoError as e:
            logger.exception("Failed to read video %s", video_id)
            raise Internal("Failed to read video record") from e

        if document is None:
            raise NotFound(f"Video {video_id} not found")
        return Video.from_document(document)

    async def create_video(self, video: Video) -> Video:
        try:
            await self._collection.insert_one(video.to_document())
        except PyMongoError as e:
            logger.exception("Failed to create video %s", video.id)
            raise Internal("Failed to create video record") from e

        logger.info("Created video %s for user %s", video.id, video.user_id)
        return video

    async def list_videos(self, user_id: UUID) -> list[Video]:
        """Return the user's records, newest first."""
        try:
            cursor = self._collection.find({"user_id": str(user_id)}).sort(
                "created_at", DESCENDING
            )
            return [Video.from_document(document) async for document in cursor]
        except PyMongoError as e:
            logger.exception("Failed to list videos for user %s", user_id)
            raise Internal("Failed to list video records") from e

    async def update_video(self, video: Video, expected_version: int) -> Video:
        """
        Persist the mutable fields of ``video`` if the stored version is unchanged.

        Args:
            video: Record carrying the new field values.
            expected_version: Version read before the changes were made.

        Returns:
            Video: The stored record after the update, with its new version.

        Raises:
            NotFound: If the record was deleted in the meantime.
            Conflict: If another writer updated the record in the meantime.
        """
        changes = {field: getattr(video, field) for field in MUTABLE_FIELDS}
        changes["updated_at"] = datetime.now(UTC)

        try:
            document = await self._collection.find_one_and_update(
                {"_id": str(video.id), "version": expected_version},
                {"$set": changes, "$inc": {"version": 1}},
                return_document=ReturnDocument.AFTER,
            )
            if document is None:
                exists = await self._collection.count_documents({"_id": str(video.id)}, limit=1)
        except PyMongoError as e:
            logger.exception("Failed to update video %s", video.id)
            raise Internal("Failed to update video record") from e

        if document is None:
            if not exists:
                raise NotFound(f"Video {video.id} not found")
            logger.warning(
                "Video %s changed concurrently (expected version %s)", video.id, expected_version
            )
            raise Conflict()

        return Video.from_document(document)

    async def delete_video(self, video_id: UUID) -> None:
        """
        Delete a record.

        Raises:
            NotFound: If no record has this id.
        """
        try:
            result = await self._collection.delete_one({"_id": str(video_id)})
        except PyMongoError as e:
            logger.exception("Failed to delete video %s", video_id)
            raise Internal("Failed to delete video record") from e

        if result.deleted_count == 0:
            raise NotFound(f"Video {video_id} not found")
        logger.info("Deleted video %s", video_id)


def get_video_repository() -> VideoRepository:
    """FastAPI dependency returning a repository over the shared database client."""
    return VideoRepository(get_db_client().get_videos_collection())


__all__ = ["VideoRepository", "get_video_repository"]
