"""
Video Pydantic models for Tubely.

This module defines the Video metadata record, the payload accepted when a
client creates one, and the error envelope returned by every endpoint.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# CONSTANTS
# =============================================================================

MAX_TITLE_LENGTH: int = 200
MAX_DESCRIPTION_LENGTH: int = 5000


# =============================================================================
# MODELS
# =============================================================================


class VideoCreate(BaseModel):
    """Payload for creating a video metadata record."""

    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH, description="Video title")

    description: str = Field(
        default="", max_length=MAX_DESCRIPTION_LENGTH, description="Free-form description"
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Strip whitespace and refuse blank titles."""
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v


class Video(BaseModel):
    """
    Metadata record for an uploaded video.

    Attributes:
        id: Video identifier
        user_id: Owner of the record; never changes after creation
        title: Video title
        description: Free-form description
        thumbnail_url: Optional thumbnail reference
        video_url: Delivery URL of the processed media, set by the upload pipeline
        created_at: Creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
        version: Incremented on every update, used to detect concurrent writers
    """

    id: UUID = Field(default_factory=uuid4, description="Video identifier")

    user_id: UUID = Field(..., description="Owning user's ID")

    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)

    description: str = Field(default="", max_length=MAX_DESCRIPTION_LENGTH)

    thumbnail_url: str | None = Field(default=None, description="Thumbnail reference")

    video_url: str | None = Field(
        default=None, description="Playable media URL on the delivery domain"
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Creation timestamp (UTC)"
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Last modification timestamp (UTC)"
    )

    version: int = Field(default=1, ge=1, description="Optimistic concurrency version")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "6f1c1f7e-3b9a-4c55-9d8e-0f5b7c1d2a34",
                "user_id": "0b8f3a52-1d2e-4f6a-9b7c-3e4d5f6a7b8c",
                "title": "Boots on the trail",
                "description": "Day one of the hike",
                "thumbnail_url": None,
                "video_url": "https://d1234.cloudfront.net/landscape/abc.mp4",
                "created_at": "2026-01-15T10:30:00Z",
                "updated_at": "2026-01-15T10:31:00Z",
                "version": 2,
            }
        },
    )

    def is_owned_by(self, user_id: UUID) -> bool:
        """Check whether ``user_id`` is the record's owner."""
        return self.user_id == user_id

    # =========================================================================
    # MongoDB mapping
    # =========================================================================

    def to_document(self) -> dict[str, Any]:
        """Serialize to a MongoDB document with the id stored as a string ``_id``."""
        document = self.model_dump(exclude={"id"})
        document["_id"] = str(self.id)
        document["user_id"] = str(self.user_id)
        return document

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Video":
        """Build a Video from a MongoDB document."""
        data = dict(document)
        data["id"] = data.pop("_id")
        created_at = data.get("created_at")
        # Motor returns naive datetimes unless tz_aware is set
        if isinstance(created_at, datetime) and created_at.tzinfo is None:
            data["created_at"] = created_at.replace(tzinfo=UTC)
        updated_at = data.get("updated_at")
        if isinstance(updated_at, datetime) and updated_at.tzinfo is None:
            data["updated_at"] = updated_at.replace(tzinfo=UTC)
        return cls.model_validate(data)


class ErrorResponse(BaseModel):
    """Error envelope returned by every failing endpoint."""

    error: str = Field(..., description="Stable machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")


__all__ = ["ErrorResponse", "Video", "VideoCreate"]
