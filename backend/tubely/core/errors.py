"""
Tubely Error Taxonomy

Every failure the upload pipeline and the video handlers can produce is a
subclass of TubelyError. Each kind carries a stable machine-readable code,
one HTTP status and a short human-readable message; optional ``details``
hold diagnostics (for example ffmpeg stderr) that are logged server-side.

The FastAPI exception handler registered in tubely.main renders these as:

    {"error": "<code>", "message": "<text>", "details": {...} | null}
"""

from typing import Any

from fastapi import status


class TubelyError(Exception):
    """Base exception for all domain errors."""

    code: str = "internal"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"
    # Whether ``details`` may be echoed back to the caller
    expose_details: bool = True

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the public error envelope."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details if self.expose_details else None,
        }


class Unauthenticated(TubelyError):
    """Raised when the bearer credential is missing or cannot be verified."""

    code = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class Forbidden(TubelyError):
    """Raised when the caller does not own the target video."""

    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You don't own this video"


class NotFound(TubelyError):
    """Raised when the requested video record does not exist."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Video not found"


class BadRequest(TubelyError):
    """Raised for malformed forms, oversized bodies and invalid parameters."""

    code = "bad_request"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Bad request"


class UnsupportedMediaType(TubelyError):
    """Raised when the effective content type is not video/mp4."""

    code = "unsupported_media_type"
    status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
    default_message = "Video must be an MP4"


class ProcessingFailed(TubelyError):
    """Raised when ffmpeg or ffprobe cannot be run or exits non-zero."""

    code = "processing_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to process video"
    expose_details = False


class NoStreamsFound(TubelyError):
    """Raised when the probed container reports no video stream."""

    code = "no_streams_found"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "No video streams found"


class StorageUnavailable(TubelyError):
    """Raised on any transport or service error from the object store."""

    code = "storage_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Object storage unavailable"
    expose_details = False


class Conflict(TubelyError):
    """Raised when the video record changed between the ownership check and the update."""

    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Video was modified concurrently, retry the upload"


class Internal(TubelyError):
    """Raised for unexpected state, e.g. a missing identity where one is guaranteed."""

    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
    expose_details = False


class RequestCancelled(TubelyError):
    """Raised when the client disconnected while its upload was in flight."""

    code = "request_cancelled"
    # nginx's "Client Closed Request"
    status_code = 499
    default_message = "Client closed request"


__all__ = [
    "BadRequest",
    "Conflict",
    "Forbidden",
    "Internal",
    "NoStreamsFound",
    "NotFound",
    "ProcessingFailed",
    "RequestCancelled",
    "StorageUnavailable",
    "TubelyError",
    "Unauthenticated",
    "UnsupportedMediaType",
]
