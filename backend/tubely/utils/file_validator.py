"""
Content type validation for uploaded videos.

The declared part type is advisory. When a client sends nothing useful
(empty or ``application/octet-stream``), the type is sniffed from the first
bytes of the content with libmagic. The effective type has its parameters
stripped and must be ``video/mp4``.
"""

import logging
import re

import magic

from tubely.core.errors import BadRequest, UnsupportedMediaType


logger = logging.getLogger(__name__)

ALLOWED_VIDEO_MIME_TYPE = "video/mp4"

# Declared types that carry no information about the content
GENERIC_MIME_TYPES = frozenset({"", "application/octet-stream"})

# RFC 2045 token characters for type and subtype
_TOKEN = r"[!#$%&'*+.^_`|~0-9A-Za-z-]+"
_MEDIA_TYPE_RE = re.compile(rf"^{_TOKEN}/{_TOKEN}$")


# =============================================================================
# MIME TYPE DETECTION
# =============================================================================


def sniff_content_type(head: bytes) -> str:
    """
    Detect the MIME type of content from its leading bytes using libmagic.

    Args:
        head: The first bytes of the content (512 are plenty for containers).

    Returns:
        Detected MIME type, ``application/octet-stream`` when undetermined.
    """
    detected = magic.from_buffer(head, mime=True)
    return (detected or "application/octet-stream").lower().strip()


def parse_media_type(value: str) -> str:
    """
    Parse a Content-Type value and return the bare ``type/subtype``.

    Example:
        >>> parse_media_type("Video/MP4; codecs=avc1")
        'video/mp4'

    Raises:
        BadRequest: If the value is not a well-formed media type.
    """
    media_type, _, params = value.partition(";")
    media_type = media_type.strip().lower()

    if not _MEDIA_TYPE_RE.match(media_type):
        raise BadRequest("Invalid Content-Type", details={"content_type": value})

    for param in params.split(";"):
        param = param.strip()
        if param and "=" not in param:
            raise BadRequest("Invalid Content-Type parameter", details={"content_type": value})

    return media_type


def resolve_content_type(declared: str | None, head: bytes) -> str:
    """
    Decide the effective media type of an upload.

    Args:
        declared: Content type the client declared for the part, if any.
        head: Leading bytes of the content for sniffing.

    Returns:
        The effective bare media type.

    Raises:
        BadRequest: If the chosen value cannot be parsed.
    """
    declared = (declared or "").strip()
    if declared.split(";", 1)[0].strip().lower() in GENERIC_MIME_TYPES:
        sniffed = sniff_content_type(head)
        logger.debug("Declared content type %r is generic, sniffed %s", declared, sniffed)
        return parse_media_type(sniffed)
    return parse_media_type(declared)


def require_mp4(media_type: str) -> None:
    """
    Raises:
        UnsupportedMediaType: Unless ``media_type`` is video/mp4.
    """
    if media_type != ALLOWED_VIDEO_MIME_TYPE:
        raise UnsupportedMediaType(details={"content_type": media_type})
