"""
Aspect ratio classification for video frames.

A frame is ``landscape`` when its width/height ratio is within 0.1 of 16/9,
``portrait`` when the inverse ratio is, and ``other`` otherwise. Bounds are
inclusive. Degenerate geometry (a zero side) is ``other``.
"""

from enum import Enum


TARGET_RATIO = 16 / 9
RATIO_TOLERANCE = 0.1

# Absorbs float rounding so ratios exactly on the bound stay inside it
_EPSILON = 1e-9


class AspectRatio(str, Enum):
    """Geometry classes, also used as object key prefixes."""

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


def _near_target(ratio: float) -> bool:
    return abs(ratio - TARGET_RATIO) <= RATIO_TOLERANCE + _EPSILON


def classify_ratio(ratio: float) -> AspectRatio:
    """
    Classify a width/height ratio.

    Example:
        >>> classify_ratio(16 / 9)
        <AspectRatio.LANDSCAPE: 'landscape'>
    """
    if ratio <= 0:
        return AspectRatio.OTHER
    if _near_target(ratio):
        return AspectRatio.LANDSCAPE
    if _near_target(1 / ratio):
        return AspectRatio.PORTRAIT
    return AspectRatio.OTHER


def classify_aspect_ratio(width: int, height: int) -> AspectRatio:
    """Classify a frame by its pixel dimensions."""
    if width <= 0 or height <= 0:
        return AspectRatio.OTHER
    return classify_ratio(width / height)
