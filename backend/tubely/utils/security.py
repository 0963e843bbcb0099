"""
Security utilities for Tubely.

Cryptographically secure random tokens and the object keys built from them.
Keys for processed videos take the form ``<classification>/<token>.mp4``;
the token is unpredictable so delivery URLs cannot be guessed.
"""

import base64
import secrets

from urllib.parse import urlsplit

from tubely.utils.aspect_ratio import AspectRatio


# 256 bits of entropy per object key
DEFAULT_TOKEN_BYTES = 32

VIDEO_KEY_EXTENSION = ".mp4"


# ==============================================================================
# SECURE RANDOM STRING GENERATION
# ==============================================================================


def generate_secure_token(nbytes: int = DEFAULT_TOKEN_BYTES) -> str:
    """
    Generate a URL-safe random token.

    ``nbytes`` bytes from the secrets module, encoded as URL-safe base64 with
    the ``=`` padding removed. 32 bytes give a 43 character token.

    Args:
        nbytes: Number of random bytes. Must be positive.

    Returns:
        Token made of ``A-Z a-z 0-9 - _`` only.

    Example:
        >>> len(generate_secure_token())
        43
    """
    if nbytes <= 0:
        raise ValueError("nbytes must be a positive integer")

    return base64.urlsafe_b64encode(secrets.token_bytes(nbytes)).rstrip(b"=").decode("ascii")


def build_video_key(aspect_ratio: AspectRatio, token: str | None = None) -> str:
    """
    Build the object key for a processed video.

    Args:
        aspect_ratio: Classification used as the key prefix.
        token: Random token; a fresh one is generated when omitted.

    Returns:
        str: e.g. ``landscape/3q2-...X.mp4``
    """
    return f"{AspectRatio(aspect_ratio).value}/{token or generate_secure_token()}{VIDEO_KEY_EXTENSION}"


def extract_key_from_url(url: str) -> str | None:
    """
    Recover the object key from a delivery URL.

    The key is the URL path without its leading slash, whatever the host, so
    records written under an earlier delivery domain still resolve.

    Example:
        >>> extract_key_from_url("https://cdn.example.com/landscape/a.mp4")
        'landscape/a.mp4'
    """
    key = urlsplit(url).path.lstrip("/")
    return key or None
