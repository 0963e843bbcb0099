"""
Tubely Identity Gate

Verifies the bearer credential attached to a request and turns it into an
immutable CallerIdentity that is passed explicitly down the call chain.

Tokens are HMAC-signed JWTs verified with python-jose against the shared
secret from settings. The header's ``alg`` must equal the configured
``jwt_algorithm`` (one of HS256/HS384/HS512), so ``none``, asymmetric schemes
and other HMAC variants are refused before verification. The ``sub`` claim carries the caller's user id and must be a UUID.

Usage:
    ```python
    from fastapi import Depends
    from tubely.core.auth import CallerIdentity, get_caller_identity

    @router.get("/protected")
    async def protected_route(caller: CallerIdentity = Depends(get_caller_identity)):
        return {"user_id": str(caller.user_id)}
    ```
"""

import logging

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from tubely.config import HMAC_ALGORITHMS, Settings, get_settings
from tubely.core.errors import Unauthenticated


# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Security Scheme
# =============================================================================

# auto_error is off so a missing header surfaces as our own Unauthenticated
security = HTTPBearer(
    scheme_name="Bearer",
    description="HMAC-signed JWT bearer token whose subject is the caller's user id.",
    auto_error=False,
)


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """The authenticated principal making a request."""

    user_id: UUID


# =============================================================================
# Token Functions
# =============================================================================


def create_access_token(
    user_id: UUID | str,
    settings: Settings,
    expires_in: timedelta | None = timedelta(hours=1),
) -> str:
    """
    Issue an access token for ``user_id`` signed with the configured secret.

    Used by development tooling and tests; the service itself only consumes
    tokens.
    """
    now = datetime.now(UTC)
    payload: dict = {"sub": str(user_id), "iat": now, "iss": "tubely-access"}
    if expires_in is not None:
        payload["exp"] = now + expires_in
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str, settings: Settings) -> dict:
    """
    Verify signature and expiry of a token signed with ``settings.jwt_algorithm``.

    Args:
        token: Raw JWT string without the ``Bearer`` prefix.
        settings: Settings carrying the shared secret and expected algorithm.

    Returns:
        dict: The decoded claims.

    Raises:
        Unauthenticated: On any malformed, foreign-scheme, forged or expired token.
    """
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as e:
        logger.warning("Bearer token header is malformed: %s", str(e))
        raise Unauthenticated("Malformed bearer token") from e

    algorithm = header.get("alg")
    if algorithm not in HMAC_ALGORITHMS:
        logger.warning("Rejected bearer token signed with unsupported algorithm: %s", algorithm)
        raise Unauthenticated("Unsupported token signing method")
    if algorithm != settings.jwt_algorithm:
        logger.warning(
            "Rejected bearer token signed with %s, expected %s", algorithm, settings.jwt_algorithm
        )
        raise Unauthenticated("Unexpected token signing algorithm")

    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as e:
        logger.warning("Bearer token has expired")
        raise Unauthenticated("Token has expired") from e
    except JWTError as e:
        logger.warning("Bearer token validation failed: %s", str(e))
        raise Unauthenticated("Invalid token") from e


def authenticate_request(
    credentials: HTTPAuthorizationCredentials | None,
    settings: Settings,
) -> CallerIdentity:
    """
    Resolve the caller's identity from the request's bearer credential.

    Raises:
        Unauthenticated: If the credential is absent, not a bearer token,
            fails verification, or its subject is missing or not a UUID.
    """
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise Unauthenticated("Missing bearer token")

    claims = verify_access_token(credentials.credentials, settings)

    subject = claims.get("sub")
    if not subject:
        logger.warning("Bearer token carries no subject")
        raise Unauthenticated("Token has no subject")

    try:
        user_id = UUID(str(subject))
    except ValueError as e:
        logger.warning("Bearer token subject is not a UUID: %s", subject)
        raise Unauthenticated("Token subject is not a valid user id") from e

    return CallerIdentity(user_id=user_id)


# =============================================================================
# Authentication Dependencies
# =============================================================================


async def get_caller_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
) -> CallerIdentity:
    """FastAPI dependency wrapping authenticate_request."""
    return authenticate_request(credentials, settings)


__all__ = [
    "CallerIdentity",
    "authenticate_request",
    "create_access_token",
    "get_caller_identity",
    "security",
    "verify_access_token",
]
