"""
JWT verification utilities.

Accounts and login live in the surrounding knowledge-base application; it
issues HS256 access tokens signed with the shared JWT_SECRET_KEY. This
service only needs to verify them (and, for service-to-service calls and
tests, mint them).

References:
-----------
- FastAPI Security: https://fastapi.tiangolo.com/tutorial/security/oauth2-jwt/
- JWT Standard: https://jwt.io/introduction
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from kbsearch.core.config import settings


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to include in the token. Should include "sub"
              (subject) with the caller identifier.
        expires_delta: How long until the token expires. Defaults to
                       JWT_ACCESS_TOKEN_EXPIRE_MINUTES from settings.

    Returns:
        Encoded JWT token string

    Example:
        >>> token = create_access_token(
        ...     data={"sub": "alice@example.com"},
        ...     expires_delta=timedelta(minutes=30)
        ... )
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """
    Decode and verify a JWT access token.

    Validation Checks:
    ------------------
    1. Structure: Must be 3 parts (header.payload.signature)
    2. Signature: Must match (prevents tampering)
    3. Algorithm: Must be the configured one (prevents algorithm confusion)
    4. Expiration: Must not be expired

    Args:
        token: JWT token string from Authorization header

    Returns:
        Dictionary of claims if valid, None if invalid
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        # Token is invalid (expired, tampered, malformed)
        return None
