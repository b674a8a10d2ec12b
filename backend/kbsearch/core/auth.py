"""
Authentication dependencies for FastAPI.

The embedding and search routes only require that the caller is
authenticated. There is no user table here: the verified token claims are
the caller's identity.

References:
-----------
- FastAPI Security Tutorial: https://fastapi.tiangolo.com/tutorial/security/oauth2-jwt/
"""

from dataclasses import dataclass, field
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kbsearch.core.security import decode_access_token

# ================================
# Bearer Scheme
# ================================

# auto_error=False so that a missing header produces our 401 (not a 403)
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as described by the token claims."""

    subject: str
    role: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    """
    Resolve the authenticated caller from the Authorization header.

    Usage in routes:
    ----------------
    @router.post("/search")
    async def search(principal: Principal = Depends(get_current_principal)):
        ...

    Raises:
        HTTPException 401: If the token is missing, invalid, expired or
        has no "sub" claim. The same error is used for every failure so
        the response doesn't reveal why authentication failed.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or credentials.scheme.lower() != "bearer":
        raise credentials_exception

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    subject: str | None = payload.get("sub")
    if not subject:
        raise credentials_exception

    return Principal(subject=subject, role=payload.get("role"), claims=payload)
