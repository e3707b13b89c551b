"""
API dependencies for authentication, services and public ids.
"""
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from sendix.core.errors import NotFound
from sendix.core.hashids import decode_id
from sendix.db.session import get_db
from sendix.models.user import User
from sendix.services.auth import decode_access_token, get_user_by_id
from sendix.services.realtime import Broadcaster, get_broadcaster

# Security scheme for JWT bearer tokens
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> User:
    """
    Get the current authenticated user from the JWT token.

    Raises HTTPException 401 if token is invalid or user not found.
    """
    if not credentials:
        raise _unauthorized("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise _unauthorized("Invalid or expired token")

    try:
        user_id = int(payload.sub)
    except (ValueError, TypeError):
        raise _unauthorized("Invalid token payload")

    user = await get_user_by_id(db, user_id)
    if not user:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("User account is disabled")

    return user


def decode_or_404(kind: str, hashid: Optional[str]) -> int:
    """Decode a public id; anything undecodable is reported as not found."""
    decoded = decode_id(kind, hashid)
    if decoded is None:
        raise NotFound(f"{kind.capitalize()} not found")
    return decoded


def decode_optional(kind: str, hashid: Optional[str]) -> Optional[int]:
    """Decode an optional filter id; an unknown id still raises NotFound."""
    if hashid is None:
        return None
    return decode_or_404(kind, hashid)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
BroadcasterDep = Annotated[Broadcaster, Depends(get_broadcaster)]
