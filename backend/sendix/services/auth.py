"""
Authentication helpers.

Sessions are issued by the external account service; this module only
validates the bearer JWTs it hands out and resolves the user behind them.
create_access_token mirrors the issuer's format and is used by tooling and
tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from sendix.core.config import settings
from sendix.models.user import User
from sendix.schemas.auth import TokenPayload

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    """Normalize email address for consistent comparison."""
    return email.lower().strip()


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes))

    payload = {
        "sub": str(user_id),
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[TokenPayload]:
    """
    Decode and validate a JWT access token.

    Validates signature, expiration and token type (must be "access").
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        token_data = TokenPayload(**payload)

        if token_data.type != "access":
            logger.warning("Invalid token type", token_type=token_data.type)
            return None

        return token_data
    except JWTError as e:
        logger.warning("JWT decode error", error=str(e))
        return None


async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    """Get a user by ID."""
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Get a user by email address (case-insensitive)."""
    result = await db.execute(
        select(User).where(User.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def user_from_token(db: AsyncSession, token: str | None) -> Optional[User]:
    """Resolve an active user from a raw token, or None."""
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload:
        return None
    try:
        user_id = int(payload.sub)
    except (ValueError, TypeError):
        return None
    user = await get_user_by_id(db, user_id)
    if not user or not user.is_active:
        return None
    return user
