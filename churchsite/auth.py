"""
Authentication boundary.

Login and session mechanics live outside this service. Requests carry an
HS256 bearer token (or an ``access_token`` cookie) whose ``sub`` claim is the
user's email; these dependencies turn it into a User, or None for anonymous
readers.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from churchsite.config import settings
from churchsite.database import get_db
from churchsite.exceptions import AuthorizationError, UnauthorizedError
from churchsite.models.user import User

logger = logging.getLogger(__name__)

# OAuth2 scheme for token extraction; anonymous readers are allowed through
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})

    if "sub" not in to_encode:
        raise ValueError("Missing 'sub' claim (email) in token data.")

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[str]:
    """Return the token's subject, or None when the token is unusable."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        logger.info("Token expired; treating request as anonymous")
        return None
    except JWTError as e:
        logger.info(f"JWT decoding failed: {str(e)}")
        return None

    email = payload.get("sub")
    if email is None:
        logger.warning("Token is missing 'sub' claim")
    return email


async def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Resolve the viewer if a valid token is present. Absence is never an error."""
    token = token or request.cookies.get("access_token")
    if not token:
        return None

    email = decode_access_token(token)
    if email is None:
        return None

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalars().first()
    if user is None:
        logger.warning(f"Token subject '{email}' does not match any user")
        return None

    request.state.user = user
    return user


async def get_viewing_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    Optional user for fire-and-forget tracking endpoints.

    A database outage while looking the user up degrades to an anonymous
    viewer instead of failing the request.
    """
    try:
        return await get_optional_user(request, token, db)
    except OperationalError as e:
        await db.rollback()
        logger.warning(f"Could not load viewer, treating as anonymous: {e}")
        return None


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    if user is None:
        raise UnauthorizedError()
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise AuthorizationError("Admin access required")
    return user
