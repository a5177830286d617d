# orgcal/core/auth/security.py

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.config import settings
from orgcal.core.auth.actor import Actor
from orgcal.core.users.models import User
from orgcal.db.base import get_async_db_session

from .schemas import TokenData

log = logging.getLogger(__name__)

# Browsers cannot set headers on an EventSource, so the token may also arrive as ?token=
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/v1/auth/login/test", auto_error=False)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed access token.

    Args:
        data (dict): Claims. ``user_id`` is moved into ``sub``.
        expires_delta (timedelta | None): Lifetime, defaults to the configured one.

    Returns:
        str: Encoded JWT.
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode["exp"] = expire
    if "user_id" in to_encode:
        to_encode["sub"] = str(to_encode.pop("user_id"))
    elif "sub" not in to_encode:
        raise ValueError("Missing 'user_id' or 'sub' in data for JWT")

    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    log.debug("Created JWT token for sub: %s", to_encode.get("sub"))
    return encoded_jwt


def verify_token(token: str, credentials_exception: HTTPException) -> TokenData:
    """
    Decode and validate a token.

    Raises:
        HTTPException: ``credentials_exception`` when the token is invalid or expired.
    """
    try:
        payload: dict[str, Any] = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        user_id: str | None = payload.get("sub")
        if user_id is None:
            log.warning("Token verification failed: 'sub' claim missing.")
            raise credentials_exception
        token_data = TokenData(user_id=user_id)
    except JWTError as e:
        log.warning("Token verification failed: JWTError - %s", e)
        raise credentials_exception from e
    except ValidationError as e:
        log.warning("Token verification failed: ValidationError - %s", e)
        raise credentials_exception from e

    log.debug("Token verified for user_id: %s", token_data.user_id)
    return token_data


async def get_current_user(
    bearer: Optional[str] = Depends(oauth2_scheme),
    token: Optional[str] = Query(None, include_in_schema=False),
    db: AsyncSession = Depends(get_async_db_session),
) -> User:
    """
    FastAPI dependency: the authenticated, active and approved user.

    Raises:
        HTTPException: 401 when the credentials are missing or invalid,
                       403 when the account is inactive or not approved.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    raw = bearer or token
    if not raw:
        raise credentials_exception

    token_data = verify_token(raw, credentials_exception)
    user = await db.get(User, token_data.user_id)
    if user is None:
        log.warning("User %s from a valid token no longer exists", token_data.user_id)
        raise credentials_exception
    if not user.is_active or user.approval_status != "APPROVED":
        log.warning("Rejected login of inactive/unapproved user %s", user.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is not active")
    return user


async def get_current_actor(current_user: User = Depends(get_current_user)) -> Actor:
    """The caller as the scope filter sees it."""
    return Actor.from_user(current_user)


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator only")
    return actor


__all__ = [
    "oauth2_scheme", "create_access_token", "verify_token",
    "get_current_user", "get_current_actor", "require_admin",
]
