# orgcal/api/v1/auth.py

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.config import settings
from orgcal.core.auth.schemas import TestLoginRequest, Token
from orgcal.core.auth.security import create_access_token
from orgcal.core.users.models import User
from orgcal.db.base import get_async_db_session

router = APIRouter(prefix="/v1/auth", tags=["Authentication & Testing"])
log = logging.getLogger(__name__)


@router.post(
    "/login/test",
    response_model=Token,
    summary="[Development Only] Get JWT for an existing user ID",
    description=(
        "**WARNING:** Use only for development/testing. Credentials are issued by the "
        "organization's identity provider in production.\n\n**DO NOT EXPOSE IN PRODUCTION!**"
    ),
)
async def test_login_for_access_token(
    login_data: TestLoginRequest = Body(...),
    db: AsyncSession = Depends(get_async_db_session),
) -> Token:
    if settings.ENVIRONMENT == "prod":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    log.warning("Executing TEST login for user_id: %s. Ensure this is NOT production!", login_data.user_id)
    user = await db.get(User, login_data.user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return Token(access_token=create_access_token(data={"user_id": user.id}))
