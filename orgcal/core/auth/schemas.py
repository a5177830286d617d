# orgcal/core/auth/schemas.py

from __future__ import annotations

from pydantic import BaseModel, Field


class Token(BaseModel):
    """JWT returned to the client."""
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    """Claims we rely on. ``sub`` carries the user id."""
    user_id: int = Field(..., description="User ID within our application")


class TestLoginRequest(BaseModel):
    """Body of the development-only login endpoint."""
    user_id: int = Field(..., description="Existing user to log in as")
