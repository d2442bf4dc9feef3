"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.auth.jwt import verify_token
from unibits.database import get_session
from unibits.db.models import Profile, UserRole
from unibits.progression.ledger import get_or_create_profile

ROLES = ("admin", "moderator", "student")
DEFAULT_ROLE = "student"

_bearer = HTTPBearer()


async def get_user_role(db: AsyncSession, user_id: str) -> str:
    row = await db.get(UserRole, user_id)
    return row.role if row is not None else DEFAULT_ROLE


async def get_current_profile(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> Profile:
    """
    Verify the bearer token and return the caller's Profile.

    The profile is created on first sign-in. Raises 401 on an invalid token.
    """
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    profile = await get_or_create_profile(db, str(payload["sub"]), payload.get("name"))
    await db.commit()
    return profile


async def require_admin(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
) -> Profile:
    """Same as get_current_profile but additionally requires the admin role."""
    if await get_user_role(db, profile.user_id) != "admin":
        raise HTTPException(status_code=403, detail="Admin role required")
    return profile
