"""
Authentication service for Supabase-issued access tokens.

Users sign in against Supabase Auth; this API only verifies the HS256 JWT
it hands out and looks up the matching public profile.
"""

import logging
import os
from typing import Dict, Optional
from uuid import UUID

import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hoopspotter.database.models import Profile
from hoopspotter.services.errors import ConfigurationError

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TOKEN_AUDIENCE = "authenticated"


def _get_jwt_secret() -> Optional[str]:
    return os.getenv("SUPABASE_JWT_SECRET")


def check_auth_configuration() -> None:
    """
    Raise if token verification cannot work.

    Raises:
        ConfigurationError: If SUPABASE_JWT_SECRET is not set
    """
    if not _get_jwt_secret():
        raise ConfigurationError(
            "SUPABASE_JWT_SECRET is not set. Copy the JWT secret from the "
            "Supabase project settings into the environment."
        )


def verify_token(token: str) -> Optional[Dict]:
    """
    Verify and decode a Supabase access token.

    Args:
        token: Bearer token from the Authorization header

    Returns:
        Token payload if valid (``sub`` is the user id), None otherwise
    """
    secret = _get_jwt_secret()
    if not secret:
        logger.error("SUPABASE_JWT_SECRET is not configured; rejecting token")
        return None
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            audience=TOKEN_AUDIENCE,
        )
    except jwt.PyJWTError as e:
        logger.debug("Rejected access token: %s", e)
        return None

    if not payload.get("sub"):
        return None
    return payload


def get_user_id(payload: Dict) -> Optional[UUID]:
    """Extract the user id (``sub`` claim) as a UUID, or None if malformed."""
    try:
        return UUID(str(payload.get("sub")))
    except (TypeError, ValueError):
        return None


async def get_profile(session: AsyncSession, user_id: UUID) -> Optional[Dict]:
    """
    Get the public profile of a user.

    Returns:
        Profile dict, or None if the user has no profile row yet
    """
    result = await session.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    if not profile:
        return None
    return {
        "id": profile.id,
        "display_name": profile.display_name,
        "role": profile.role.value if hasattr(profile.role, "value") else profile.role,
        "avatar_url": profile.avatar_url,
    }


async def ensure_profile(session: AsyncSession, user_id: UUID, email: Optional[str] = None) -> Dict:
    """
    Return the user's profile, creating a default one on first write.

    Courts and reviews reference ``profiles``; the display name defaults to
    the local part of the e-mail address.
    """
    profile = await get_profile(session, user_id)
    if profile:
        return profile

    display_name = email.split("@", 1)[0] if email else None
    session.add(Profile(id=user_id, display_name=display_name))
    await session.flush()
    logger.info("Created profile for user %s", user_id)
    return {"id": user_id, "display_name": display_name, "role": "user", "avatar_url": None}
