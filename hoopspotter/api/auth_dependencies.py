"""
Authentication dependencies for FastAPI routes.

Every request gets an explicit RequestContext. It is anonymous unless a
valid bearer token was sent; handlers that write require a user.
"""

from dataclasses import dataclass
from typing import Dict, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from hoopspotter.database.db import get_db_session
from hoopspotter.services import auth_service
from hoopspotter.services.errors import BACKEND_EXCEPTIONS, classify_backend_error

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class RequestContext:
    """Who is making the request. ``user_id`` is None for anonymous callers."""

    user_id: Optional[UUID] = None
    email: Optional[str] = None
    profile: Optional[Dict] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


async def get_request_context(
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> RequestContext:
    """
    Build the request context from the optional bearer token.

    Missing or invalid tokens yield an anonymous context rather than an error.
    """
    if credentials is None:
        return RequestContext()

    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        return RequestContext()

    user_id = auth_service.get_user_id(payload)
    if user_id is None:
        return RequestContext()

    try:
        profile = await auth_service.get_profile(session, user_id)
    except BACKEND_EXCEPTIONS as e:
        raise classify_backend_error(e) from e
    return RequestContext(user_id=user_id, email=payload.get("email"), profile=profile)


async def require_user(context: RequestContext = Depends(get_request_context)) -> RequestContext:
    """Require an authenticated user."""
    if not context.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign in to continue",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return context
