"""User and service-status route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from hoopspotter import __version__
from hoopspotter.api.auth_dependencies import RequestContext, require_user
from hoopspotter.models.schemas import ProfileResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/me", response_model=ProfileResponse)
async def get_me(context: RequestContext = Depends(require_user)):
    """Get the current user's profile."""
    if not context.profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return context.profile


@router.get("/api/health")
async def health():
    """Liveness probe."""
    return {"status": "ok", "version": __version__}
