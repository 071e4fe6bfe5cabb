"""HTTP routes for the Career OS backend."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from career_os.api.auth import router as auth_router
from career_os.api.deps import get_app_settings
from career_os.api.google import router as google_router
from career_os.core.config import Settings

router = APIRouter()
router.include_router(auth_router)
router.include_router(google_router)


@router.get("/api/health", tags=["health"])
async def health_check(settings: Settings = Depends(get_app_settings)) -> dict[str, str]:
    """Report the service health information."""
    return {"status": "ok", "version": settings.version}
