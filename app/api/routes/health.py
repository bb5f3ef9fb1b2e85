from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, HTTPException

from app.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()

REQUIRED_PROVIDERS = {
    "youtube": "youtube_api_key",
    "openrouter": "openrouter_api_key",
    "exa": "exa_api_key",
    "hunter": "hunter_api_key",
    "snov": "snov_client_id",
}


@router.get("")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check():
    """Readiness check: demo mode needs a snapshot, live mode needs the required provider keys."""
    providers = {
        name: "configured" if getattr(settings, attr) else "not configured"
        for name, attr in REQUIRED_PROVIDERS.items()
    }

    if settings.demo_mode:
        if not Path(settings.demo_snapshot_path).exists():
            raise HTTPException(status_code=503, detail="Demo snapshot is not available")
    else:
        missing = [name for name in REQUIRED_PROVIDERS if providers[name] != "configured"]
        if missing:
            logger.warning("Readiness failed; missing providers: %s", ", ".join(missing))
            raise HTTPException(status_code=503, detail=f"Providers not configured: {', '.join(missing)}")

    return {
        "status": "ready",
        "version": settings.app_version,
        "environment": settings.environment,
        "demo_mode": settings.demo_mode,
        "providers": providers,
    }
