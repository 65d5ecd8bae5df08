"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready). Readiness reports
whether the duplication service is initialized and holds a HubSpot credential;
it never calls HubSpot.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.dealclone.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check. No external dependencies are checked."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check -- service initialized and credential configured."""
    service = getattr(request.app.state, "duplication_service", None)
    checks = {
        "duplication_service": "ok" if service is not None else "error",
        "hubspot_credential": "ok" if get_settings().has_access_token else "missing",
    }
    ready = all(value == "ok" for value in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
