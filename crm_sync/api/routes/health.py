"""Health check endpoints."""

from datetime import datetime

from fastapi import APIRouter

from crm_sync import __version__
from crm_sync.config import get_settings

router = APIRouter()

# Track startup time
_startup_time = datetime.utcnow()


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if the service is running.
    """
    settings = get_settings()
    return {
        "status": "healthy",
        "service": "crm-sync",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat(),
        "uptime_seconds": (datetime.utcnow() - _startup_time).total_seconds(),
        "syncs": {
            "hubspot": settings.enable_hubspot_sync,
            "zoho": settings.enable_zoho_sync,
        },
    }
