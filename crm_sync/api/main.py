"""
WhatsApp Analytics CRM Sync - FastAPI Application

Provides:
- Phone-to-contact resolution against HubSpot or Zoho
- Full warehouse-to-CRM sync runs
- Health and Prometheus metrics endpoints
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
import structlog
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from crm_sync import __version__
from crm_sync.api.routes import contacts, health, sync
from crm_sync.config import get_settings
from crm_sync.connectors.auth.oauth2 import build_oauth_manager
from crm_sync.kernel.http.errors import register_exception_handlers
from crm_sync.logging_setup import configure_logging

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - shared HTTP client and OAuth manager."""
    settings = get_settings()

    logger.info(
        "Starting CRM sync service",
        version=__version__,
        environment=settings.environment,
        hubspot_sync=settings.enable_hubspot_sync,
        zoho_sync=settings.enable_zoho_sync,
    )

    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    app.state.http_client = http_client
    app.state.oauth_manager = build_oauth_manager(http_client, settings)

    yield

    await http_client.aclose()
    logger.info("CRM sync service stopped")


app = FastAPI(
    title="WhatsApp Analytics CRM Sync",
    description="Resolves WhatsApp chats to CRM contacts and syncs conversation analytics",
    version=__version__,
    lifespan=lifespan,
)

register_exception_handlers(app)

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

app.include_router(health.router, tags=["Health"])
app.include_router(contacts.router, prefix="/api/v1", tags=["Contacts"])
app.include_router(sync.router, prefix="/api/v1", tags=["Sync"])


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "WhatsApp Analytics CRM Sync",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
    }
