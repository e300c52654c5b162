"""
Contact Resolution API Routes

Resolves a batch of raw phone numbers to contacts of one CRM workspace.
"""

from typing import Any

import httpx
import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from crm_sync.api.deps import get_http_client, get_oauth_manager
from crm_sync.connectors.auth.oauth2 import OAuth2Manager
from crm_sync.identity.types import CRMCredentials
from crm_sync.sync.models import CRMType, WorkspaceCredentials
from crm_sync.sync.pipeline import CRMSyncRunner

logger = structlog.get_logger()

router = APIRouter(prefix="/contacts", tags=["contacts"])


# =============================================================================
# Request / Response Models
# =============================================================================


class ResolveRequest(BaseModel):
    crm: CRMType
    access_token: str
    refresh_token: str | None = None
    api_domain: str | None = None
    phones: list[str] = Field(default_factory=list)


class MatchedContact(BaseModel):
    contact_id: str
    fields: dict[str, Any] = Field(default_factory=dict)


class ResolveResponse(BaseModel):
    matches: dict[str, MatchedContact] = Field(default_factory=dict)
    chunks: int = 0
    failed_chunks: list[int] = Field(default_factory=list)
    token_refreshed: bool = False


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/resolve", response_model=ResolveResponse)
async def resolve_contacts(
    body: ResolveRequest,
    http_client: httpx.AsyncClient = Depends(get_http_client),
    oauth_manager: OAuth2Manager = Depends(get_oauth_manager),
) -> ResolveResponse:
    """Map each phone to the CRM contact it belongs to, when one exists."""
    runner = CRMSyncRunner(body.crm, http_client, oauth_manager=oauth_manager)
    client = runner.client_for(
        WorkspaceCredentials(
            workspace_id="adhoc",
            crm=body.crm,
            access_token=body.access_token,
            refresh_token=body.refresh_token,
            api_domain=body.api_domain,
        )
    )
    credentials = CRMCredentials(access_token=body.access_token, refresh_token=body.refresh_token)

    result = await runner.resolution_service().resolve_detailed(body.phones, client, credentials)

    logger.info(
        "Resolve request completed",
        crm=body.crm.value,
        phones=len(body.phones),
        matched=len(result.matches),
    )
    return ResolveResponse(
        matches={
            phone: MatchedContact(contact_id=match.contact_id, fields=dict(match.contact.fields))
            for phone, match in result.matches.items()
        },
        chunks=len(result.chunks),
        failed_chunks=[chunk.index for chunk in result.failed_chunks],
        token_refreshed=credentials.access_token != body.access_token,
    )
