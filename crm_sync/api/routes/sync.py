"""Sync run endpoint."""

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from crm_sync.api.deps import get_http_client, get_oauth_manager, get_reader
from crm_sync.connectors.auth.oauth2 import OAuth2Manager
from crm_sync.connectors.sources.warehouse.bigquery import ConversationSummaryReader
from crm_sync.sync.models import SyncReport, WorkspaceCredentials
from crm_sync.sync.pipeline import run_sync

router = APIRouter(tags=["sync"])


class SyncRequest(BaseModel):
    workspaces: list[WorkspaceCredentials] = Field(default_factory=list)


@router.post("/sync", response_model=SyncReport)
async def trigger_sync(
    body: SyncRequest,
    http_client: httpx.AsyncClient = Depends(get_http_client),
    oauth_manager: OAuth2Manager = Depends(get_oauth_manager),
    reader: ConversationSummaryReader = Depends(get_reader),
) -> SyncReport:
    """Run a full warehouse-to-CRM sync for the given workspaces."""
    return await run_sync(
        body.workspaces,
        http_client,
        reader=reader,
        oauth_manager=oauth_manager,
    )
