"""
Sync Pipeline

Warehouse chats -> contact resolution -> CRM contact updates, for every
enabled CRM.

One workspace failing (rejected token, unreachable CRM) does not stop the
other workspaces of the same CRM, and one CRM failing does not stop the
other CRM.
"""

import asyncio
import time
from collections.abc import Sequence

import httpx
import structlog

from crm_sync.config import Settings, get_settings
from crm_sync.connectors.auth.oauth2 import OAuth2Manager, OAuth2Provider
from crm_sync.connectors.base import BaseCRMClient
from crm_sync.connectors.sources.crm.hubspot import HubSpotClient
from crm_sync.connectors.sources.crm.zoho import ZohoClient
from crm_sync.connectors.sources.warehouse.bigquery import ConversationSummaryReader
from crm_sync.identity.resolution import ContactResolutionService
from crm_sync.identity.types import CRMCredentials
from crm_sync.kernel.errors import CRMSyncError
from crm_sync.monitoring import get_metrics
from crm_sync.sync.models import (
    ChatSummary,
    ContactUpdate,
    CRMSyncReport,
    CRMType,
    SyncReport,
    WorkspaceChats,
    WorkspaceCredentials,
    WorkspaceSyncReport,
    phone_from_chat_id,
)

logger = structlog.get_logger()

__all__ = [
    "CRMSyncRunner",
    "group_by_workspace",
    "phone_from_chat_id",
    "run_sync",
]


def group_by_workspace(
    chats: Sequence[ChatSummary],
    workspaces: Sequence[WorkspaceCredentials],
) -> list[WorkspaceChats]:
    """Attach each chat to the workspace whose id equals the chat's uid.

    Workspaces with no chats are kept (with an empty list); chats of unknown
    workspaces are dropped.
    """
    grouped = {workspace.workspace_id: WorkspaceChats(workspace=workspace) for workspace in workspaces}
    for chat in chats:
        entry = grouped.get(chat.uid)
        if entry is not None:
            entry.chats.append(chat)
    return list(grouped.values())


class CRMSyncRunner:
    """Syncs the chats of every workspace connected to one CRM."""

    def __init__(
        self,
        crm: CRMType,
        http_client: httpx.AsyncClient,
        *,
        settings: Settings | None = None,
        reader: ConversationSummaryReader | None = None,
        oauth_manager: OAuth2Manager | None = None,
    ):
        self.crm = crm
        self.settings = settings or get_settings()
        self._http = http_client
        self._reader = reader
        self._oauth = oauth_manager

    def client_for(self, workspace: WorkspaceCredentials) -> BaseCRMClient:
        if self.crm == CRMType.HUBSPOT:
            return HubSpotClient.from_settings(self._http, self.settings)
        return ZohoClient.from_settings(self._http, self.settings, api_domain=workspace.api_domain)

    def resolution_service(self) -> ContactResolutionService:
        provider = OAuth2Provider(self.crm.value)
        refresher = None
        if self._oauth is not None and self._oauth.is_configured(provider):
            refresher = self._oauth.token_refresher(provider)
        return ContactResolutionService(
            chunk_delay_seconds=self.settings.search_chunk_delay_seconds,
            token_refresher=refresher,
        )

    async def sync_workspace(self, workspace_chats: WorkspaceChats) -> WorkspaceSyncReport:
        """Resolve the workspace's chats to contacts and write their metrics."""
        workspace = workspace_chats.workspace
        chats = workspace_chats.chats
        report = WorkspaceSyncReport(workspace_id=workspace.workspace_id, crm=self.crm, chats=len(chats))

        if not workspace.access_token:
            report.error = "No access token for workspace"
            return report
        if not chats:
            return report

        log = logger.bind(crm=self.crm.value, workspace_id=workspace.workspace_id)
        client = self.client_for(workspace)
        credentials = CRMCredentials(
            access_token=workspace.access_token,
            refresh_token=workspace.refresh_token,
        )

        resolution = await self.resolution_service().resolve_detailed(
            [chat.phone for chat in chats],
            client,
            credentials,
        )
        report.failed_chunks = [chunk.index for chunk in resolution.failed_chunks]

        updates: list[ContactUpdate] = []
        for chat in chats:
            match = resolution.matches.get(chat.phone)
            chat.contact_id = match.contact_id if match else None
            if match:
                updates.append(ContactUpdate(contact_id=match.contact_id, chat=chat))
        report.matched = len(updates)

        if updates:
            summary = await client.update_contacts_batch(credentials.access_token, updates)
            report.updated = summary.total_updated

        log.info(
            "Workspace synced",
            chats=report.chats,
            matched=report.matched,
            updated=report.updated,
            failed_chunks=len(report.failed_chunks),
        )
        return report

    async def sync_crm(self, workspaces: Sequence[WorkspaceCredentials]) -> CRMSyncReport:
        """Read the warehouse for every workspace of this CRM and sync each one."""
        workspaces = [workspace for workspace in workspaces if workspace.crm == self.crm]
        report = CRMSyncReport(crm=self.crm, status="fulfilled")
        if not workspaces:
            return report

        reader = self._reader or ConversationSummaryReader(self.settings)
        chats = await reader.fetch([workspace.workspace_id for workspace in workspaces])
        logger.info("Warehouse chats loaded", crm=self.crm.value, chats=len(chats), workspaces=len(workspaces))

        for workspace_chats in group_by_workspace(chats, workspaces):
            try:
                report.workspaces.append(await self.sync_workspace(workspace_chats))
            except CRMSyncError as exc:
                logger.warning(
                    "Workspace sync failed",
                    crm=self.crm.value,
                    workspace_id=workspace_chats.workspace.workspace_id,
                    code=exc.code,
                    error=exc.message,
                )
                report.workspaces.append(
                    WorkspaceSyncReport(
                        workspace_id=workspace_chats.workspace.workspace_id,
                        crm=self.crm,
                        chats=len(workspace_chats.chats),
                        error=exc.message,
                    )
                )
        return report


def _enabled_crms(settings: Settings) -> dict[CRMType, bool]:
    return {
        CRMType.HUBSPOT: settings.enable_hubspot_sync,
        CRMType.ZOHO: settings.enable_zoho_sync,
    }


async def run_sync(
    workspaces: Sequence[WorkspaceCredentials],
    http_client: httpx.AsyncClient,
    *,
    settings: Settings | None = None,
    reader: ConversationSummaryReader | None = None,
    oauth_manager: OAuth2Manager | None = None,
) -> SyncReport:
    """
    Sync every enabled CRM concurrently.

    A CRM whose sync raises is reported as `rejected` with the error
    message; the run itself still completes.
    """
    settings = settings or get_settings()
    enabled = [crm for crm, on in _enabled_crms(settings).items() if on]

    if not enabled:
        logger.info("No CRM syncs enabled")
        return SyncReport(
            message="No CRM syncs enabled",
            results={crm.value: "disabled" for crm in CRMType},
        )

    started = time.monotonic()
    logger.info("Starting sync", crms=[crm.value for crm in enabled], workspaces=len(workspaces))

    runners = [
        CRMSyncRunner(crm, http_client, settings=settings, reader=reader, oauth_manager=oauth_manager)
        for crm in enabled
    ]
    outcomes = await asyncio.gather(
        *(runner.sync_crm(workspaces) for runner in runners),
        return_exceptions=True,
    )

    report = SyncReport(message="Data sync process completed")
    metrics = get_metrics()
    for crm in CRMType:
        report.results[crm.value] = "disabled"

    for crm, outcome in zip(enabled, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error("CRM sync failed", crm=crm.value, error=str(outcome))
            report.results[crm.value] = "rejected"
            report.errors.append({"crm": crm.value, "error": str(outcome)})
            report.reports[crm.value] = CRMSyncReport(crm=crm, status="rejected", error=str(outcome))
        else:
            report.results[crm.value] = "fulfilled"
            report.reports[crm.value] = outcome
        metrics.track_sync_run(crm.value, report.results[crm.value])

    report.duration_seconds = round(time.monotonic() - started, 2)
    logger.info(
        "Sync completed",
        duration_seconds=report.duration_seconds,
        results=report.results,
    )
    return report
