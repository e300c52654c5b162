"""
Sync Data Models

Warehouse rows, workspace credentials and the reports produced by a sync.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CRMType(str, Enum):
    """Supported CRM platforms."""

    HUBSPOT = "hubspot"
    ZOHO = "zoho"


class WorkspaceCredentials(BaseModel):
    """One workspace connected to a CRM."""

    workspace_id: str
    crm: CRMType
    access_token: str | None = None
    refresh_token: str | None = None
    # Zoho data-center domain, e.g. https://www.zohoapis.eu
    api_domain: str | None = None


class ConversationAnalytics(BaseModel):
    """Per-chat message counters from the warehouse."""

    model_config = ConfigDict(extra="allow")

    total_messages: int = 0
    messages_received: int = 0
    messages_sent: int = 0
    number_of_follow_ups: int = 0


def phone_from_chat_id(chat_id: str) -> str:
    """`14155552671@c.us` -> `14155552671`."""
    return chat_id.split("@", 1)[0]


class ChatSummary(BaseModel):
    """One row of the warehouse conversation summary table."""

    uid: str
    org_id: str | None = None
    chat_id: str
    analytics: ConversationAnalytics = Field(default_factory=ConversationAnalytics)
    average_response_time: float | str | None = None
    first_response_time: float | str | None = None
    time_since_last_client_message: float | str | None = None
    last_message_from: str | None = None
    client_replied: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    contact_id: str | None = None

    @field_validator("uid", "org_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @field_validator("analytics", mode="before")
    @classmethod
    def _decode_analytics(cls, value: Any) -> Any:
        # JSON columns come back as strings, STRUCT columns as dicts.
        if isinstance(value, str):
            return json.loads(value) if value else {}
        return value or {}

    @property
    def phone(self) -> str:
        return phone_from_chat_id(self.chat_id)


class WorkspaceChats(BaseModel):
    """All chats of one workspace, with the credentials to sync them."""

    workspace: WorkspaceCredentials
    chats: list[ChatSummary] = Field(default_factory=list)


@dataclass(frozen=True)
class ContactUpdate:
    """Metrics of one chat to be written onto one CRM contact."""

    contact_id: str
    chat: ChatSummary


class BatchUpdateSummary(BaseModel):
    """Outcome of a batched contact update."""

    total_processed: int = 0
    total_updated: int = 0
    batches_processed: int = 0
    failed_batches: list[int] = Field(default_factory=list)
    results: list[dict[str, Any]] = Field(default_factory=list)


class WorkspaceSyncReport(BaseModel):
    workspace_id: str
    crm: CRMType
    chats: int = 0
    matched: int = 0
    updated: int = 0
    failed_chunks: list[int] = Field(default_factory=list)
    error: str | None = None


class CRMSyncReport(BaseModel):
    crm: CRMType
    status: Literal["fulfilled", "rejected", "disabled"]
    workspaces: list[WorkspaceSyncReport] = Field(default_factory=list)
    error: str | None = None


class SyncReport(BaseModel):
    """Result of one sync run across every enabled CRM."""

    status: bool = True
    message: str
    duration_seconds: float = 0.0
    results: dict[str, str] = Field(default_factory=dict)
    errors: list[dict[str, str]] = Field(default_factory=list)
    reports: dict[str, CRMSyncReport] = Field(default_factory=dict)
