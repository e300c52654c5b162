"""
Zoho CRM Client

Contact search through Zoho's composite API (one search sub-request per
phone, up to five per call) and batched contact updates.
"""

import asyncio
from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from crm_sync.config import Settings, get_settings
from crm_sync.connectors.base import BaseCRMClient
from crm_sync.connectors.http import RetryPolicy
from crm_sync.identity.types import ChunkingMode, ChunkingPolicy, Contact, SearchChunk
from crm_sync.kernel.errors import AuthorizationError, ChunkRequestError
from crm_sync.monitoring import get_metrics
from crm_sync.sync.models import BatchUpdateSummary, ContactUpdate
from crm_sync.sync.properties import zoho_fields

logger = structlog.get_logger()

ZOHO_API_DOMAIN = "https://www.zohoapis.com"

ZOHO_PHONE_FIELDS: tuple[str, ...] = ("Phone", "Mobile")

# Zoho allows at most five sub-requests per composite call.
MAX_COMPOSITE_REQUESTS = 5

_CRITERIA_SPECIAL = ("\\", "(", ")", ",")


def escape_criteria_value(value: str) -> str:
    for char in _CRITERIA_SPECIAL:
        value = value.replace(char, f"\\{char}")
    return value


def build_criteria(variations: Sequence[str], fields: Sequence[str] = ZOHO_PHONE_FIELDS) -> str:
    """`(Phone:in:a,b) or (Mobile:in:a,b)` for one phone's variations."""
    joined = ",".join(escape_criteria_value(value) for value in variations)
    return " or ".join(f"({field}:in:{joined})" for field in fields)


class ZohoClient(BaseCRMClient):
    """Zoho CRM contact search and update."""

    name = "zoho"
    phone_fields = ZOHO_PHONE_FIELDS

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        api_domain: str = ZOHO_API_DOMAIN,
        retry_policy: RetryPolicy | None = None,
        search_chunk_size: int = MAX_COMPOSITE_REQUESTS,
        update_batch_size: int = 100,
        update_batch_delay_seconds: float = 0.2,
        property_prefix: str = "whatsapp",
    ):
        super().__init__(http_client, base_url=api_domain, retry_policy=retry_policy)
        self.chunking = ChunkingPolicy(
            mode=ChunkingMode.PER_PHONE,
            size=min(search_chunk_size, MAX_COMPOSITE_REQUESTS),
        )
        self.update_batch_size = update_batch_size
        self.update_batch_delay_seconds = update_batch_delay_seconds
        self.property_prefix = property_prefix

    @classmethod
    def from_settings(
        cls,
        http_client: httpx.AsyncClient,
        settings: Settings | None = None,
        api_domain: str | None = None,
    ) -> "ZohoClient":
        """Client for one workspace; `api_domain` overrides the default data center."""
        settings = settings or get_settings()
        return cls(
            http_client,
            api_domain=api_domain or settings.zoho_api_domain,
            retry_policy=RetryPolicy(
                max_attempts=settings.http_max_attempts,
                base_backoff=settings.http_base_backoff_seconds,
                max_backoff=settings.http_max_backoff_seconds,
            ),
            search_chunk_size=settings.zoho_search_chunk_size,
            update_batch_size=settings.crm_update_batch_size,
            update_batch_delay_seconds=settings.update_batch_delay_seconds,
            property_prefix=settings.crm_property_prefix,
        )

    def auth_headers(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Zoho-oauthtoken {access_token}"}

    # =========================================================================
    # Search
    # =========================================================================

    def build_composite_body(self, chunk: SearchChunk) -> dict[str, Any]:
        return {
            "rollback_on_fail": False,
            "parallel_execution": False,
            "__composite_requests": [
                {
                    "method": "GET",
                    "uri": "/crm/v2/Contacts/search",
                    "params": {"criteria": build_criteria(group, self.phone_fields)},
                }
                for group in chunk.groups
                if group
            ]
        }

    async def search_contacts(self, chunk: SearchChunk, access_token: str) -> list[Contact]:
        """Contacts found by every successful sub-request of the chunk."""
        body = self.build_composite_body(chunk)
        if not body["__composite_requests"]:
            return []

        data = await self.request_json(
            "POST",
            "/crm/v6/__composite_requests",
            access_token,
            operation="search",
            json=body,
        )

        contacts: list[Contact] = []
        for position, sub in enumerate(data.get("__composite_requests") or []):
            with self.decoding(operation="search"):
                response = (sub.get("details") or {}).get("response") or {}
                status_code = response.get("status_code")
            if status_code == 401:
                raise AuthorizationError(
                    message="zoho rejected the access token",
                    meta={"crm": self.name, "operation": "search", "sub_request": position},
                )
            if status_code != 200:
                # 204 is Zoho's "no records"; anything else is logged and skipped.
                if status_code != 204:
                    logger.warning(
                        "Zoho search sub-request failed",
                        sub_request=position,
                        status_code=status_code,
                    )
                continue
            with self.decoding(operation="search"):
                records = (response.get("body") or {}).get("data") or []
                contacts.extend(self._to_contact(record) for record in records)

        return contacts

    def _to_contact(self, record: dict[str, Any]) -> Contact:
        return Contact(
            id=str(record["id"]),
            fields={
                "Email": record.get("Email"),
                "First_Name": record.get("First_Name"),
                "Last_Name": record.get("Last_Name"),
                **{name: record.get(name) for name in self.phone_fields},
            },
            raw=record,
        )

    # =========================================================================
    # Updates
    # =========================================================================

    async def update_contacts_batch(
        self,
        access_token: str,
        updates: Sequence[ContactUpdate],
    ) -> BatchUpdateSummary:
        """Write chat metrics onto contacts; first update per contact wins."""
        by_contact: dict[str, ContactUpdate] = {}
        for update in updates:
            by_contact.setdefault(update.contact_id, update)
        unique = list(by_contact.values())

        summary = BatchUpdateSummary(total_processed=len(unique))
        metrics = get_metrics()

        for index, start in enumerate(range(0, len(unique), self.update_batch_size)):
            if index:
                await asyncio.sleep(self.update_batch_delay_seconds)
            batch = unique[start : start + self.update_batch_size]
            payload = {
                "data": [
                    {"id": update.contact_id, **zoho_fields(update.chat, self.property_prefix)}
                    for update in batch
                ]
            }
            try:
                data = await self.request_json(
                    "PUT",
                    "/crm/v2/Contacts",
                    access_token,
                    operation="batch_update",
                    json=payload,
                )
            except ChunkRequestError as exc:
                logger.warning("Zoho update batch failed", batch=index, error=exc.message)
                summary.failed_batches.append(index)
                metrics.track_updates(self.name, 0, len(batch))
                continue

            summary.results.append(data)
            summary.total_updated += len(batch)
            summary.batches_processed += 1
            metrics.track_updates(self.name, len(batch), 0)

        logger.info(
            "Zoho contacts updated",
            processed=summary.total_processed,
            updated=summary.total_updated,
            failed_batches=len(summary.failed_batches),
        )
        return summary
