"""
HubSpot CRM Client

Searches contacts by phone variation and writes chat metrics back onto
matched contacts as custom properties.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from crm_sync.config import Settings, get_settings
from crm_sync.connectors.base import BaseCRMClient
from crm_sync.connectors.http import RetryPolicy
from crm_sync.identity.types import ChunkingMode, ChunkingPolicy, Contact, SearchChunk
from crm_sync.kernel.errors import ChunkRequestError
from crm_sync.monitoring import get_metrics
from crm_sync.sync.models import BatchUpdateSummary, ContactUpdate
from crm_sync.sync.properties import hubspot_properties, hubspot_property_definitions

logger = structlog.get_logger()

HUBSPOT_BASE_URL = "https://api.hubapi.com"

HUBSPOT_PHONE_FIELDS: tuple[str, ...] = (
    "phone",
    "mobilephone",
    "hs_searchable_calculated_phone_number",
    "hs_searchable_calculated_mobile_number",
    "hs_whatsapp_phone_number",
)

SEARCH_PROPERTIES: list[str] = ["email", "firstname", "lastname", *HUBSPOT_PHONE_FIELDS]

SEARCH_PAGE_LIMIT = 100
MAX_SEARCH_PAGES = 10

_MISSING_PROPERTY_MARKER = "PROPERTY_DOESNT_EXIST"


@dataclass
class PropertySetupResult:
    """Outcome of making sure the custom contact properties exist."""

    group_created: bool = False
    created: list[str] = field(default_factory=list)
    existing: list[str] = field(default_factory=list)


class HubSpotClient(BaseCRMClient):
    """
    HubSpot contact search and update.

    Search requests use one filter group per phone field, each with an IN
    filter over the chunk's variations; HubSpot ORs filter groups together.
    """

    name = "hubspot"
    phone_fields = HUBSPOT_PHONE_FIELDS

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str = HUBSPOT_BASE_URL,
        retry_policy: RetryPolicy | None = None,
        search_chunk_size: int = 100,
        update_batch_size: int = 100,
        update_batch_delay_seconds: float = 0.2,
        property_prefix: str = "whatsapp",
        property_group: str = "whatsapp_analytics_properties",
        property_group_label: str = "WhatsApp Analytics",
    ):
        super().__init__(http_client, base_url=base_url, retry_policy=retry_policy)
        self.chunking = ChunkingPolicy(mode=ChunkingMode.POOL, size=search_chunk_size)
        self.update_batch_size = update_batch_size
        self.update_batch_delay_seconds = update_batch_delay_seconds
        self.property_prefix = property_prefix
        self.property_group = property_group
        self.property_group_label = property_group_label

    @classmethod
    def from_settings(
        cls,
        http_client: httpx.AsyncClient,
        settings: Settings | None = None,
    ) -> "HubSpotClient":
        settings = settings or get_settings()
        return cls(
            http_client,
            base_url=settings.hubspot_base_url,
            retry_policy=RetryPolicy(
                max_attempts=settings.http_max_attempts,
                base_backoff=settings.http_base_backoff_seconds,
                max_backoff=settings.http_max_backoff_seconds,
            ),
            search_chunk_size=settings.hubspot_search_chunk_size,
            update_batch_size=settings.crm_update_batch_size,
            update_batch_delay_seconds=settings.update_batch_delay_seconds,
            property_prefix=settings.crm_property_prefix,
            property_group=settings.crm_property_group,
            property_group_label=settings.crm_property_group_label,
        )

    def auth_headers(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    # =========================================================================
    # Search
    # =========================================================================

    def build_search_body(self, values: Sequence[str], after: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {
            "filterGroups": [
                {"filters": [{"propertyName": prop, "operator": "IN", "values": list(values)}]}
                for prop in self.phone_fields
            ],
            "properties": SEARCH_PROPERTIES,
            "limit": SEARCH_PAGE_LIMIT,
        }
        if after:
            body["after"] = after
        return body

    async def search_contacts(self, chunk: SearchChunk, access_token: str) -> list[Contact]:
        """Every contact whose phone fields hold any value of the chunk."""
        values = chunk.values
        if not values:
            return []

        contacts: list[Contact] = []
        after: str | None = None
        for _ in range(MAX_SEARCH_PAGES):
            data = await self.request_json(
                "POST",
                "/crm/v3/objects/contacts/search",
                access_token,
                operation="search",
                json=self.build_search_body(values, after),
            )
            with self.decoding(operation="search"):
                contacts.extend(self._to_contact(item) for item in data.get("results") or [])
                after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break

        return contacts

    def _to_contact(self, item: dict[str, Any]) -> Contact:
        properties = item.get("properties") or {}
        return Contact(
            id=str(item["id"]),
            fields={key: properties.get(key) for key in SEARCH_PROPERTIES},
            raw=item,
        )

    # =========================================================================
    # Custom properties
    # =========================================================================

    async def ensure_custom_properties(self, access_token: str) -> PropertySetupResult:
        """
        Make sure the analytics properties exist.

        Nothing present: the group and every property are created. Some
        present: only the missing ones. All present: no writes.
        """
        result = PropertySetupResult()

        data = await self.request_json(
            "GET",
            "/crm/v3/properties/contacts",
            access_token,
            operation="list_properties",
        )
        existing = {prop.get("name") for prop in data.get("results", [])}

        definitions = hubspot_property_definitions(self.property_prefix, self.property_group)
        missing = [definition for definition in definitions if definition["name"] not in existing]
        result.existing = [
            definition["name"] for definition in definitions if definition["name"] in existing
        ]

        if missing and not result.existing:
            group_response = await self.send(
                "POST",
                "/crm/v3/properties/contacts/groups",
                access_token,
                operation="create_property_group",
                json={"name": self.property_group, "label": self.property_group_label},
            )
            # 409: the group outlived its properties.
            if group_response.status_code != 409:
                self.check(group_response, operation="create_property_group")
                result.group_created = True

        if missing:
            await self.request_json(
                "POST",
                "/crm/v3/properties/contacts/batch/create",
                access_token,
                operation="create_properties",
                json={"inputs": missing},
            )
            result.created = [definition["name"] for definition in missing]

        logger.info(
            "HubSpot custom properties ensured",
            group_created=result.group_created,
            created=len(result.created),
            existing=len(result.existing),
        )
        return result

    # =========================================================================
    # Updates
    # =========================================================================

    async def update_contacts_batch(
        self,
        access_token: str,
        updates: Sequence[ContactUpdate],
    ) -> BatchUpdateSummary:
        """
        Write chat metrics onto contacts in batches.

        A contact is updated once; the first update for an id wins. Failed
        batches are recorded and skipped.
        """
        by_contact: dict[str, ContactUpdate] = {}
        for update in updates:
            by_contact.setdefault(update.contact_id, update)
        unique = list(by_contact.values())
        summary = BatchUpdateSummary(total_processed=len(unique))
        if not unique:
            return summary

        batches = [
            unique[start : start + self.update_batch_size]
            for start in range(0, len(unique), self.update_batch_size)
        ]
        metrics = get_metrics()
        properties_ensured = False

        for index, batch in enumerate(batches):
            if index:
                await asyncio.sleep(self.update_batch_delay_seconds)

            inputs = [
                {"id": update.contact_id, "properties": hubspot_properties(update.chat, self.property_prefix)}
                for update in batch
            ]
            try:
                try:
                    data = await self._batch_update(access_token, inputs)
                except ChunkRequestError as exc:
                    if properties_ensured or _MISSING_PROPERTY_MARKER not in str(exc.meta.get("body", "")):
                        raise
                    logger.info("Custom properties missing, creating them", batch=index)
                    await self.ensure_custom_properties(access_token)
                    properties_ensured = True
                    data = await self._batch_update(access_token, inputs)
            except ChunkRequestError as exc:
                logger.warning("HubSpot update batch failed", batch=index, error=exc.message)
                summary.failed_batches.append(index)
                metrics.track_updates(self.name, 0, len(batch))
                continue

            results = data.get("results", [])
            summary.results.extend(results)
            summary.total_updated += len(results)
            summary.batches_processed += 1
            metrics.track_updates(self.name, len(results), 0)

        logger.info(
            "HubSpot contacts updated",
            processed=summary.total_processed,
            updated=summary.total_updated,
            failed_batches=len(summary.failed_batches),
        )
        return summary

    async def _batch_update(self, access_token: str, inputs: list[dict[str, Any]]) -> dict[str, Any]:
        return await self.request_json(
            "POST",
            "/crm/v3/objects/contacts/batch/update",
            access_token,
            operation="batch_update",
            json={"inputs": inputs},
        )
