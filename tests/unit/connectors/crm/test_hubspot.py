"""
Unit tests for the HubSpot client.
"""

import json

import httpx
import pytest

from crm_sync.connectors.http import RetryPolicy
from crm_sync.connectors.sources.crm.hubspot import HUBSPOT_PHONE_FIELDS, HubSpotClient
from crm_sync.identity.resolution import ContactResolutionService
from crm_sync.identity.types import ChunkingMode, CRMCredentials, SearchChunk
from crm_sync.kernel.errors import AuthorizationError, ChunkRequestError
from crm_sync.sync.models import ChatSummary, ContactUpdate
from crm_sync.sync.properties import property_names

pytestmark = pytest.mark.unit


def _client(http_client: httpx.AsyncClient, **kwargs) -> HubSpotClient:
    return HubSpotClient(
        http_client,
        base_url="https://hubspot.test",
        retry_policy=RetryPolicy(max_attempts=1),
        update_batch_delay_seconds=0,
        **kwargs,
    )


def _chat(chat_id: str = "14155552671@c.us") -> ChatSummary:
    return ChatSummary(
        uid="ws-1",
        chat_id=chat_id,
        analytics='{"total_messages": 5, "messages_received": 2, "messages_sent": 3}',
        average_response_time=12.5,
    )


# =============================================================================
# Search
# =============================================================================


class TestSearchContacts:
    def test_chunking_is_pooled(self):
        client = _client(httpx.AsyncClient())

        assert client.chunking.mode == ChunkingMode.POOL
        assert client.chunking.size == 100

    @pytest.mark.asyncio
    async def test_builds_filter_group_per_phone_field(self, make_http_client):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "results": [
                        {"id": "101", "properties": {"mobilephone": "(415) 555-2671", "email": "a@b.test"}},
                    ]
                },
            )

        async with make_http_client(handler) as http_client:
            contacts = await _client(http_client).search_contacts(
                SearchChunk(index=0, groups=(("+14155552671", "4155552671"),)),
                "token",
            )

        body = json.loads(requests[0].content)
        assert requests[0].url.path == "/crm/v3/objects/contacts/search"
        assert requests[0].headers["Authorization"] == "Bearer token"
        assert [group["filters"][0]["propertyName"] for group in body["filterGroups"]] == list(HUBSPOT_PHONE_FIELDS)
        assert all(group["filters"][0]["operator"] == "IN" for group in body["filterGroups"])
        assert body["filterGroups"][0]["filters"][0]["values"] == ["+14155552671", "4155552671"]
        assert body["limit"] == 100
        assert contacts[0].id == "101"
        assert contacts[0].fields["mobilephone"] == "(415) 555-2671"

    @pytest.mark.asyncio
    async def test_follows_pagination(self, make_http_client):
        pages = [
            {"results": [{"id": "1", "properties": {}}], "paging": {"next": {"after": "cursor-1"}}},
            {"results": [{"id": "2", "properties": {}}]},
        ]
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=pages[len(bodies) - 1])

        async with make_http_client(handler) as http_client:
            contacts = await _client(http_client).search_contacts(SearchChunk(0, (("1",),)), "token")

        assert [c.id for c in contacts] == ["1", "2"]
        assert "after" not in bodies[0]
        assert bodies[1]["after"] == "cursor-1"

    @pytest.mark.asyncio
    async def test_unauthorized_raises_authorization_error(self, make_http_client):
        async with make_http_client(lambda request: httpx.Response(401)) as http_client:
            with pytest.raises(AuthorizationError):
                await _client(http_client).search_contacts(SearchChunk(0, (("1",),)), "expired")

    @pytest.mark.asyncio
    async def test_server_error_raises_chunk_error(self, make_http_client):
        async with make_http_client(lambda request: httpx.Response(500, text="oops")) as http_client:
            with pytest.raises(ChunkRequestError) as exc_info:
                await _client(http_client).search_contacts(SearchChunk(0, (("1",),)), "token")

        assert exc_info.value.upstream_status == 500
        assert exc_info.value.meta["body"] == "oops"

    @pytest.mark.asyncio
    async def test_result_without_id_raises_chunk_error(self, make_http_client):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"results": [{"properties": {"phone": "+14155552671"}}]})

        async with make_http_client(handler) as http_client:
            with pytest.raises(ChunkRequestError) as exc_info:
                await _client(http_client).search_contacts(SearchChunk(0, (("1",),)), "token")

        assert "malformed" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_malformed_chunk_keeps_earlier_matches(self, make_http_client):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(
                    200,
                    json={"results": [{"id": "42", "properties": {"phone": "+14155552671"}}]},
                )
            return httpx.Response(200, json={"results": [{"properties": {"phone": "+14155552671"}}]})

        service = ContactResolutionService(chunk_delay_seconds=0)
        async with make_http_client(handler) as http_client:
            result = await service.resolve_detailed(
                ["14155552671"],
                _client(http_client, search_chunk_size=10),
                CRMCredentials(access_token="token"),
            )

        assert len(calls) == 2
        assert [chunk.index for chunk in result.failed_chunks] == [1]
        assert isinstance(result.failed_chunks[0].error, ChunkRequestError)
        assert result.matches["14155552671"].contact_id == "42"


# =============================================================================
# Custom properties
# =============================================================================


class TestEnsureCustomProperties:
    @pytest.mark.asyncio
    async def test_creates_group_and_all_properties(self, make_http_client):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            if request.method == "GET":
                return httpx.Response(200, json={"results": [{"name": "email"}]})
            return httpx.Response(201, json={})

        async with make_http_client(handler) as http_client:
            result = await _client(http_client).ensure_custom_properties("token")

        assert ("POST", "/crm/v3/properties/contacts/groups") in calls
        assert ("POST", "/crm/v3/properties/contacts/batch/create") in calls
        assert result.group_created is True
        assert result.created == property_names("whatsapp")

    @pytest.mark.asyncio
    async def test_creates_only_missing(self, make_http_client):
        names = property_names("whatsapp")
        created_inputs = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"results": [{"name": name} for name in names[:3]]})
            created_inputs.extend(json.loads(request.content)["inputs"])
            return httpx.Response(201, json={})

        async with make_http_client(handler) as http_client:
            result = await _client(http_client).ensure_custom_properties("token")

        assert result.group_created is False
        assert [item["name"] for item in created_inputs] == names[3:]
        assert result.existing == names[:3]

    @pytest.mark.asyncio
    async def test_all_present_makes_no_writes(self, make_http_client):
        methods = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(200, json={"results": [{"name": n} for n in property_names("whatsapp")]})

        async with make_http_client(handler) as http_client:
            result = await _client(http_client).ensure_custom_properties("token")

        assert methods == ["GET"]
        assert result.created == []


# =============================================================================
# Updates
# =============================================================================


class TestUpdateContactsBatch:
    @pytest.mark.asyncio
    async def test_dedupes_and_batches(self, make_http_client):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            bodies.append(body)
            return httpx.Response(200, json={"results": [{"id": item["id"]} for item in body["inputs"]]})

        updates = [ContactUpdate(str(i % 3), _chat()) for i in range(5)]

        async with make_http_client(handler) as http_client:
            summary = await _client(http_client, update_batch_size=2).update_contacts_batch("token", updates)

        assert summary.total_processed == 3
        assert summary.total_updated == 3
        assert summary.batches_processed == 2
        assert [[item["id"] for item in body["inputs"]] for body in bodies] == [["0", "1"], ["2"]]
        assert bodies[0]["inputs"][0]["properties"]["whatsapp_total_messages"] == 5

    @pytest.mark.asyncio
    async def test_creates_missing_properties_and_retries(self, make_http_client):
        attempts = {"update": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/batch/update"):
                attempts["update"] += 1
                if attempts["update"] == 1:
                    return httpx.Response(
                        400,
                        json={"category": "VALIDATION_ERROR", "message": "PROPERTY_DOESNT_EXIST"},
                    )
                return httpx.Response(200, json={"results": [{"id": "1"}]})
            if request.method == "GET":
                return httpx.Response(200, json={"results": []})
            return httpx.Response(201, json={})

        async with make_http_client(handler) as http_client:
            summary = await _client(http_client).update_contacts_batch("token", [ContactUpdate("1", _chat())])

        assert attempts["update"] == 2
        assert summary.total_updated == 1
        assert summary.failed_batches == []

    @pytest.mark.asyncio
    async def test_failed_batch_is_skipped(self, make_http_client):
        def handler(request: httpx.Request) -> httpx.Response:
            ids = [item["id"] for item in json.loads(request.content)["inputs"]]
            if "1" in ids:
                return httpx.Response(400, json={"category": "VALIDATION_ERROR"})
            return httpx.Response(200, json={"results": [{"id": i} for i in ids]})

        updates = [ContactUpdate("1", _chat()), ContactUpdate("2", _chat())]

        async with make_http_client(handler) as http_client:
            summary = await _client(http_client, update_batch_size=1).update_contacts_batch("token", updates)

        assert summary.failed_batches == [0]
        assert summary.total_updated == 1
