"""
Unit tests for the contact resolution service.

Tests chunking, per-chunk failure isolation and token refresh handling.
"""

import math
from unittest.mock import AsyncMock

import pytest

from crm_sync.identity.resolution import ContactResolutionService, build_chunks
from crm_sync.identity.types import (
    ChunkingMode,
    ChunkingPolicy,
    Contact,
    CRMCredentials,
    SearchChunk,
)
from crm_sync.kernel.errors import AuthorizationError, BatchFatalError, ChunkRequestError
from crm_sync.phone import generate_variations

pytestmark = pytest.mark.unit


class FakeSearcher:
    """Searcher returning contacts whose phone is among the chunk values."""

    name = "fake"
    phone_fields = ("phone",)

    def __init__(self, contacts=None, mode=ChunkingMode.POOL, size=10, failures=None):
        self.chunking = ChunkingPolicy(mode=mode, size=size)
        self.contacts = contacts or []
        self.failures = failures or {}
        self.calls: list[tuple[SearchChunk, str]] = []

    async def search_contacts(self, chunk, access_token):
        self.calls.append((chunk, access_token))
        failure = self.failures.get(len(self.calls))
        if failure is not None:
            raise failure
        values = set(chunk.values)
        return [c for c in self.contacts if c.fields.get("phone") in values]


@pytest.fixture
def service():
    return ContactResolutionService(chunk_delay_seconds=0)


@pytest.fixture
def credentials():
    return CRMCredentials(access_token="token-1", refresh_token="refresh-1")


# =============================================================================
# Chunking
# =============================================================================


class TestBuildChunks:
    def test_pool_chunks_bounded(self):
        phone_to_variations = {"a": ["1", "2", "3"], "b": ["4", "5"]}

        chunks = build_chunks(phone_to_variations, ChunkingPolicy(ChunkingMode.POOL, 2))

        assert [chunk.values for chunk in chunks] == [["1", "2"], ["3", "4"], ["5"]]
        assert [chunk.index for chunk in chunks] == [0, 1, 2]

    def test_per_phone_keeps_groups(self):
        phone_to_variations = {p: [f"{p}-x", f"{p}-y"] for p in "abcdefg"}

        chunks = build_chunks(phone_to_variations, ChunkingPolicy(ChunkingMode.PER_PHONE, 5))

        assert len(chunks) == 2
        assert len(chunks[0].groups) == 5
        assert chunks[1].groups == (("f-x", "f-y"), ("g-x", "g-y"))

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValueError):
            ChunkingPolicy(ChunkingMode.POOL, 0)


# =============================================================================
# Resolution
# =============================================================================


class TestResolve:
    @pytest.mark.asyncio
    async def test_empty_input_makes_no_calls(self, service, credentials):
        searcher = FakeSearcher()

        result = await service.resolve([], searcher, credentials)

        assert result == {}
        assert searcher.calls == []

    @pytest.mark.asyncio
    async def test_chunk_count_is_ceiling(self, service, credentials):
        phones = ["14155552671", "447911123456", "5511987654321"]
        total = sum(len(generate_variations(p)) for p in phones)
        searcher = FakeSearcher(size=7)

        await service.resolve(phones, searcher, credentials)

        assert len(searcher.calls) == math.ceil(total / 7)
        assert all(chunk.size <= 7 for chunk, _ in searcher.calls)

    @pytest.mark.asyncio
    async def test_resolves_matching_contacts(self, service, credentials):
        searcher = FakeSearcher(contacts=[Contact(id="c1", fields={"phone": "+14155552671"})], size=100)

        result = await service.resolve(["14155552671", "447911123456"], searcher, credentials)

        assert set(result) == {"14155552671"}
        assert result["14155552671"].contact_id == "c1"

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_other_chunks(self, service, credentials):
        phones = ["14155552671", "447911123456", "919876543210"]
        searcher = FakeSearcher(
            contacts=[
                Contact(id="us", fields={"phone": "+14155552671"}),
                Contact(id="uk", fields={"phone": "+447911123456"}),
                Contact(id="in", fields={"phone": "+919876543210"}),
            ],
            mode=ChunkingMode.PER_PHONE,
            size=1,
            failures={2: ChunkRequestError(message="boom")},
        )

        result = await service.resolve_detailed(phones, searcher, credentials)

        assert len(result.chunks) == 3
        assert [chunk.index for chunk in result.failed_chunks] == [1]
        assert set(result.matches) == {"14155552671", "919876543210"}

    @pytest.mark.asyncio
    async def test_duplicate_and_empty_phones_filtered(self, service, credentials):
        searcher = FakeSearcher(mode=ChunkingMode.PER_PHONE, size=5)

        await service.resolve(["14155552671", "", "14155552671", None], searcher, credentials)

        assert len(searcher.calls) == 1
        assert len(searcher.calls[0][0].groups) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("batch", [None, "14155552671", b"14155552671", 42])
    async def test_invalid_batch_is_fatal(self, service, credentials, batch):
        with pytest.raises(BatchFatalError) as exc_info:
            await service.resolve(batch, FakeSearcher(), credentials)

        assert exc_info.value.code == "sync.invalid_phone_batch"

    @pytest.mark.asyncio
    async def test_delay_between_chunks_only(self, credentials, no_sleep):
        service = ContactResolutionService(chunk_delay_seconds=0.2)
        searcher = FakeSearcher(mode=ChunkingMode.PER_PHONE, size=1)

        await service.resolve(["14155552671", "447911123456", "919876543210"], searcher, credentials)

        assert no_sleep == [0.2, 0.2]


class TestTokenRefresh:
    @pytest.mark.asyncio
    async def test_refreshes_and_retries_once(self, credentials):
        refresher = AsyncMock(return_value="token-2")
        service = ContactResolutionService(chunk_delay_seconds=0, token_refresher=refresher)
        searcher = FakeSearcher(
            contacts=[Contact(id="c1", fields={"phone": "+14155552671"})],
            mode=ChunkingMode.PER_PHONE,
            size=1,
            failures={1: AuthorizationError()},
        )

        result = await service.resolve_detailed(["14155552671", "447911123456"], searcher, credentials)

        refresher.assert_awaited_once_with("refresh-1")
        assert [token for _, token in searcher.calls] == ["token-1", "token-2", "token-2"]
        assert result.chunks[0].refreshed is True
        assert result.matches["14155552671"].contact_id == "c1"
        assert credentials.access_token == "token-2"

    @pytest.mark.asyncio
    async def test_no_refresh_path_is_fatal(self, service):
        searcher = FakeSearcher(failures={1: AuthorizationError()})

        with pytest.raises(BatchFatalError) as exc_info:
            await service.resolve(["14155552671"], searcher, CRMCredentials(access_token="t"))

        assert exc_info.value.code == "crm.unauthorized_no_refresh"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_refresh_token_skips_chunk(self):
        refresher = AsyncMock()
        service = ContactResolutionService(chunk_delay_seconds=0, token_refresher=refresher)
        original = AuthorizationError()
        searcher = FakeSearcher(mode=ChunkingMode.PER_PHONE, size=1, failures={1: original})

        result = await service.resolve_detailed(
            ["14155552671", "447911123456"],
            searcher,
            CRMCredentials(access_token="t"),
        )

        refresher.assert_not_awaited()
        assert result.chunks[0].error is original
        assert result.chunks[1].ok

    @pytest.mark.asyncio
    async def test_failed_refresh_skips_chunk(self, credentials):
        refresher = AsyncMock(side_effect=AuthorizationError(code="crm.token_refresh_failed"))
        service = ContactResolutionService(chunk_delay_seconds=0, token_refresher=refresher)
        original = AuthorizationError()
        searcher = FakeSearcher(mode=ChunkingMode.PER_PHONE, size=1, failures={1: original})

        result = await service.resolve_detailed(["14155552671", "447911123456"], searcher, credentials)

        assert result.chunks[0].error is original
        assert result.chunks[1].ok
        assert credentials.access_token == "token-1"

    @pytest.mark.asyncio
    async def test_retry_failure_recorded(self, credentials):
        refresher = AsyncMock(return_value="token-2")
        service = ContactResolutionService(chunk_delay_seconds=0, token_refresher=refresher)
        searcher = FakeSearcher(size=100, failures={1: AuthorizationError(), 2: ChunkRequestError()})

        result = await service.resolve_detailed(["14155552671"], searcher, credentials)

        assert len(searcher.calls) == 2
        assert isinstance(result.chunks[0].error, ChunkRequestError)
        assert result.chunks[0].refreshed is True
