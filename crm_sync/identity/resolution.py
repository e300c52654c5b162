"""
Contact Resolution Service

Resolves a batch of raw phone numbers to CRM contacts:

1. Variation generation per phone
2. Chunked, sequential CRM searches paced by a short delay
3. A single matching pass over every contact fetched

Per-chunk failures are recorded and skipped. Only structural input errors
and an access token rejection with no way to refresh it fail the call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Protocol

import structlog

from crm_sync.identity.matcher import match_contacts
from crm_sync.identity.types import (
    ChunkingMode,
    ChunkingPolicy,
    ChunkResult,
    Contact,
    CRMCredentials,
    PhoneToContactMap,
    ResolutionResult,
    SearchChunk,
)
from crm_sync.kernel.errors import (
    AuthorizationError,
    BatchFatalError,
    ChunkRequestError,
    CRMSyncError,
)
from crm_sync.monitoring import get_metrics
from crm_sync.phone.variations import generate_variations

logger = structlog.get_logger()

TokenRefresher = Callable[[str], Awaitable[str]]


class ContactSearcher(Protocol):
    """CRM-specific search collaborator."""

    name: str
    phone_fields: Sequence[str]
    chunking: ChunkingPolicy

    async def search_contacts(self, chunk: SearchChunk, access_token: str) -> list[Contact]:
        """Return the contacts matching any value in `chunk`.

        Raises AuthorizationError on a rejected token and ChunkRequestError
        on any other failure.
        """
        ...


def build_chunks(
    phone_to_variations: dict[str, list[str]],
    policy: ChunkingPolicy,
) -> list[SearchChunk]:
    """Cut the variation pool into bounded search requests."""
    chunks: list[SearchChunk] = []
    if policy.mode == ChunkingMode.POOL:
        pool = [value for variations in phone_to_variations.values() for value in variations]
        for start in range(0, len(pool), policy.size):
            chunks.append(
                SearchChunk(index=len(chunks), groups=(tuple(pool[start : start + policy.size]),))
            )
        return chunks

    groups = [tuple(variations) for variations in phone_to_variations.values() if variations]
    for start in range(0, len(groups), policy.size):
        chunks.append(SearchChunk(index=len(chunks), groups=tuple(groups[start : start + policy.size])))
    return chunks


class ContactResolutionService:
    """
    Resolves raw phones to contacts of one CRM.

    Holds no CRM client state: the searcher and credentials are passed per
    call, so one service can serve concurrent resolutions against different
    CRMs and workspaces.
    """

    def __init__(
        self,
        *,
        chunk_delay_seconds: float = 0.2,
        token_refresher: TokenRefresher | None = None,
    ):
        self.chunk_delay_seconds = chunk_delay_seconds
        self.token_refresher = token_refresher

    async def resolve(
        self,
        raw_phones: Iterable[str],
        searcher: ContactSearcher,
        credentials: CRMCredentials,
    ) -> PhoneToContactMap:
        """Map each resolvable raw phone to its contact."""
        result = await self.resolve_detailed(raw_phones, searcher, credentials)
        return result.matches

    async def resolve_detailed(
        self,
        raw_phones: Iterable[str],
        searcher: ContactSearcher,
        credentials: CRMCredentials,
    ) -> ResolutionResult:
        """Resolve phones and report the outcome of every search chunk."""
        phones = _valid_phones(raw_phones)
        if not phones:
            return ResolutionResult()

        try:
            phone_to_variations = {phone: sorted(generate_variations(phone)) for phone in phones}
            chunks = build_chunks(phone_to_variations, searcher.chunking)
        except CRMSyncError:
            raise
        except Exception as exc:
            raise BatchFatalError(
                message=f"Could not prepare {searcher.name} contact search: {exc}",
                meta={"crm": searcher.name},
            ) from exc

        logger.info(
            "Resolving phones to contacts",
            crm=searcher.name,
            phones=len(phones),
            chunks=len(chunks),
        )

        metrics = get_metrics()
        chunk_results: list[ChunkResult] = []
        for position, chunk in enumerate(chunks):
            if position:
                await asyncio.sleep(self.chunk_delay_seconds)
            chunk_result = await self._run_chunk(chunk, searcher, credentials)
            metrics.track_chunk(searcher.name, chunk_result.ok)
            chunk_results.append(chunk_result)

        contacts = [contact for chunk_result in chunk_results for contact in chunk_result.contacts]
        matches = match_contacts(phone_to_variations, contacts, searcher.phone_fields)
        metrics.track_matches(searcher.name, len(matches))

        result = ResolutionResult(matches=matches, chunks=chunk_results)
        logger.info(
            "Contact resolution finished",
            crm=searcher.name,
            contacts_fetched=len(contacts),
            matched=len(matches),
            failed_chunks=len(result.failed_chunks),
        )
        return result

    async def _run_chunk(
        self,
        chunk: SearchChunk,
        searcher: ContactSearcher,
        credentials: CRMCredentials,
    ) -> ChunkResult:
        try:
            contacts = await searcher.search_contacts(chunk, credentials.access_token)
        except AuthorizationError as exc:
            return await self._refresh_and_retry(chunk, searcher, credentials, exc)
        except ChunkRequestError as exc:
            logger.warning(
                "Search chunk failed, skipping",
                crm=searcher.name,
                chunk=chunk.index,
                error=exc.message,
            )
            return ChunkResult(index=chunk.index, size=chunk.size, error=exc)

        logger.debug("Search chunk completed", crm=searcher.name, chunk=chunk.index, found=len(contacts))
        return ChunkResult(index=chunk.index, size=chunk.size, contacts=contacts)

    async def _refresh_and_retry(
        self,
        chunk: SearchChunk,
        searcher: ContactSearcher,
        credentials: CRMCredentials,
        auth_error: AuthorizationError,
    ) -> ChunkResult:
        if self.token_refresher is None:
            raise BatchFatalError(
                message=f"{searcher.name} rejected the access token and no token refresher is configured",
                code="crm.unauthorized_no_refresh",
                status_code=401,
                meta={"crm": searcher.name, "chunk": chunk.index},
            ) from auth_error

        if not credentials.refresh_token:
            logger.warning(
                "Access token rejected and no refresh token supplied, skipping chunk",
                crm=searcher.name,
                chunk=chunk.index,
            )
            return ChunkResult(index=chunk.index, size=chunk.size, error=auth_error)

        try:
            credentials.access_token = await self.token_refresher(credentials.refresh_token)
        except CRMSyncError as exc:
            logger.warning(
                "Token refresh failed, skipping chunk",
                crm=searcher.name,
                chunk=chunk.index,
                error=exc.message,
            )
            return ChunkResult(index=chunk.index, size=chunk.size, error=auth_error)

        logger.info("Access token refreshed, retrying chunk", crm=searcher.name, chunk=chunk.index)
        try:
            contacts = await searcher.search_contacts(chunk, credentials.access_token)
        except (AuthorizationError, ChunkRequestError) as exc:
            logger.warning(
                "Search chunk failed after token refresh, skipping",
                crm=searcher.name,
                chunk=chunk.index,
                error=exc.message,
            )
            return ChunkResult(index=chunk.index, size=chunk.size, error=exc, refreshed=True)

        return ChunkResult(index=chunk.index, size=chunk.size, contacts=contacts, refreshed=True)


def _valid_phones(raw_phones: Iterable[str]) -> list[str]:
    """Non-empty string phones, deduplicated in input order."""
    if raw_phones is None or isinstance(raw_phones, (str, bytes)) or not isinstance(raw_phones, Iterable):
        raise BatchFatalError(
            message="Phone batch must be a collection of phone strings",
            code="sync.invalid_phone_batch",
            status_code=422,
            meta={"type": type(raw_phones).__name__},
        )
    phones = dict.fromkeys(phone for phone in raw_phones if phone and isinstance(phone, str))
    return list(phones)
