"""
Base CRM client.

Shared request plumbing for the CRM clients: auth headers, retry policy,
and mapping of HTTP failures onto the typed chunk/authorization errors the
resolution service understands.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import httpx
import structlog

from crm_sync.connectors.http import RetryPolicy, request_with_retry
from crm_sync.identity.types import ChunkingPolicy, Contact, SearchChunk
from crm_sync.kernel.errors import AuthorizationError, ChunkRequestError

logger = structlog.get_logger()

_ERROR_BODY_LIMIT = 500


class BaseCRMClient(ABC):
    """
    Abstract CRM client.

    Subclasses define the CRM name, phone-bearing fields, chunking policy,
    auth header and the search call. The httpx client is injected and never
    closed here; its owner controls its lifetime.
    """

    name: str
    phone_fields: Sequence[str]
    chunking: ChunkingPolicy

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str,
        retry_policy: RetryPolicy | None = None,
    ):
        self._http = http_client
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy()

    @abstractmethod
    def auth_headers(self, access_token: str) -> dict[str, str]:
        """Authorization headers for a request."""

    @abstractmethod
    async def search_contacts(self, chunk: SearchChunk, access_token: str) -> list[Contact]:
        """Search contacts for one chunk of phone variations."""

    async def send(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send a request, retrying transient failures.

        Raises:
            AuthorizationError: the CRM answered 401.
            ChunkRequestError: transport failure after all retries.
        """
        headers = {**self.auth_headers(access_token), "Content-Type": "application/json"}
        try:
            response = await request_with_retry(
                self._http,
                method,
                f"{self.base_url}{path}",
                policy=self.retry_policy,
                crm=self.name,
                operation=operation,
                headers=headers,
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise ChunkRequestError(
                message=f"{self.name} {operation} request failed: {exc}",
                meta={"crm": self.name, "operation": operation},
            ) from exc

        if response.status_code == 401:
            raise AuthorizationError(
                message=f"{self.name} rejected the access token",
                meta={"crm": self.name, "operation": operation},
            )
        return response

    def check(self, response: httpx.Response, *, operation: str) -> None:
        """Raise ChunkRequestError for any non-2xx response."""
        if response.is_success:
            return
        raise ChunkRequestError(
            message=f"{self.name} {operation} failed with status {response.status_code}",
            meta={
                "crm": self.name,
                "operation": operation,
                "status_code": response.status_code,
                "body": response.text[:_ERROR_BODY_LIMIT],
            },
            upstream_status=response.status_code,
        )

    async def request_json(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        operation: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Send, check the status and decode the JSON body."""
        response = await self.send(method, path, access_token, operation=operation, **kwargs)
        self.check(response, operation=operation)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ChunkRequestError(
                message=f"{self.name} {operation} returned invalid JSON",
                meta={"crm": self.name, "operation": operation},
            ) from exc

    @contextmanager
    def decoding(self, *, operation: str) -> Iterator[None]:
        """Raise ChunkRequestError when a 2xx payload lacks the expected shape."""
        try:
            yield
        except (KeyError, TypeError, AttributeError) as exc:
            raise ChunkRequestError(
                message=f"{self.name} {operation} returned a malformed payload: {exc!r}",
                meta={"crm": self.name, "operation": operation},
            ) from exc
