"""
HTTP helpers for CRM clients.

A single retrying request function driven by a per-client `RetryPolicy`:
exponential backoff with jitter on throttling, 5xx and network errors.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass

import httpx
import structlog

from crm_sync.monitoring import get_metrics

logger = structlog.get_logger()


RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings for one CRM client."""

    max_attempts: int = 3
    base_backoff: float = 1.0
    max_backoff: float = 8.0
    retry_statuses: frozenset[int] = RETRY_STATUSES

    def backoff(self, attempt: int) -> float:
        delay = min(self.max_backoff, self.base_backoff * (2 ** (attempt - 1)))
        return delay + random.uniform(0, delay / 2)

    def delay_after(self, response: httpx.Response, attempt: int) -> float:
        """Server-requested delay when `Retry-After` is numeric, else backoff."""
        retry_after = response.headers.get("Retry-After")
        if retry_after is None:
            return self.backoff(attempt)
        try:
            return max(0.0, float(retry_after))
        except ValueError:
            return self.base_backoff

    def should_retry(self, response: httpx.Response, attempt: int) -> bool:
        return response.status_code in self.retry_statuses and attempt < self.max_attempts


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    policy: RetryPolicy | None = None,
    crm: str | None = None,
    operation: str | None = None,
    **kwargs,
) -> httpx.Response:
    """
    Send a request, retrying transient failures per `policy`.

    The final response is returned whatever its status; 401 and other
    non-retryable statuses come back on the first attempt. Network errors
    are re-raised once attempts run out.
    """
    policy = policy or RetryPolicy()
    metrics = get_metrics()

    attempt = 0
    while True:
        attempt += 1
        try:
            response = await client.request(method, url, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            if attempt >= policy.max_attempts:
                raise
            delay = policy.backoff(attempt)
            if crm:
                metrics.track_retry(crm, operation, "network", 0)
            logger.warning(
                "CRM request network error, retrying",
                crm=crm,
                operation=operation,
                attempt=attempt,
                delay=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)
            continue

        if not policy.should_retry(response, attempt):
            return response

        delay = policy.delay_after(response, attempt)
        if crm:
            metrics.track_retry(crm, operation, "status", response.status_code)
        logger.warning(
            "CRM request throttled or failed, retrying",
            crm=crm,
            operation=operation,
            status_code=response.status_code,
            attempt=attempt,
            delay=delay,
        )
        await asyncio.sleep(delay)
