"""
OAuth2 token refresh for the CRM providers.

Only the refresh grant lives here. Workspaces arrive with tokens already
issued; when a CRM rejects one, the resolution layer asks this module for a
fresh access token.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from crm_sync.config import Settings, get_settings
from crm_sync.identity.resolution import TokenRefresher
from crm_sync.kernel.errors import AuthorizationError, ConfigurationError

logger = structlog.get_logger()

_STANDARD_TOKEN_KEYS = frozenset({"access_token", "refresh_token", "token_type", "expires_in", "scope"})


class OAuth2Provider(str, Enum):
    """Supported OAuth2 providers."""

    HUBSPOT = "hubspot"
    ZOHO = "zoho"


class OAuth2ProviderConfig(BaseModel):
    """Client credentials and token endpoint for one provider."""

    provider: OAuth2Provider
    client_id: str
    client_secret: str
    token_url: str


class OAuth2Tokens(BaseModel):
    """Token set returned by a provider's token endpoint."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_at: datetime | None = None
    scopes: list[str] = Field(default_factory=list)

    # Non-standard response keys, e.g. Zoho's api_domain
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_token_response(cls, data: dict[str, Any]) -> "OAuth2Tokens":
        if "access_token" not in data:
            raise ValueError(f"Token endpoint returned no access token: {data.get('error', 'unknown error')}")

        expires_at = None
        if data.get("expires_in") is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(data["expires_in"]))

        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            token_type=data.get("token_type") or "Bearer",
            expires_at=expires_at,
            scopes=(data.get("scope") or "").split(),
            extra={key: value for key, value in data.items() if key not in _STANDARD_TOKEN_KEYS},
        )


class OAuth2Manager:
    """
    Refreshes access tokens for configured providers.

    Example usage:
        manager = OAuth2Manager(http_client)
        manager.configure_provider(
            OAuth2Provider.HUBSPOT,
            client_id="...",
            client_secret="...",
            token_url="https://api.hubapi.com/oauth/v1/token",
        )
        tokens = await manager.refresh_tokens(OAuth2Provider.HUBSPOT, tokens)
    """

    def __init__(self, http_client: httpx.AsyncClient):
        self._http = http_client
        self._providers: dict[OAuth2Provider, OAuth2ProviderConfig] = {}

    def configure_provider(
        self,
        provider: OAuth2Provider,
        client_id: str,
        client_secret: str,
        token_url: str,
    ) -> None:
        self._providers[provider] = OAuth2ProviderConfig(
            provider=provider,
            client_id=client_id,
            client_secret=client_secret,
            token_url=token_url,
        )

    def is_configured(self, provider: OAuth2Provider) -> bool:
        return provider in self._providers

    async def refresh_tokens(
        self,
        provider: OAuth2Provider,
        tokens: OAuth2Tokens,
    ) -> OAuth2Tokens:
        """
        Exchange `tokens.refresh_token` for a new token set.

        Raises:
            ConfigurationError: the provider has no client credentials.
            AuthorizationError: there is no refresh token, or the provider
                refused the grant.
        """
        config = self._providers.get(provider)
        if config is None:
            raise ConfigurationError(
                message=f"Provider {provider.value} not configured",
                meta={"provider": provider.value},
            )
        if not tokens.refresh_token:
            raise AuthorizationError(message="No refresh token available", meta={"provider": provider.value})

        form = {
            "grant_type": "refresh_token",
            "refresh_token": tokens.refresh_token,
            "client_id": config.client_id,
            "client_secret": config.client_secret,
        }
        try:
            response = await self._http.post(config.token_url, data=form)
            response.raise_for_status()
            refreshed = OAuth2Tokens.from_token_response(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Token refresh failed", provider=provider.value, error=str(exc))
            raise AuthorizationError(
                message=f"Token refresh failed for {provider.value}: {exc}",
                code="crm.token_refresh_failed",
                meta={"provider": provider.value},
            ) from exc

        if not refreshed.refresh_token:
            refreshed.refresh_token = tokens.refresh_token

        logger.info("Tokens refreshed", provider=provider.value, expires_at=refreshed.expires_at)
        return refreshed

    def token_refresher(self, provider: OAuth2Provider) -> TokenRefresher:
        """Return a `refresh_token -> access_token` callable for one provider."""

        async def refresh(refresh_token: str) -> str:
            tokens = await self.refresh_tokens(
                provider,
                OAuth2Tokens(access_token="", refresh_token=refresh_token),
            )
            return tokens.access_token

        return refresh


def build_oauth_manager(
    http_client: httpx.AsyncClient,
    settings: Settings | None = None,
) -> OAuth2Manager:
    """OAuth2 manager configured for every provider with client credentials set."""
    settings = settings or get_settings()
    manager = OAuth2Manager(http_client)

    credentials = (
        (OAuth2Provider.HUBSPOT, settings.hubspot_client_id, settings.hubspot_client_secret, settings.hubspot_token_url),
        (OAuth2Provider.ZOHO, settings.zoho_client_id, settings.zoho_client_secret, settings.zoho_token_url),
    )
    for provider, client_id, client_secret, token_url in credentials:
        if client_id and client_secret:
            manager.configure_provider(
                provider,
                client_id=client_id,
                client_secret=client_secret,
                token_url=token_url,
            )

    return manager
