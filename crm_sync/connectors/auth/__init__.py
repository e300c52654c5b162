"""CRM OAuth2 token refresh."""

from .oauth2 import (
    OAuth2Manager,
    OAuth2Provider,
    OAuth2ProviderConfig,
    OAuth2Tokens,
    build_oauth_manager,
)

__all__ = [
    "OAuth2Manager",
    "OAuth2Provider",
    "OAuth2ProviderConfig",
    "OAuth2Tokens",
    "build_oauth_manager",
]
