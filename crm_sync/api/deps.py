"""Request-scoped dependencies backed by application state."""

import httpx
from fastapi import Request

from crm_sync.config import get_settings
from crm_sync.connectors.auth.oauth2 import OAuth2Manager
from crm_sync.connectors.sources.warehouse.bigquery import ConversationSummaryReader


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_oauth_manager(request: Request) -> OAuth2Manager:
    return request.app.state.oauth_manager


def get_reader() -> ConversationSummaryReader:
    return ConversationSummaryReader(get_settings())
