"""CRM and warehouse clients.

Keep imports in this module lightweight: importing `crm_sync.connectors.http`
runs this `__init__` first. Clients are available via lazy attribute access.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from crm_sync.connectors.sources.crm.hubspot import HubSpotClient as HubSpotClient
    from crm_sync.connectors.sources.crm.zoho import ZohoClient as ZohoClient
    from crm_sync.connectors.sources.warehouse.bigquery import (
        ConversationSummaryReader as ConversationSummaryReader,
    )


_LAZY_CLIENTS: dict[str, str] = {
    "HubSpotClient": "crm_sync.connectors.sources.crm.hubspot",
    "ZohoClient": "crm_sync.connectors.sources.crm.zoho",
    "ConversationSummaryReader": "crm_sync.connectors.sources.warehouse.bigquery",
}


def __getattr__(name: str):  # pragma: no cover
    module_path = _LAZY_CLIENTS.get(name)
    if not module_path:
        raise AttributeError(name)
    module = import_module(module_path)
    return getattr(module, name)


def __dir__():  # pragma: no cover
    return sorted(list(globals().keys()) + list(_LAZY_CLIENTS.keys()))


__all__ = list(_LAZY_CLIENTS)
