"""
CRM property mapping.

Turns a chat summary into the custom contact properties written back to
each CRM, and defines the HubSpot property group those properties live in.
"""

from typing import Any

from crm_sync.sync.models import ChatSummary

# (suffix, label, type, fieldType)
_PROPERTY_SPECS: tuple[tuple[str, str, str, str], ...] = (
    ("total_messages", "Total Messages", "number", "number"),
    ("messages_received", "Messages Received", "number", "number"),
    ("messages_sent", "Messages Sent", "number", "number"),
    ("follow_ups", "Follow-ups", "number", "number"),
    ("messages_you_got", "Messages you got", "number", "number"),
    ("messages_you_sent", "Messages you sent", "number", "number"),
    ("first_response_time", "First Response Time", "string", "text"),
    ("average_response_time", "Average Response Time", "string", "text"),
    ("time_since_last_client_message", "Time Since Last Client Message", "string", "text"),
    ("last_message_send_by", "Last Message send by", "string", "text"),
    ("client_replied", "Client Replied", "string", "text"),
)


def property_names(prefix: str) -> list[str]:
    return [f"{prefix}_{suffix}" for suffix, *_ in _PROPERTY_SPECS]


def hubspot_property_definitions(prefix: str, group_name: str) -> list[dict[str, Any]]:
    """Inputs for HubSpot's `properties/contacts/batch/create`."""
    return [
        {
            "hidden": False,
            "label": label,
            "type": prop_type,
            "groupName": group_name,
            "name": f"{prefix}_{suffix}",
            "fieldType": field_type,
        }
        for suffix, label, prop_type, field_type in _PROPERTY_SPECS
    ]


def _metric_values(chat: ChatSummary) -> dict[str, Any]:
    analytics = chat.analytics
    client_replied = chat.client_replied or ("Yes" if analytics.messages_received > 0 else "No")
    values: dict[str, Any] = {
        "total_messages": analytics.total_messages,
        "messages_received": analytics.messages_received,
        "messages_sent": analytics.messages_sent,
        "follow_ups": analytics.number_of_follow_ups,
        "messages_you_got": analytics.messages_received,
        "messages_you_sent": analytics.messages_sent,
        "first_response_time": chat.first_response_time,
        "average_response_time": chat.average_response_time,
        "time_since_last_client_message": chat.time_since_last_client_message,
        "last_message_send_by": "Client" if chat.last_message_from == "contact" else "Employee",
        "client_replied": client_replied,
    }
    # Unknown values are left untouched on the CRM side.
    return {key: value for key, value in values.items() if value is not None}


def hubspot_properties(chat: ChatSummary, prefix: str) -> dict[str, Any]:
    """HubSpot contact properties for one chat."""
    return {f"{prefix}_{key}": value for key, value in _metric_values(chat).items()}


def zoho_fields(chat: ChatSummary, prefix: str) -> dict[str, Any]:
    """Zoho contact fields for one chat (API names are Title_Case)."""
    zoho_prefix = prefix[:1].upper() + prefix[1:]
    return {
        f"{zoho_prefix}_" + "_".join(part.capitalize() for part in key.split("_")): value
        for key, value in _metric_values(chat).items()
    }
