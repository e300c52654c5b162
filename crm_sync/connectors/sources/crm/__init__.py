"""CRM clients (HubSpot, Zoho)."""
