"""WhatsApp conversation analytics sync to HubSpot and Zoho."""

__version__ = "0.1.0"
