"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "test", "production"] = Field(default="development")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    # CRM toggles
    enable_hubspot_sync: bool = Field(default=True)
    enable_zoho_sync: bool = Field(default=True)

    # HubSpot
    hubspot_base_url: str = Field(default="https://api.hubapi.com")
    hubspot_client_id: str | None = Field(default=None)
    hubspot_client_secret: str | None = Field(default=None)
    hubspot_token_url: str = Field(default="https://api.hubapi.com/oauth/v1/token")
    hubspot_search_chunk_size: int = Field(default=100, ge=1)

    # Zoho
    zoho_api_domain: str = Field(default="https://www.zohoapis.com")
    zoho_client_id: str | None = Field(default=None)
    zoho_client_secret: str | None = Field(default=None)
    zoho_token_url: str = Field(default="https://accounts.zoho.com/oauth/v2/token")
    zoho_search_chunk_size: int = Field(default=5, ge=1)

    # Pacing
    search_chunk_delay_seconds: float = Field(default=0.2, ge=0)
    update_batch_delay_seconds: float = Field(default=0.2, ge=0)
    crm_update_batch_size: int = Field(default=100, ge=1)

    # HTTP
    http_timeout_seconds: float = Field(default=30.0)
    http_max_attempts: int = Field(default=3, ge=1)
    http_base_backoff_seconds: float = Field(default=1.0)
    http_max_backoff_seconds: float = Field(default=8.0)

    # Warehouse (BigQuery)
    bigquery_project: str | None = Field(default=None)
    bigquery_dataset: str = Field(default="whatsapp_analytics")
    bigquery_table: str = Field(default="conversation_summary")
    bigquery_credentials_path: str | None = Field(default=None)
    warehouse_workspace_batch_size: int = Field(default=25, ge=1)
    warehouse_batch_delay_seconds: float = Field(default=0.5, ge=0)

    # CRM custom properties
    crm_property_group: str = Field(default="whatsapp_analytics_properties")
    crm_property_group_label: str = Field(default="WhatsApp Analytics")
    crm_property_prefix: str = Field(default="whatsapp")

    @property
    def bigquery_table_ref(self) -> str:
        """Fully qualified `project.dataset.table` reference."""
        if self.bigquery_project:
            return f"{self.bigquery_project}.{self.bigquery_dataset}.{self.bigquery_table}"
        return f"{self.bigquery_dataset}.{self.bigquery_table}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
