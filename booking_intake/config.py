"""
Configuration management using Pydantic Settings.
Loads environment variables from .env file with validation.
"""

from pathlib import Path
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent.parent / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Dispatch system (AUTOCAB)
    autocab_api_key: str = Field(
        default="",
        description="Subscription key for the AUTOCAB booking API"
    )
    autocab_base_url: str = Field(
        default="https://autocab-api.azure-api.net",
        description="Base URL of the AUTOCAB booking API"
    )
    autocab_customer_id: int = Field(default=97)
    default_account_reference: str = Field(
        default="SGH-SAGA",
        description="Used as yourReference2 when a booking carries no account"
    )
    company_name: str = Field(default="Cab & Co Canterbury")
    our_reference: str = Field(default="CabCo Assistant")

    # Google geocoding
    google_maps_api_key: str = Field(default="")
    google_geocode_url: str = Field(
        default="https://maps.googleapis.com/maps/api/geocode/json"
    )

    # Fireworks AI
    fireworks_api_key: str = Field(default="")
    fireworks_llm_model: str = Field(
        default="accounts/fireworks/models/llama-v3p3-70b-instruct",
        description="Model used for conversational booking extraction"
    )

    # Collaborator HTTP policy
    http_timeout_seconds: float = Field(default=8.0)
    http_max_retries: int = Field(default=2)
    http_backoff_seconds: float = Field(
        default=1.0,
        description="Base delay for exponential backoff between retries"
    )

    # Address resolution fallbacks
    fallback_latitude: float = Field(default=51.2802)
    fallback_longitude: float = Field(default=1.0789)
    default_zone_id: int = Field(default=1)
    default_zone_name: str = Field(default="Canterbury Center")
    default_zone_descriptor: str = Field(default="001")
    address_cache_ttl_seconds: float = Field(
        default=0,
        description="Seconds to cache resolved addresses; 0 disables caching"
    )

    # API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)

    # Logging
    log_level: str = Field(default="INFO")

    @property
    def autocab_configured(self) -> bool:
        return bool(self.autocab_api_key)

    @property
    def fireworks_configured(self) -> bool:
        return bool(self.fireworks_api_key and
                    self.fireworks_api_key != "your_fireworks_api_key_here")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
