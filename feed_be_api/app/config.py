"""
Configuration management for the Merchant Feed API.
"""

from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    cosmos_api_base_url: str = Field(
        default="http://localhost:8080",
        description="COSMOS product API base URL (without /cosmos suffix)"
    )
    cosmos_api_key: str = Field(default="")
    cosmos_timeout: float = 30.0
    redis_url: str = Field(
        default="redis://localhost:6379/0"
    )
    log_level: str = Field(
        default="INFO"
    )

    # Storefront identity used in feed channel metadata and item links
    site_name: str = "J Huang NYC"
    site_url: str = "https://jhuangnyc.com"
    site_description: str = "Shop for handmade goods"
    image_base_url: Optional[str] = None

    # Feed generation
    feed_products_per_page: int = 5000
    feed_batch_size: int = 100
    feed_fetch_page_size: int = 250
    feed_cache_ttl: int = 3600
    feed_progress_log_interval_ms: int = 10000
    price_currency: str = "USD"
    shipping_country: str = "US"
    shipping_service: str = "Standard"
    shipping_price: str = "9.99 USD"

    class Config:
        env_file = ".env"
        case_sensitive = False


_settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return _settings
