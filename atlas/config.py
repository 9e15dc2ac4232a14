"""Application configuration via Pydantic Settings."""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    FRONTEND_URL: str = "http://localhost:5173"

    # Aggregation
    CACHE_BACKEND: str = "memory"  # 'memory' or 'redis'
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_TTL_SECONDS: int = 300
    CACHE_MAX_ENTRIES: int = 50
    RATE_LIMIT_MS: int = 500
    MAX_CONCURRENCY: int = 3
    ROTATE_USER_AGENTS: bool = False

    # Anti-bot solver selection
    MERCHANT_SOLVER_PROVIDER: Optional[str] = None
    SOLVER_TIMEOUT_MS: int = 30000

    # ScrapingBee rendering API
    SCRAPINGBEE_API_KEY: Optional[str] = None
    SCRAPINGBEE_BASE_URL: str = "https://app.scrapingbee.com/api/v1/"
    SCRAPINGBEE_RENDER_JS: str = "false"
    SCRAPINGBEE_COUNTRY_CODE: Optional[str] = None
    SCRAPINGBEE_PREMIUM_PROXY: Optional[str] = None
    SCRAPINGBEE_BLOCK_RESOURCES: Optional[str] = None

    # Bright Data collector
    BRIGHTDATA_COLLECTOR_URL: Optional[str] = None
    BRIGHTDATA_API_TOKEN: Optional[str] = None
    BRIGHTDATA_USERNAME: Optional[str] = None
    BRIGHTDATA_PASSWORD: Optional[str] = None

    # Custom solver endpoint
    MERCHANT_SOLVER_ENDPOINT: Optional[str] = None
    MERCHANT_SOLVER_API_KEY: Optional[str] = None

    # Simple Cloudflare solver fallback
    CLOUDFLARE_FALLBACK_URL: Optional[str] = None
    CLOUDFLARE_FALLBACK_API_KEY: Optional[str] = None
    CLOUDFLARE_FALLBACK_TIMEOUT_MS: Optional[int] = None

    # Google Products search API
    GOOGLE_PRODUCTS_API_URL: Optional[str] = None
    GOOGLE_PRODUCTS_API_KEY: Optional[str] = None
    GOOGLE_PRODUCTS_API_KEY_PARAM: str = "key"
    GOOGLE_PRODUCTS_API_KEY_HEADER: Optional[str] = None
    GOOGLE_PRODUCTS_SEARCH_ENGINE_ID: Optional[str] = None
    GOOGLE_PRODUCTS_COUNTRY: Optional[str] = None
    GOOGLE_PRODUCTS_LANGUAGE: Optional[str] = None
    GOOGLE_PRODUCTS_RESULTS_LIMIT: Optional[int] = None
    GOOGLE_PRODUCTS_TIMEOUT_MS: Optional[int] = None
    GOOGLE_PRODUCTS_DEFAULT_CURRENCY: str = "MAD"
    GOOGLE_PRODUCTS_MERCHANT_URL: str = "https://www.google.com/shopping"

    @field_validator(
        "CLOUDFLARE_FALLBACK_TIMEOUT_MS",
        "GOOGLE_PRODUCTS_RESULTS_LIMIT",
        "GOOGLE_PRODUCTS_TIMEOUT_MS",
        mode="before",
    )
    @classmethod
    def ignore_invalid_integers(cls, value):
        """Unparseable or empty numeric overrides behave as if unset."""
        if value is None or isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except ValueError:
            return None

    @field_validator("GOOGLE_PRODUCTS_DEFAULT_CURRENCY")
    @classmethod
    def uppercase_currency(cls, value: str) -> str:
        return value.upper()

    @property
    def google_products_enabled(self) -> bool:
        """The product search API needs both an endpoint and a key."""
        return bool(self.GOOGLE_PRODUCTS_API_URL and self.GOOGLE_PRODUCTS_API_KEY)


settings = Settings()


def get_settings() -> Settings:
    """Re-read settings from the environment.

    Used when building integrations so that tests and CLI runs pick up
    environment overrides made after import time.
    """
    return Settings()
