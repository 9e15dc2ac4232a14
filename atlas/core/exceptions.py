"""Custom exception classes for the application."""

from typing import Optional


class AtlasException(Exception):
    """Base exception for all Atlas errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(AtlasException):
    """Raised when merchant or integration configuration is malformed."""


class ScraperError(AtlasException):
    """Raised when a merchant page cannot be fetched or used."""

    def __init__(self, merchant_id: str, message: str, status_code: Optional[int] = None):
        self.merchant_id = merchant_id
        self.status_code = status_code
        super().__init__(message)


class FetchError(AtlasException):
    """Raised when an outbound request fails at the network level."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"Request to {url} failed: {message}")


class FetchTimeoutError(FetchError):
    """Raised when an outbound request exceeds its deadline."""

    def __init__(self, url: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(url, f"timeout after {timeout_ms}ms")


class IntegrationNotConfiguredError(AtlasException):
    """Raised when an optional integration is built without its credentials."""

    def __init__(self, integration: str):
        super().__init__(f"{integration} integration is not configured.")
