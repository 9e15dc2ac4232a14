"""Factory for creating and configuring merchant adapter instances."""

from typing import Dict, List, Optional, Type

import httpx
import structlog

from atlas.config import Settings, get_settings
from atlas.scrapers.base import BaseAdapter, BaseAPIAdapter, BaseScraperAdapter
from atlas.scrapers.utils.challenge import build_cloudflare_fallback
from atlas.scrapers.utils.http import HttpFetcher
from atlas.scrapers.utils.resolvers import build_challenge_resolver


logger = structlog.get_logger(__name__)


class AdapterFactory:
    """Creates adapters and injects the shared HttpFetcher.

    The challenge resolver and simple solver fallback are selected once,
    when the factory is built, and shared by every HTML adapter.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the adapter factory.

        Args:
            settings: Application settings; re-read from the environment when omitted
            transport: Optional httpx transport shared by every outbound call (tests)
        """
        self.settings = settings or get_settings()
        self.transport = transport

        resolver = build_challenge_resolver(self.settings, transport=transport)
        fallback = build_cloudflare_fallback(self.settings, transport=transport)
        self.fetcher = HttpFetcher(
            resolver=resolver,
            fallback=fallback,
            rotate_user_agent=self.settings.ROTATE_USER_AGENTS,
            transport=transport,
        )
        logger.info(
            "adapter_factory_initialized",
            resolver=resolver.name if resolver else None,
            simple_fallback=fallback is not None,
        )

        # Registry of adapter classes, in registration order
        self._adapter_registry: Dict[str, Type[BaseAdapter]] = {}

    def register_adapter(self, merchant_id: str, adapter_class: Type[BaseAdapter]) -> None:
        """Register an adapter class for a merchant.

        Args:
            merchant_id: Merchant identifier (e.g., "jumia")
            adapter_class: Adapter class (must inherit from BaseAdapter)
        """
        if not issubclass(adapter_class, BaseAdapter):
            raise ValueError(f"Adapter class must inherit from BaseAdapter: {adapter_class}")

        self._adapter_registry[merchant_id] = adapter_class
        logger.debug("adapter_registered", merchant_id=merchant_id, adapter_type=adapter_class.adapter_type)

    def create_adapter(self, merchant_id: str) -> Optional[BaseAdapter]:
        """Create and configure an adapter instance.

        Args:
            merchant_id: Merchant identifier

        Returns:
            Configured adapter instance, or None if not registered

        Raises:
            ConfigurationError: If the merchant's environment overrides are malformed
        """
        adapter_class = self._adapter_registry.get(merchant_id)
        if not adapter_class:
            logger.warning("adapter_not_found", merchant_id=merchant_id)
            return None

        if issubclass(adapter_class, BaseScraperAdapter):
            adapter = adapter_class(fetcher=self.fetcher)
        elif issubclass(adapter_class, BaseAPIAdapter):
            adapter = adapter_class.from_settings(self.settings, transport=self.transport)
        else:
            adapter = adapter_class()

        logger.debug("adapter_created", merchant_id=merchant_id, adapter_type=adapter.adapter_type)
        return adapter

    def create_all(self) -> List[BaseAdapter]:
        """Instantiate every registered adapter in registration order."""
        adapters = []
        for merchant_id in self._adapter_registry:
            adapter = self.create_adapter(merchant_id)
            if adapter is not None:
                adapters.append(adapter)
        return adapters

    def get_registered_merchants(self) -> List[str]:
        return list(self._adapter_registry.keys())

    def has_adapter(self, merchant_id: str) -> bool:
        return merchant_id in self._adapter_registry
