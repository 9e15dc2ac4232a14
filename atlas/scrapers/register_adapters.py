"""Register the default merchant roster with an adapter factory.

Registration order is the order integrations run in and the order their
metrics are reported.
"""

from typing import List, Optional

import httpx
import structlog

from atlas.config import Settings, get_settings
from atlas.scrapers.base import BaseAdapter
from atlas.scrapers.factory import AdapterFactory
from atlas.scrapers.adapters import (
    ElectroplanetAdapter,
    JumiaAdapter,
    MarjaneAdapter,
    BimAdapter,
    DecathlonAdapter,
    HmAdapter,
    GoogleProductsAdapter,
)

logger = structlog.get_logger(__name__)

DEFAULT_ADAPTERS = [
    ("electroplanet", ElectroplanetAdapter),
    ("jumia", JumiaAdapter),
    ("marjane", MarjaneAdapter),
    ("bim", BimAdapter),
    ("decathlon", DecathlonAdapter),
    ("hm", HmAdapter),
]


def register_all_adapters(factory: AdapterFactory) -> None:
    """Register the HTML merchants, plus the product-search API when configured."""
    for merchant_id, adapter_class in DEFAULT_ADAPTERS:
        factory.register_adapter(merchant_id, adapter_class)

    if factory.settings.google_products_enabled:
        factory.register_adapter(GoogleProductsAdapter.id, GoogleProductsAdapter)
    else:
        logger.info("google_products_disabled", reason="missing_url_or_key")

    logger.info(
        "all_adapters_registered",
        count=len(factory.get_registered_merchants()),
        merchants=factory.get_registered_merchants(),
    )


def create_default_adapters(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[BaseAdapter]:
    """Build the default integrations list.

    Raises:
        ConfigurationError: If a merchant's search URL override is malformed
    """
    factory = AdapterFactory(settings=settings or get_settings(), transport=transport)
    register_all_adapters(factory)
    return factory.create_all()
