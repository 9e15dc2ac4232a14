"""Merchant-specific adapter implementations.

Each HTML merchant inherits from BaseScraperAdapter; the product-search API
integration inherits from BaseAPIAdapter.
"""

# Scraper adapters
from .electroplanet import ElectroplanetAdapter
from .jumia import JumiaAdapter
from .marjane import MarjaneAdapter
from .bim import BimAdapter
from .decathlon import DecathlonAdapter
from .hm import HmAdapter

# API adapters
from .google_products import GoogleProductsAdapter, GoogleProductsConfig

__all__ = [
    # Scraper adapters
    "ElectroplanetAdapter",
    "JumiaAdapter",
    "MarjaneAdapter",
    "BimAdapter",
    "DecathlonAdapter",
    "HmAdapter",
    # API adapters
    "GoogleProductsAdapter",
    "GoogleProductsConfig",
]
