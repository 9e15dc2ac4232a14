"""Merchant scraping system for Moroccan e-commerce sites.

This package provides:
- Offer and merchant profile types shared by every integration
- Base adapter classes for HTML merchants and product-search APIs
- Utility modules for fetching, challenge recovery, rate limiting and normalization
- Factory and registration of the default merchant roster
"""

from .base import (
    BaseAdapter,
    BaseScraperAdapter,
    BaseAPIAdapter,
    MerchantOffer,
    MerchantProfile,
)
from .factory import AdapterFactory
from .register_adapters import create_default_adapters, register_all_adapters

__all__ = [
    # Base classes
    "BaseAdapter",
    "BaseScraperAdapter",
    "BaseAPIAdapter",
    # Data structures
    "MerchantOffer",
    "MerchantProfile",
    # Factory
    "AdapterFactory",
    "create_default_adapters",
    "register_all_adapters",
]
