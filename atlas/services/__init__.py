"""Services module for aggregation and response caching.

Services orchestrate the merchant integrations: fan-out, failure isolation,
cross-merchant grouping and caching of the aggregated responses.
"""

from atlas.services.aggregator_service import ProductAggregator, group_offers, sort_products
from atlas.services.cache_service import (
    MemoryResponseCache,
    RedisResponseCache,
    ResponseCache,
    build_response_cache,
)

__all__ = [
    "ProductAggregator",
    "group_offers",
    "sort_products",
    "MemoryResponseCache",
    "RedisResponseCache",
    "ResponseCache",
    "build_response_cache",
]
