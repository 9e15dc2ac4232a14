"""Product aggregation across merchant integrations.

A search fans out to every integration under a global concurrency cap and a
per-merchant minimum interval, tolerates individual merchant failures, and
groups the surviving offers into products by slug. Results are cached per
normalized query.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from atlas.scrapers.base import BaseAdapter, MerchantOffer
from atlas.scrapers.utils.normalizer import normalize_query, slugify
from atlas.scrapers.utils.rate_limiter import KeyedRateLimiter
from atlas.schemas.aggregation import (
    AggregatedOffer,
    AggregatedProduct,
    AggregationMetadata,
    AggregationResponse,
    IntegrationError,
    IntegrationMetric,
    MerchantBrief,
)
from atlas.services.cache_service import MemoryResponseCache, ResponseCache, cache_key_for_query

logger = structlog.get_logger(__name__)

DEFAULT_CATEGORY = "Divers"
UNKNOWN_ERROR_MESSAGE = "Erreur inconnue"
SORT_OPTIONS = ("relevance", "price_asc", "price_desc", "name")


def is_valid_offer(offer: MerchantOffer) -> bool:
    """Offers must have a positive price and not be out of stock."""
    return offer.price > 0 and offer.is_available


def to_aggregated_offer(offer: MerchantOffer) -> AggregatedOffer:
    return AggregatedOffer(
        id=offer.offer_id,
        price=offer.price,
        total_price=offer.total_price,
        currency=offer.currency,
        shipping_fee=offer.shipping_fee,
        availability=offer.availability,
        is_available=offer.is_available,
        url=offer.url,
        merchant=MerchantBrief.model_validate(offer.merchant),
        created_at=offer.scraped_at,
        updated_at=offer.scraped_at,
    )


@dataclass
class _ProductBuilder:
    slug: str
    name: str
    created_at: datetime
    brand: Optional[str] = None
    category: Optional[str] = None
    images: List[str] = field(default_factory=list)
    offers: List[AggregatedOffer] = field(default_factory=list)

    def add(self, offer: MerchantOffer) -> None:
        self.name = self.name or offer.title
        self.brand = self.brand or offer.brand
        self.category = self.category or offer.category
        if offer.image and offer.image not in self.images:
            self.images.append(offer.image)
        if offer.scraped_at < self.created_at:
            self.created_at = offer.scraped_at
        self.offers.append(to_aggregated_offer(offer))

    def build(self) -> AggregatedProduct:
        offers = sorted(self.offers, key=lambda offer: offer.total_price)
        prices = [offer.price for offer in offers]
        category = self.category or DEFAULT_CATEGORY
        return AggregatedProduct(
            id=self.slug,
            slug=self.slug,
            name=self.name,
            brand=self.brand,
            category=category,
            category_slug=slugify(category),
            images=list(self.images),
            min_price=min(prices),
            max_price=max(prices),
            min_total_price=offers[0].total_price,
            offers_count=len(offers),
            offers=offers,
            created_at=self.created_at,
        )


def group_offers(offers: Sequence[MerchantOffer]) -> List[AggregatedProduct]:
    """Merge offers sharing a grouping slug into products.

    Products are ordered by cheapest total price, then name.
    """
    builders: Dict[str, _ProductBuilder] = {}

    for offer in offers:
        if not is_valid_offer(offer):
            continue

        slug = slugify(offer.slug or offer.title)
        if not slug:
            continue

        builder = builders.get(slug)
        if builder is None:
            builder = _ProductBuilder(slug=slug, name=offer.title, created_at=offer.scraped_at)
            builders[slug] = builder
        builder.add(offer)

    products = [builder.build() for builder in builders.values() if builder.offers]
    products.sort(key=lambda product: (product.min_total_price, product.name))
    return products


def sort_products(products: List[AggregatedProduct], sort: str = "relevance") -> List[AggregatedProduct]:
    """Apply a caller-facing sort on top of the aggregator's order.

    Args:
        products: Products in aggregator order
        sort: 'relevance' (unchanged), 'price_asc', 'price_desc' or 'name'

    Returns:
        New list; the input is left untouched

    Raises:
        ValueError: On an unknown sort option
    """
    if sort == "relevance":
        return list(products)
    if sort == "price_asc":
        return sorted(products, key=lambda product: product.min_total_price)
    if sort == "price_desc":
        return sorted(products, key=lambda product: product.min_total_price, reverse=True)
    if sort == "name":
        return sorted(products, key=lambda product: product.name.lower())
    raise ValueError(f"Unknown sort option: {sort} (expected one of {', '.join(SORT_OPTIONS)})")


@dataclass
class _IntegrationResult:
    offers: List[MerchantOffer]
    metric: IntegrationMetric
    error: Optional[IntegrationError] = None


class ProductAggregator:
    """Fans a query out to every integration and merges the results.

    At most ``max_concurrency`` integration calls are in flight at once,
    across all concurrent searches on this instance. Each merchant id also
    waits ``rate_limit_ms`` between two of its own calls.
    """

    def __init__(
        self,
        integrations: Sequence[BaseAdapter],
        cache: Optional[ResponseCache] = None,
        rate_limit_ms: int = 500,
        max_concurrency: int = 3,
        rate_limiter: Optional[KeyedRateLimiter] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """Initialize the aggregator.

        Args:
            integrations: Merchant integrations, in reporting order
            cache: Response cache; a 50-entry, 5-minute memory cache by default
            rate_limit_ms: Minimum interval between calls to one merchant
            max_concurrency: Global cap on simultaneous integration calls
            rate_limiter: Pre-built limiter (overrides rate_limit_ms)
            clock: Clock used for durations, in seconds
        """
        self.integrations = list(integrations)
        self.cache = cache if cache is not None else MemoryResponseCache()
        self.rate_limiter = rate_limiter or KeyedRateLimiter(rate_limit_ms)
        self.max_concurrency = max(1, max_concurrency)
        self._semaphore = asyncio.Semaphore(self.max_concurrency)
        self._clock = clock

    async def search(self, query: Optional[str]) -> AggregationResponse:
        """Search every integration for query.

        Returns:
            AggregationResponse; a cached copy with from_cache=True when available
        """
        normalized_query = normalize_query(query or "")
        cache_key = cache_key_for_query(normalized_query)

        cached = await self.cache.get(cache_key)
        if cached is not None:
            cached.metadata.from_cache = True
            logger.info("aggregation_cache_hit", query=normalized_query)
            return cached

        started_at = self._clock()
        results = await asyncio.gather(
            *(self._execute_integration(integration, normalized_query) for integration in self.integrations)
        )

        offers: List[MerchantOffer] = []
        metrics: List[IntegrationMetric] = []
        errors: List[IntegrationError] = []
        for result in results:
            offers.extend(result.offers)
            metrics.append(result.metric)
            if result.error is not None:
                errors.append(result.error)

        products = group_offers(offers)
        response = AggregationResponse(
            products=products,
            errors=errors,
            metadata=AggregationMetadata(
                query=normalized_query,
                from_cache=False,
                took_ms=round((self._clock() - started_at) * 1000, 2),
                generated_at=datetime.now(timezone.utc),
                integrations=metrics,
            ),
        )

        logger.info(
            "aggregation_completed",
            query=normalized_query,
            products=len(products),
            errors=len(errors),
            took_ms=response.metadata.took_ms,
        )

        await self.cache.set(cache_key, response)
        return response

    async def list_products(self) -> AggregationResponse:
        """The full catalog: a search with the empty query."""
        return await self.search("")

    async def _execute_integration(self, integration: BaseAdapter, query: str) -> _IntegrationResult:
        async with self._semaphore:
            await self.rate_limiter.acquire(integration.id)
            started_at = self._clock()
            try:
                offers = await integration.search(query)
            except Exception as e:
                duration_ms = round((self._clock() - started_at) * 1000, 2)
                message = str(e) or UNKNOWN_ERROR_MESSAGE
                logger.warning(
                    "integration_failed",
                    merchant_id=integration.id,
                    error=message,
                    error_type=e.__class__.__name__,
                    duration_ms=duration_ms,
                )
                return _IntegrationResult(
                    offers=[],
                    metric=IntegrationMetric(
                        id=integration.id,
                        label=integration.label,
                        duration_ms=duration_ms,
                        offers=0,
                        status="rejected",
                        error=message,
                    ),
                    error=IntegrationError(
                        merchant_id=integration.id,
                        merchant_name=integration.label,
                        message=message,
                    ),
                )

        valid_offers = [offer for offer in offers if is_valid_offer(offer)]
        duration_ms = round((self._clock() - started_at) * 1000, 2)
        logger.debug(
            "integration_completed",
            merchant_id=integration.id,
            offers=len(valid_offers),
            duration_ms=duration_ms,
        )
        return _IntegrationResult(
            offers=valid_offers,
            metric=IntegrationMetric(
                id=integration.id,
                label=integration.label,
                duration_ms=duration_ms,
                offers=len(valid_offers),
                status="fulfilled",
            ),
        )
