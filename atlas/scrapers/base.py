"""Base merchant adapter interface.

All merchant integrations inherit from BaseAdapter and expose ``id``,
``label``, ``profile`` and ``search(query)``. HTML merchants inherit from
BaseScraperAdapter, which owns the shared fetch/parse pipeline; API
integrations inherit from BaseAPIAdapter.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Iterable, List, Optional, Set
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import httpx
import structlog
from bs4 import BeautifulSoup, Tag

from atlas.config import Settings
from atlas.core.exceptions import ScraperError
from atlas.scrapers.utils.http import HttpFetcher
from atlas.scrapers.utils.merchant_config import MerchantHttpConfig, resolve_merchant_config
from atlas.scrapers.utils.normalizer import (
    OUT_OF_STOCK,
    UNKNOWN,
    PriceNormalizer,
    parse_availability,
    slugify,
)

logger = structlog.get_logger(__name__)

PRODUCT_CARD_SELECTOR = "article.product-card"


@dataclass(frozen=True)
class MerchantProfile:
    """Identity of a merchant, created once from static configuration."""

    id: str
    name: str
    url: str
    logo_url: Optional[str] = None
    city: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MerchantOffer:
    """One scraped listing, as returned by every adapter."""

    offer_id: str  # "<merchant id>-<product id>"
    merchant: MerchantProfile
    product_id: str  # Merchant-local identifier
    slug: str  # Cross-merchant grouping key
    title: str
    price: Decimal
    currency: str = "MAD"
    url: str = ""
    brand: Optional[str] = None
    category: Optional[str] = None
    image: Optional[str] = None
    shipping_fee: Optional[Decimal] = None
    availability: str = UNKNOWN
    scraped_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.product_id:
            raise ValueError("product_id is required")
        if not self.title:
            raise ValueError("title is required")
        if self.price is None:
            raise ValueError("price is required")

    @property
    def total_price(self) -> Decimal:
        return self.price + (self.shipping_fee or Decimal("0"))

    @property
    def is_available(self) -> bool:
        return self.availability != OUT_OF_STOCK


class BaseAdapter(ABC):
    """Abstract base class for all merchant integrations (HTML and API)."""

    id: str = ""  # Must be overridden in subclass (e.g., "jumia")
    label: str = ""  # Display name (e.g., "Jumia")
    adapter_type: str = ""  # 'scraper' or 'api'

    def __init__(self):
        self.logger = logger.bind(adapter=self.id)

    @property
    @abstractmethod
    def profile(self) -> MerchantProfile:
        """Merchant identity attached to every offer."""
        pass

    @abstractmethod
    async def search(self, query: str) -> List[MerchantOffer]:
        """Search this merchant for offers.

        Args:
            query: Free-text user query

        Returns:
            List of MerchantOffer objects; empty for an empty query

        Raises:
            ScraperError: If the merchant answered with an unusable response
            FetchError: On network failure or timeout
        """
        pass


class BaseScraperAdapter(BaseAdapter):
    """Base class for merchants scraped from their search-results page.

    Subclasses declare ``PROFILE``, ``DEFAULT_CONFIG``, ``ITEM_SELECTOR`` and
    implement ``_parse_item``. The shared ``article.product-card`` markup is
    understood by every subclass.
    """

    adapter_type = "scraper"

    PROFILE: MerchantProfile
    DEFAULT_CONFIG: MerchantHttpConfig
    ITEM_SELECTOR: str = ""

    def __init__(
        self,
        config: Optional[MerchantHttpConfig] = None,
        fetcher: Optional[HttpFetcher] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize scraper adapter.

        Args:
            config: Explicit HTTP configuration; resolved from the
                environment on top of DEFAULT_CONFIG when omitted
            fetcher: Shared HttpFetcher (injected by the factory)
            sleep: Coroutine used for the configured politeness delay

        Raises:
            ConfigurationError: If the resolved search URL is malformed
        """
        super().__init__()
        self.config = config or resolve_merchant_config(self.id, self.DEFAULT_CONFIG)
        self.fetcher = fetcher or HttpFetcher()
        self._sleep = sleep

    @property
    def profile(self) -> MerchantProfile:
        return self.PROFILE

    def build_search_url(self, query: str) -> str:
        """Set the query parameter; static params never override URL params."""
        parts = urlsplit(self.config.search_url)
        params = dict(self.config.static_params)
        params.update(dict(parse_qsl(parts.query, keep_blank_values=True)))
        params[self.config.query_param] = query
        return urlunsplit(parts._replace(query=urlencode(params)))

    async def search(self, query: str) -> List[MerchantOffer]:
        query = (query or "").strip()
        if not query:
            return []

        if self.config.delay_ms:
            await self._sleep(self.config.delay_ms / 1000.0)

        url = self.build_search_url(query)
        self.logger.info("merchant_search_started", url=url)

        result = await self.fetcher.fetch(
            url,
            headers=self.config.headers,
            timeout_ms=self.config.timeout_ms,
            proxy_url=self.config.proxy_url,
        )

        if result.failed and not result.fallback_html:
            raise ScraperError(
                self.id,
                f"{self.label} responded with status {result.status_code}",
                status_code=result.status_code,
            )

        if result.fallback_html:
            self.logger.info("merchant_search_used_fallback", url=url)
        html = result.fallback_html or result.response.text

        offers = self.parse_offers(html, url)
        self.logger.info("merchant_search_completed", url=url, count=len(offers))
        return offers

    def parse_offers(self, html: str, page_url: str) -> List[MerchantOffer]:
        """Parse every candidate on a results page, skipping malformed ones."""
        soup = BeautifulSoup(html, "html.parser")
        offers: List[MerchantOffer] = []
        seen_ids: Set[str] = set()

        candidates = []
        if self.ITEM_SELECTOR:
            candidates.extend((item, self._parse_item) for item in soup.select(self.ITEM_SELECTOR))
        candidates.extend(
            (item, self._parse_product_card) for item in soup.select(PRODUCT_CARD_SELECTOR)
        )

        for item, parse in candidates:
            try:
                offer = parse(item, page_url)
            except (AttributeError, TypeError, ValueError) as e:
                self.logger.debug("candidate_skipped", error=str(e))
                continue
            if offer is None or offer.product_id in seen_ids:
                continue
            seen_ids.add(offer.product_id)
            offers.append(offer)

        return offers

    @abstractmethod
    def _parse_item(self, item: Tag, page_url: str) -> Optional[MerchantOffer]:
        """Parse one merchant-specific product container."""
        pass

    def _parse_product_card(self, item: Tag, page_url: str) -> Optional[MerchantOffer]:
        """Parse the shared ``article.product-card`` data-attribute convention."""
        shipping = item.get("data-shipping-fee")
        return self._build_offer(
            page_url,
            product_id=item.get("data-product-id"),
            title=self._text(item, ".product-title"),
            price=PriceNormalizer.parse_price(item.get("data-price")),
            slug_source=item.get("data-product-slug"),
            url=item.get("data-product-url"),
            brand=self._text(item, ".product-brand"),
            category=self._text(item, ".product-category"),
            image=self._image(item, "img"),
            currency=item.get("data-currency"),
            shipping_fee=PriceNormalizer.parse_price(shipping) if shipping else None,
            availability=parse_availability(item.get("data-availability")),
        )

    # Helpers shared by merchant parsers

    @staticmethod
    def _text(item: Tag, selector: str) -> Optional[str]:
        node = item.select_one(selector)
        if node is None:
            return None
        text = " ".join(node.get_text(" ", strip=True).split())
        return text or None

    @staticmethod
    def _first_attr(item: Tag, selectors: Iterable[str], attribute: str) -> Optional[str]:
        """First non-empty attribute value on item itself or a matching descendant."""
        value = item.get(attribute)
        if value:
            return value
        for selector in selectors:
            node = item.select_one(selector)
            if node is not None and node.get(attribute):
                return node.get(attribute)
        return None

    @staticmethod
    def _image(item: Tag, selector: str) -> Optional[str]:
        img = item.select_one(selector)
        if img is None:
            return None
        return img.get("data-src") or img.get("src") or None

    def _absolute_url(self, href: Optional[str], page_url: str) -> Optional[str]:
        """Resolve href against the page, then against the merchant home page."""
        if not href:
            return None
        href = href.strip()
        if href.startswith("//"):
            href = f"https:{href}"
        for base in (page_url, self.profile.url):
            try:
                resolved = urljoin(base, href)
            except ValueError:
                continue
            parts = urlsplit(resolved)
            if parts.scheme in ("http", "https") and parts.netloc:
                return resolved
        return None

    def _build_offer(
        self,
        page_url: str,
        product_id: Optional[str],
        title: Optional[str],
        price: Optional[Decimal],
        slug_source: Optional[str] = None,
        url: Optional[str] = None,
        brand: Optional[str] = None,
        category: Optional[str] = None,
        image: Optional[str] = None,
        currency: Optional[str] = None,
        shipping_fee: Optional[Decimal] = None,
        availability: str = UNKNOWN,
    ) -> Optional[MerchantOffer]:
        """Assemble an offer; None when id, title or price is missing."""
        product_id = (product_id or "").strip()
        title = (title or "").strip()
        if not product_id or not title or price is None:
            return None

        return MerchantOffer(
            offer_id=f"{self.id}-{product_id}",
            merchant=self.profile,
            product_id=product_id,
            slug=slugify(slug_source or title),
            title=title,
            price=price,
            currency=(currency or self.config.currency).strip().upper(),
            url=self._absolute_url(url, page_url) or self.profile.url,
            brand=brand or None,
            category=category or None,
            image=self._absolute_url(image, page_url),
            shipping_fee=shipping_fee,
            availability=availability,
        )


class BaseAPIAdapter(BaseAdapter):
    """Base class for API-based integrations.

    Provides an httpx client factory with an injectable transport.
    """

    adapter_type = "api"

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__()
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "BaseAPIAdapter":
        """Build the adapter from explicit settings rather than the environment."""
        return cls(transport=transport)

    def _client(self, timeout_ms: Optional[int] = None) -> httpx.AsyncClient:
        timeout = timeout_ms / 1000.0 if timeout_ms else 30.0
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)
