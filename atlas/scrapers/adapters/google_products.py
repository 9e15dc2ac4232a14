"""Google Products search API adapter.

Queries a configurable product-search endpoint (Google Programmable Search
or any compatible proxy) and maps its items into MerchantOffers. Enabled
only when GOOGLE_PRODUCTS_API_URL and GOOGLE_PRODUCTS_API_KEY are set.

Items mix merchants, so each offer carries a merchant profile derived from
the item's ``merchant`` block, and the output is sorted by total price.
"""

import re
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from atlas.config import Settings, get_settings
from atlas.core.exceptions import FetchTimeoutError, IntegrationNotConfiguredError, ScraperError
from atlas.scrapers.base import BaseAPIAdapter, MerchantOffer, MerchantProfile
from atlas.scrapers.utils.normalizer import (
    PriceNormalizer,
    normalize_text,
    parse_availability,
    slugify,
)

INTEGRATION_ID = "google-products"

DEFAULT_PROFILE = MerchantProfile(
    id=INTEGRATION_ID,
    name="Google Products",
    url="https://www.google.com/shopping",
    logo_url="https://www.google.com/images/branding/googlelogo/1x/googlelogo_color_272x92dp.png",
)

_CURRENCY_PATTERN = re.compile(r"[A-Z]{3}", re.IGNORECASE)


@dataclass(frozen=True)
class GoogleProductsConfig:
    api_url: str
    api_key: str
    api_key_param: str = "key"
    api_key_header: Optional[str] = None
    search_engine_id: Optional[str] = None
    country: Optional[str] = None
    language: Optional[str] = None
    results_limit: Optional[int] = None
    timeout_ms: Optional[int] = None
    default_currency: str = "MAD"
    merchant_url: str = DEFAULT_PROFILE.url

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["GoogleProductsConfig"]:
        """Build the config, or None when URL or key is missing."""
        if not settings.google_products_enabled:
            return None
        return cls(
            api_url=settings.GOOGLE_PRODUCTS_API_URL,
            api_key=settings.GOOGLE_PRODUCTS_API_KEY,
            api_key_param=settings.GOOGLE_PRODUCTS_API_KEY_PARAM or "key",
            api_key_header=settings.GOOGLE_PRODUCTS_API_KEY_HEADER or None,
            search_engine_id=settings.GOOGLE_PRODUCTS_SEARCH_ENGINE_ID or None,
            country=settings.GOOGLE_PRODUCTS_COUNTRY or None,
            language=settings.GOOGLE_PRODUCTS_LANGUAGE or None,
            results_limit=settings.GOOGLE_PRODUCTS_RESULTS_LIMIT or None,
            timeout_ms=settings.GOOGLE_PRODUCTS_TIMEOUT_MS or None,
            default_currency=settings.GOOGLE_PRODUCTS_DEFAULT_CURRENCY.upper(),
            merchant_url=settings.GOOGLE_PRODUCTS_MERCHANT_URL or DEFAULT_PROFILE.url,
        )


def _has_meaningful_content(query: str) -> bool:
    return bool(re.search(r"[a-z0-9]", normalize_text(query)))


def _to_currency(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        match = _CURRENCY_PATTERN.search(value.strip())
        if match:
            return match.group(0).upper()
        return fallback
    if isinstance(value, dict):
        currency = value.get("currency")
        if isinstance(currency, str) and currency.strip():
            return currency.strip().upper()
    return fallback


def _first_string(*candidates: Any) -> Optional[str]:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return None


class GoogleProductsAdapter(BaseAPIAdapter):
    """Google Products search API adapter.

    Requires GOOGLE_PRODUCTS_API_URL and GOOGLE_PRODUCTS_API_KEY.
    """

    id = INTEGRATION_ID
    label = "Google Products"

    def __init__(
        self,
        config: Optional[GoogleProductsConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Google Products adapter.

        Raises:
            IntegrationNotConfiguredError: If no config is given and the
                environment lacks the API URL or key
        """
        super().__init__(transport=transport)
        self.config = config or GoogleProductsConfig.from_settings(get_settings())
        if self.config is None:
            raise IntegrationNotConfiguredError(self.label)
        self._profile = replace(DEFAULT_PROFILE, url=self.config.merchant_url or DEFAULT_PROFILE.url)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "GoogleProductsAdapter":
        config = GoogleProductsConfig.from_settings(settings)
        if config is None:
            raise IntegrationNotConfiguredError(cls.label)
        return cls(config=config, transport=transport)

    @property
    def profile(self) -> MerchantProfile:
        return self._profile

    def build_request_url(self, query: str) -> str:
        parts = urlsplit(self.config.api_url)
        params = dict(parse_qsl(parts.query, keep_blank_values=True))
        params[self.config.api_key_param] = self.config.api_key
        params["q"] = query
        if self.config.search_engine_id:
            params["cx"] = self.config.search_engine_id
        if self.config.country:
            params["gl"] = self.config.country
        if self.config.language:
            params["hl"] = self.config.language
        if self.config.results_limit and self.config.results_limit > 0:
            params["num"] = str(self.config.results_limit)
        return urlunsplit(parts._replace(query=urlencode(params)))

    async def search(self, query: str) -> List[MerchantOffer]:
        trimmed = (query or "").strip()
        if not trimmed or not _has_meaningful_content(trimmed):
            return []

        data = await self._call_api(self.build_request_url(trimmed))
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            items = []

        offers = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            try:
                offer = self._normalize_item(item, index)
            except (AttributeError, TypeError, ValueError) as e:
                self.logger.debug("candidate_skipped", index=index, error=str(e))
                continue
            if offer is not None:
                offers.append(offer)

        offers.sort(key=lambda offer: (offer.total_price, offer.title))
        self.logger.info("google_products_fetched", query=trimmed, count=len(offers))
        return offers

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception_type(httpx.ConnectError),
        reraise=True,
    )
    async def _call_api(self, url: str) -> Dict[str, Any]:
        """Call the search endpoint and return the decoded JSON body.

        Raises:
            ScraperError: On non-2xx responses
            FetchTimeoutError: If GOOGLE_PRODUCTS_TIMEOUT_MS elapsed
        """
        headers = {"Accept": "application/json"}
        if self.config.api_key_header:
            headers[self.config.api_key_header] = self.config.api_key

        try:
            async with self._client(self.config.timeout_ms) as client:
                response = await client.get(url, headers=headers)
        except httpx.TimeoutException:
            raise FetchTimeoutError(self.config.api_url, self.config.timeout_ms or 0)

        if not response.is_success:
            body = response.text
            suffix = f": {body}" if body else ""
            raise ScraperError(
                self.id,
                f"Google Products API request failed with status {response.status_code}{suffix}",
                status_code=response.status_code,
            )

        return response.json()

    def _merchant_profile(self, item: Dict[str, Any], index: int) -> MerchantProfile:
        merchant = item.get("merchant")
        if not isinstance(merchant, dict):
            return self.profile

        name = (merchant.get("name") or "").strip()
        if not name:
            return self.profile

        merchant_id = slugify(str(merchant.get("id") or name))
        return MerchantProfile(
            id=merchant_id or f"{self.profile.id}-merchant-{index}",
            name=name,
            url=_first_string(merchant.get("url"), item.get("link"), item.get("url")) or self.profile.url,
            logo_url=merchant.get("logoUrl") or None,
            city=merchant.get("city") or None,
        )

    def _normalize_item(self, item: Dict[str, Any], index: int) -> Optional[MerchantOffer]:
        title = (item.get("title") or "").strip()
        if not title:
            return None

        price_source = item.get("salePrice")
        if price_source is None:
            price_source = item.get("price")
        price = PriceNormalizer.coerce(price_source)
        if price is None or price <= 0:
            return None

        currency_source = price_source if price_source is not None else item.get("currency")
        currency = _to_currency(currency_source, self.config.default_currency)

        url = _first_string(item.get("link"), item.get("url"), item.get("productUrl")) or self.profile.url
        product_id = item.get("productId") or item.get("id") or url
        slug = slugify(str(item.get("slug") or item.get("productId") or title))
        if not slug:
            return None

        images = item.get("images")
        image = item.get("image") or (images[0] if isinstance(images, list) and images else None) or item.get("thumbnail")

        merchant = self._merchant_profile(item, index)
        shipping_fee: Optional[Decimal] = PriceNormalizer.coerce(item.get("shipping"))

        return MerchantOffer(
            offer_id=f"{merchant.id}-{product_id}",
            merchant=merchant,
            product_id=str(product_id),
            slug=slug,
            title=title,
            price=price,
            currency=currency,
            url=url,
            brand=item.get("brand") or None,
            category=item.get("category") or None,
            image=image or None,
            shipping_fee=shipping_fee,
            availability=parse_availability(item.get("availability")),
        )
