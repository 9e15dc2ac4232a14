"""Marjane Mall scraper adapter.

Structure: div.product-tile[data-pid]
  - a.product-tile__link (href) > .product-tile__name (title)
  - .product-tile__brand, .product-tile__category
  - .product-tile__price ("8 499,00 DH") with optional [data-price]
  - img.product-tile__image
  - .product-tile__delivery, .product-tile__availability
"""

from typing import Optional

from bs4 import Tag

from atlas.scrapers.base import BaseScraperAdapter, MerchantOffer, MerchantProfile
from atlas.scrapers.utils.merchant_config import MerchantHttpConfig
from atlas.scrapers.utils.normalizer import (
    PriceNormalizer,
    parse_availability,
    parse_shipping_fee,
)


class MarjaneAdapter(BaseScraperAdapter):
    """Marjane search results scraper."""

    id = "marjane"
    label = "Marjane"

    PROFILE = MerchantProfile(
        id="marjane",
        name="Marjane",
        url="https://www.marjane.ma",
        logo_url="https://upload.wikimedia.org/wikipedia/fr/8/80/Marjane_logo.png",
    )
    DEFAULT_CONFIG = MerchantHttpConfig(
        search_url="https://www.marjane.ma/search",
        query_param="q",
        currency="MAD",
    )
    ITEM_SELECTOR = "div.product-tile"

    def _parse_item(self, item: Tag, page_url: str) -> Optional[MerchantOffer]:
        link = item.select_one("a.product-tile__link") or item.select_one("a[href]")

        raw_price = self._first_attr(item, [".product-tile__price"], "data-price")
        if not raw_price:
            raw_price = self._text(item, ".product-tile__price")

        return self._build_offer(
            page_url,
            product_id=item.get("data-pid") or item.get("data-product-id"),
            title=self._text(item, ".product-tile__name"),
            price=PriceNormalizer.parse_price(raw_price),
            url=link.get("href") if link is not None else None,
            brand=self._text(item, ".product-tile__brand"),
            category=self._text(item, ".product-tile__category"),
            image=self._image(item, "img"),
            shipping_fee=parse_shipping_fee(self._text(item, ".product-tile__delivery")),
            availability=parse_availability(self._text(item, ".product-tile__availability")),
        )
