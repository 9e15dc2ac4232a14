"""Decathlon Morocco scraper adapter.

Structure: div.product-block-top-main[data-supermodelid]
  - a.dpb-product-model-link (href) > h2 (title)
  - .product-brand ("KIPRUN", "QUECHUA", ...)
  - .vtmn-price ("249 DH")
  - img
  - .product-delivery, .product-stock
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


class DecathlonAdapter(BaseScraperAdapter):
    """Decathlon search results scraper."""

    id = "decathlon"
    label = "Decathlon"

    PROFILE = MerchantProfile(
        id="decathlon",
        name="Decathlon",
        url="https://www.decathlon.ma",
        logo_url="https://upload.wikimedia.org/wikipedia/commons/6/6f/Decathlon_Logo.svg",
    )
    DEFAULT_CONFIG = MerchantHttpConfig(
        search_url="https://www.decathlon.ma/search",
        query_param="q",
        currency="MAD",
    )
    ITEM_SELECTOR = "div[data-supermodelid]"

    def _parse_item(self, item: Tag, page_url: str) -> Optional[MerchantOffer]:
        link = item.select_one("a.dpb-product-model-link") or item.select_one("a[href]")
        title = self._text(item, "a.dpb-product-model-link h2") or self._text(item, "h2")

        return self._build_offer(
            page_url,
            product_id=item.get("data-supermodelid"),
            title=title,
            price=PriceNormalizer.parse_price(self._text(item, ".vtmn-price")),
            url=link.get("href") if link is not None else None,
            brand=self._text(item, ".product-brand"),
            category=item.get("data-category") or self._text(item, ".product-category"),
            image=self._image(item, "img"),
            shipping_fee=parse_shipping_fee(self._text(item, ".product-delivery")),
            availability=parse_availability(self._text(item, ".product-stock")),
        )
