"""Jumia Morocco scraper adapter.

Structure: article.prd
  - a.core[href][data-gtm-id][data-gtm-brand][data-gtm-category]
  - h3.name (title)
  - div.prc ("12,999.00 Dhs")
  - img.img[data-src]
  - .shipping / .bdg._glb (free delivery badge), .stock
"""

import re
from typing import Optional

from bs4 import Tag

from atlas.scrapers.base import BaseScraperAdapter, MerchantOffer, MerchantProfile
from atlas.scrapers.utils.merchant_config import MerchantHttpConfig
from atlas.scrapers.utils.normalizer import (
    PriceNormalizer,
    parse_availability,
    parse_shipping_fee,
)


# Product URLs end with the numeric SKU: /apple-iphone-15-...-48172654.html
_SKU_PATTERN = re.compile(r"-(\d+)\.html")


class JumiaAdapter(BaseScraperAdapter):
    """Jumia catalog search scraper."""

    id = "jumia"
    label = "Jumia"

    PROFILE = MerchantProfile(
        id="jumia",
        name="Jumia",
        url="https://www.jumia.ma",
        logo_url="https://upload.wikimedia.org/wikipedia/commons/0/0d/Jumia-Logo.png",
    )
    DEFAULT_CONFIG = MerchantHttpConfig(
        search_url="https://www.jumia.ma/catalog/",
        query_param="q",
        currency="MAD",
    )
    ITEM_SELECTOR = "article.prd"

    def _parse_item(self, item: Tag, page_url: str) -> Optional[MerchantOffer]:
        link = item.select_one("a.core") or item.select_one("a[href]")
        href = link.get("href") if link is not None else None

        product_id = None
        if link is not None:
            product_id = link.get("data-gtm-id") or link.get("data-id")
        if not product_id and href:
            match = _SKU_PATTERN.search(href)
            if match:
                product_id = match.group(1)

        title = self._text(item, ".name")
        if not title and link is not None:
            title = link.get("data-gtm-name")

        shipping_text = self._text(item, ".shipping") or self._text(item, ".bdg._glb")

        return self._build_offer(
            page_url,
            product_id=product_id,
            title=title,
            price=PriceNormalizer.parse_price(self._text(item, ".prc")),
            url=href,
            brand=link.get("data-gtm-brand") if link is not None else None,
            category=link.get("data-gtm-category") if link is not None else None,
            image=self._image(item, "img"),
            shipping_fee=parse_shipping_fee(shipping_text),
            availability=parse_availability(self._text(item, ".stock")),
        )
