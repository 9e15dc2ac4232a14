"""H&M Morocco scraper adapter.

Structure: article.hm-product-item[data-articlecode][data-category]
  - .item-heading a.link (title, href)
  - .item-price span.price ("199,00 MAD")
  - img.item-image[data-src]
  - .item-availability
"""

from typing import Optional

from bs4 import Tag

from atlas.scrapers.base import BaseScraperAdapter, MerchantOffer, MerchantProfile
from atlas.scrapers.utils.merchant_config import MerchantHttpConfig
from atlas.scrapers.utils.normalizer import PriceNormalizer, parse_availability


class HmAdapter(BaseScraperAdapter):
    """H&M search results scraper. Every listing is an H&M brand product."""

    id = "hm"
    label = "H&M"

    PROFILE = MerchantProfile(
        id="hm",
        name="H&M",
        url="https://www2.hm.com",
        logo_url="https://upload.wikimedia.org/wikipedia/commons/5/53/H%26M-Logo.svg",
    )
    DEFAULT_CONFIG = MerchantHttpConfig(
        search_url="https://www2.hm.com/fr_ma/search-results.html",
        query_param="q",
        currency="MAD",
    )
    ITEM_SELECTOR = "article.hm-product-item"

    def _parse_item(self, item: Tag, page_url: str) -> Optional[MerchantOffer]:
        link = item.select_one(".item-heading a") or item.select_one("a[href]")
        title = " ".join(link.get_text(" ", strip=True).split()) if link is not None else None

        price_text = self._text(item, ".item-price .price") or self._text(item, ".item-price")

        return self._build_offer(
            page_url,
            product_id=item.get("data-articlecode"),
            title=title,
            price=PriceNormalizer.parse_price(price_text),
            url=link.get("href") if link is not None else None,
            brand="H&M",
            category=item.get("data-category"),
            image=self._image(item, "img"),
            availability=parse_availability(self._text(item, ".item-availability")),
        )
