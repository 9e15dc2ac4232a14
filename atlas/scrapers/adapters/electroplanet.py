"""Electroplanet scraper adapter.

Electroplanet runs Magento; search results are rendered server side.

Structure: li.product-item[data-product-id]
  - div.product-item-info > a.product-item-link (title, href)
  - div.price-box > span.price[data-price-currency] ("1 234,00 DH")
    or span.price-wrapper[data-price-amount]
  - .product-brand / .product-category (theme additions)
  - img.product-image-photo
  - .shipping ("Livraison gratuite"), .stock ("En stock")
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


class ElectroplanetAdapter(BaseScraperAdapter):
    """Electroplanet search results scraper."""

    id = "electroplanet"
    label = "Electroplanet"

    PROFILE = MerchantProfile(
        id="electroplanet",
        name="Electroplanet",
        url="https://www.electroplanet.ma",
        logo_url="https://upload.wikimedia.org/wikipedia/commons/7/73/Electroplanet_logo.png",
    )
    DEFAULT_CONFIG = MerchantHttpConfig(
        search_url="https://www.electroplanet.ma/catalogsearch/result/",
        query_param="q",
        currency="MAD",
    )
    ITEM_SELECTOR = "li.product-item"

    def _parse_item(self, item: Tag, page_url: str) -> Optional[MerchantOffer]:
        product_id = self._first_attr(
            item,
            [".product-item-info", ".price-box", "[data-product-id]"],
            "data-product-id",
        )
        if not product_id:
            form_input = item.select_one("input[name='product']")
            product_id = form_input.get("value") if form_input is not None else None

        link = item.select_one("a.product-item-link")
        title = " ".join(link.get_text(" ", strip=True).split()) if link is not None else None

        amount = self._first_attr(item, ["[data-price-amount]"], "data-price-amount")
        price = PriceNormalizer.parse_price(amount) if amount else None
        if price is None:
            price = PriceNormalizer.parse_price(self._text(item, ".price-box .price"))

        return self._build_offer(
            page_url,
            product_id=product_id,
            title=title,
            price=price,
            url=link.get("href") if link is not None else None,
            brand=self._text(item, ".product-brand"),
            category=self._text(item, ".product-category"),
            image=self._image(item, "img"),
            currency=self._first_attr(item, [".price-box .price"], "data-price-currency"),
            shipping_fee=parse_shipping_fee(self._text(item, ".shipping")),
            availability=parse_availability(self._text(item, ".stock")),
        )
