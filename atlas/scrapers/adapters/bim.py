"""BIM Maroc scraper adapter.

BIM publishes its weekly catalogue on a simple search page.

Structure: div.produit[data-id]
  - a.produit-lien (href) > h2.produit-titre
  - .produit-marque, .produit-categorie
  - .prix ("49,90 DH")
  - img
  - .disponibilite
"""

from typing import Optional

from bs4 import Tag

from atlas.scrapers.base import BaseScraperAdapter, MerchantOffer, MerchantProfile
from atlas.scrapers.utils.merchant_config import MerchantHttpConfig
from atlas.scrapers.utils.normalizer import PriceNormalizer, parse_availability


class BimAdapter(BaseScraperAdapter):
    """BIM catalogue search scraper. Store pickup only, so no shipping fee."""

    id = "bim"
    label = "BIM"

    PROFILE = MerchantProfile(
        id="bim",
        name="BIM",
        url="https://www.bim.ma",
        logo_url="https://upload.wikimedia.org/wikipedia/commons/d/d3/Bim_logo.png",
    )
    DEFAULT_CONFIG = MerchantHttpConfig(
        search_url="https://www.bim.ma/recherche",
        query_param="query",
        currency="MAD",
    )
    ITEM_SELECTOR = "div.produit"

    def _parse_item(self, item: Tag, page_url: str) -> Optional[MerchantOffer]:
        link = item.select_one("a.produit-lien") or item.select_one("a[href]")

        return self._build_offer(
            page_url,
            product_id=item.get("data-id"),
            title=self._text(item, ".produit-titre"),
            price=PriceNormalizer.parse_price(self._text(item, ".prix")),
            url=link.get("href") if link is not None else None,
            brand=self._text(item, ".produit-marque"),
            category=self._text(item, ".produit-categorie"),
            image=self._image(item, "img"),
            availability=parse_availability(self._text(item, ".disponibilite")),
        )
