"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

import pytest

from atlas.config import Settings
from atlas.scrapers.base import BaseAdapter, MerchantOffer, MerchantProfile
from atlas.scrapers.utils.normalizer import IN_STOCK


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build Settings from explicit values only, ignoring .env files."""

    def factory(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)

    return factory


def build_profile(merchant_id: str, name: Optional[str] = None) -> MerchantProfile:
    return MerchantProfile(
        id=merchant_id,
        name=name or merchant_id.title(),
        url=f"https://www.{merchant_id}.ma",
    )


def build_offer(
    merchant_id: str,
    product_id: str,
    price,
    title: str = "Apple iPhone 15 Pro",
    slug: Optional[str] = None,
    shipping_fee=None,
    availability: str = IN_STOCK,
    scraped_at: Optional[datetime] = None,
    **extra,
) -> MerchantOffer:
    profile = build_profile(merchant_id)
    return MerchantOffer(
        offer_id=f"{merchant_id}-{product_id}",
        merchant=profile,
        product_id=product_id,
        slug=slug if slug is not None else "iphone-15-pro",
        title=title,
        price=Decimal(str(price)),
        currency="MAD",
        url=f"{profile.url}/p/{product_id}",
        shipping_fee=Decimal(str(shipping_fee)) if shipping_fee is not None else None,
        availability=availability,
        scraped_at=scraped_at or datetime.now(timezone.utc),
        **extra,
    )


class FakeIntegration(BaseAdapter):
    """In-memory integration returning canned offers or raising."""

    adapter_type = "fake"

    def __init__(
        self,
        merchant_id: str,
        offers: Optional[List[MerchantOffer]] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
    ):
        self.id = merchant_id
        self.label = merchant_id.title()
        self._profile = build_profile(merchant_id)
        self._offers = offers or []
        self._error = error
        self._delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        super().__init__()

    @property
    def profile(self) -> MerchantProfile:
        return self._profile

    async def search(self, query: str) -> List[MerchantOffer]:
        self.calls.append(query)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            if self._error is not None:
                raise self._error
            return list(self._offers)
        finally:
            self.in_flight -= 1


@pytest.fixture
def offer_factory():
    return build_offer


@pytest.fixture
def integration_factory():
    return FakeIntegration
