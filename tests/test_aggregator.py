"""Tests for the product aggregator: grouping, caching and fan-out limits."""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from atlas.scrapers.utils.normalizer import OUT_OF_STOCK, UNKNOWN
from atlas.scrapers.utils.rate_limiter import KeyedRateLimiter
from atlas.services.aggregator_service import (
    DEFAULT_CATEGORY,
    UNKNOWN_ERROR_MESSAGE,
    ProductAggregator,
    group_offers,
    sort_products,
)
from atlas.services.cache_service import MemoryResponseCache
from conftest import FakeIntegration, build_offer


class _RecordingCache(MemoryResponseCache):
    def __init__(self):
        super().__init__()
        self.keys = []

    async def get(self, key):
        self.keys.append(key)
        return await super().get(key)


# ============================================================
# group_offers
# ============================================================


class TestGroupOffers:
    """Tests for cross-merchant grouping."""

    def test_groups_by_slug_and_orders_offers_by_total(self):
        offers = [
            build_offer("jumia", "js-1", 12999, shipping_fee=199),
            build_offer("electroplanet", "ep-1", 12345),
        ]

        products = group_offers(offers)

        assert len(products) == 1
        product = products[0]
        assert product.slug == "iphone-15-pro"
        assert product.offers_count == 2
        assert product.min_price == Decimal("12345")
        assert product.max_price == Decimal("12999")
        assert product.min_total_price == Decimal("12345")
        assert [offer.merchant.id for offer in product.offers] == ["electroplanet", "jumia"]
        assert product.offers[1].total_price == Decimal("13198")

    def test_drops_out_of_stock_and_non_positive_prices(self):
        offers = [
            build_offer("jumia", "a", 100, availability=OUT_OF_STOCK),
            build_offer("bim", "b", 0),
            build_offer("marjane", "c", 150, availability=UNKNOWN),
        ]

        products = group_offers(offers)

        assert len(products) == 1
        assert [offer.merchant.id for offer in products[0].offers] == ["marjane"]

    def test_products_sorted_by_cheapest_total_then_name(self):
        offers = [
            build_offer("jumia", "1", 500, title="Zeta Phone", slug="zeta-phone"),
            build_offer("jumia", "2", 300, title="Beta Phone", slug="beta-phone"),
            build_offer("jumia", "3", 300, title="Alpha Phone", slug="alpha-phone"),
        ]

        products = group_offers(offers)

        assert [product.slug for product in products] == ["alpha-phone", "beta-phone", "zeta-phone"]

    def test_first_seen_fields_and_defaults(self):
        early = datetime(2026, 1, 1, tzinfo=timezone.utc)
        offers = [
            build_offer("jumia", "1", 200, image="https://img/a.jpg"),
            build_offer(
                "marjane",
                "2",
                210,
                brand="Apple",
                image="https://img/a.jpg",
                scraped_at=early,
            ),
            build_offer("bim", "3", 220, image="https://img/b.jpg", category="Smartphones"),
        ]

        product = group_offers(offers)[0]

        assert product.name == "Apple iPhone 15 Pro"
        assert product.brand == "Apple"
        assert product.category == "Smartphones"
        assert product.category_slug == "smartphones"
        assert product.images == ["https://img/a.jpg", "https://img/b.jpg"]
        assert product.created_at == early
        assert product.specifications == {}

    def test_missing_category_uses_default(self):
        product = group_offers([build_offer("jumia", "1", 200)])[0]

        assert product.category == DEFAULT_CATEGORY
        assert product.category_slug == "divers"

    def test_slug_falls_back_to_title(self):
        product = group_offers([build_offer("jumia", "1", 200, title="Galaxy S24 Ultra", slug="")])[0]

        assert product.slug == "galaxy-s24-ultra"

    def test_empty_input(self):
        assert group_offers([]) == []


# ============================================================
# sort_products
# ============================================================


class TestSortProducts:
    """Tests for caller-facing sort options."""

    @pytest.fixture
    def products(self):
        return group_offers(
            [
                build_offer("jumia", "1", 500, title="banana", slug="banana"),
                build_offer("jumia", "2", 100, title="Cherry", slug="cherry"),
                build_offer("jumia", "3", 300, title="apple", slug="apple"),
            ]
        )

    def test_relevance_keeps_order(self, products):
        assert [p.slug for p in sort_products(products, "relevance")] == ["cherry", "apple", "banana"]

    def test_price_asc(self, products):
        assert [p.slug for p in sort_products(products, "price_asc")] == ["cherry", "apple", "banana"]

    def test_price_desc(self, products):
        assert [p.slug for p in sort_products(products, "price_desc")] == ["banana", "apple", "cherry"]

    def test_name_is_case_insensitive(self, products):
        assert [p.slug for p in sort_products(products, "name")] == ["apple", "banana", "cherry"]

    def test_unknown_sort_raises(self, products):
        with pytest.raises(ValueError):
            sort_products(products, "popularity")

    def test_does_not_mutate_input(self, products):
        before = [p.slug for p in products]
        sort_products(products, "price_desc")
        assert [p.slug for p in products] == before


# ============================================================
# ProductAggregator
# ============================================================


class TestProductAggregator:
    """Tests for fan-out, failure tolerance and caching."""

    async def test_merges_merchants_into_one_product(self):
        electroplanet = FakeIntegration(
            "electroplanet", [build_offer("electroplanet", "ep-15pro", "13349.00")]
        )
        jumia = FakeIntegration("jumia", [build_offer("jumia", "jm-15pro", "13599.00", shipping_fee=49)])
        aggregator = ProductAggregator([electroplanet, jumia], rate_limit_ms=0)

        response = await aggregator.search("iPhone 15 Pro")

        assert len(response.products) == 1
        product = response.products[0]
        assert product.min_total_price == Decimal("13349.00")
        assert [offer.merchant.id for offer in product.offers] == ["electroplanet", "jumia"]
        assert product.offers[1].total_price == Decimal("13648.00")
        assert response.errors == []
        assert response.metadata.query == "iphone 15 pro"
        assert response.metadata.from_cache is False
        assert [metric.id for metric in response.metadata.integrations] == ["electroplanet", "jumia"]
        assert all(metric.status == "fulfilled" for metric in response.metadata.integrations)

    async def test_integrations_receive_normalized_query(self):
        jumia = FakeIntegration("jumia")
        aggregator = ProductAggregator([jumia], rate_limit_ms=0)

        await aggregator.search("  Réfrigérateur  ")

        assert jumia.calls == ["refrigerateur"]

    async def test_partial_failure_is_reported(self):
        healthy = FakeIntegration("jumia", [build_offer("jumia", "1", 999)])
        broken = FakeIntegration("marjane", error=RuntimeError("Marjane responded with status 503"))
        aggregator = ProductAggregator([healthy, broken], rate_limit_ms=0)

        response = await aggregator.search("tv")

        assert len(response.products) == 1
        assert len(response.errors) == 1
        error = response.errors[0]
        assert error.merchant_id == "marjane"
        assert error.merchant_name == "Marjane"
        assert "503" in error.message

        metrics = {metric.id: metric for metric in response.metadata.integrations}
        assert metrics["jumia"].status == "fulfilled"
        assert metrics["jumia"].offers == 1
        assert metrics["marjane"].status == "rejected"
        assert metrics["marjane"].offers == 0
        assert metrics["marjane"].error == error.message

    async def test_blank_error_message_uses_fallback(self):
        broken = FakeIntegration("bim", error=RuntimeError())
        aggregator = ProductAggregator([broken], rate_limit_ms=0)

        response = await aggregator.search("lait")

        assert response.errors[0].message == UNKNOWN_ERROR_MESSAGE

    async def test_all_failing_still_returns_response(self):
        integrations = [FakeIntegration(name, error=ValueError("boom")) for name in ("a", "b")]
        aggregator = ProductAggregator(integrations, rate_limit_ms=0)

        response = await aggregator.search("x")

        assert response.products == []
        assert len(response.errors) == 2

    async def test_invalid_offers_filtered_from_metrics(self):
        jumia = FakeIntegration(
            "jumia",
            [
                build_offer("jumia", "1", 100),
                build_offer("jumia", "2", 100, availability=OUT_OF_STOCK),
            ],
        )
        aggregator = ProductAggregator([jumia], rate_limit_ms=0)

        response = await aggregator.search("x")

        assert response.metadata.integrations[0].offers == 1

    async def test_second_search_served_from_cache(self):
        jumia = FakeIntegration("jumia", [build_offer("jumia", "1", 100)])
        aggregator = ProductAggregator([jumia], rate_limit_ms=0)

        first = await aggregator.search("iphone")
        second = await aggregator.search("  IPHONE ")

        assert jumia.calls == ["iphone"]
        assert first.metadata.from_cache is False
        assert second.metadata.from_cache is True
        assert second.products == first.products

    async def test_cached_response_is_isolated_from_callers(self):
        jumia = FakeIntegration("jumia", [build_offer("jumia", "1", 100)])
        aggregator = ProductAggregator([jumia], rate_limit_ms=0)

        first = await aggregator.search("iphone")
        first.products[0].offers.clear()
        first.products[0].name = "tampered"

        second = await aggregator.search("iphone")
        second.products.clear()
        third = await aggregator.search("iphone")

        assert third.products[0].name == "Apple iPhone 15 Pro"
        assert third.products[0].offers_count == 1
        assert len(third.products[0].offers) == 1

    async def test_list_products_uses_catalog_key(self):
        cache = _RecordingCache()
        jumia = FakeIntegration("jumia", [build_offer("jumia", "1", 100)])
        aggregator = ProductAggregator([jumia], cache=cache, rate_limit_ms=0)

        response = await aggregator.list_products()

        assert cache.keys == ["search:__all__"]
        assert jumia.calls == [""]
        assert response.metadata.query == ""

    async def test_concurrency_cap_across_merchants(self):
        state = {"active": 0, "peak": 0}

        class TrackingIntegration(FakeIntegration):
            async def search(self, query):
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
                try:
                    await asyncio.sleep(0.01)
                    return []
                finally:
                    state["active"] -= 1

        integrations = [TrackingIntegration(f"m{i}") for i in range(8)]
        aggregator = ProductAggregator(integrations, rate_limit_ms=0)

        await asyncio.gather(aggregator.search("a"), aggregator.search("b"))

        assert 1 <= state["peak"] <= 3

    async def test_custom_concurrency_limit(self):
        state = {"active": 0, "peak": 0}

        class TrackingIntegration(FakeIntegration):
            async def search(self, query):
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
                try:
                    await asyncio.sleep(0.01)
                    return []
                finally:
                    state["active"] -= 1

        integrations = [TrackingIntegration(f"m{i}") for i in range(4)]
        aggregator = ProductAggregator(integrations, rate_limit_ms=0, max_concurrency=1)

        await aggregator.search("a")

        assert state["peak"] == 1

    async def test_rate_limit_spaces_calls_to_same_merchant(self):
        now = [100.0]
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            now[0] += seconds

        limiter = KeyedRateLimiter(500, clock=lambda: now[0], sleep=fake_sleep)
        jumia = FakeIntegration("jumia")
        aggregator = ProductAggregator([jumia], rate_limiter=limiter)

        await aggregator.search("first")
        await aggregator.search("second")

        assert jumia.calls == ["first", "second"]
        assert sleeps == [pytest.approx(0.5)]


# ============================================================
# KeyedRateLimiter
# ============================================================


class TestKeyedRateLimiter:
    """Tests for the per-merchant minimum interval."""

    @pytest.fixture
    def fake_time(self):
        now = [0.0]
        sleeps = []

        async def sleep(seconds):
            sleeps.append(seconds)
            now[0] += seconds

        return now, sleeps, sleep

    async def test_first_call_does_not_wait(self, fake_time):
        now, sleeps, sleep = fake_time
        limiter = KeyedRateLimiter(500, clock=lambda: now[0], sleep=sleep)

        await limiter.acquire("jumia")

        assert sleeps == []
        assert limiter.last_invocation("jumia") == 0.0

    async def test_waits_remaining_interval(self, fake_time):
        now, sleeps, sleep = fake_time
        limiter = KeyedRateLimiter(500, clock=lambda: now[0], sleep=sleep)

        await limiter.acquire("jumia")
        now[0] += 0.2
        await limiter.acquire("jumia")

        assert sleeps == [pytest.approx(0.3)]
        assert limiter.last_invocation("jumia") == pytest.approx(0.5)

    async def test_keys_are_independent(self, fake_time):
        now, sleeps, sleep = fake_time
        limiter = KeyedRateLimiter(500, clock=lambda: now[0], sleep=sleep)

        await limiter.acquire("jumia")
        await limiter.acquire("marjane")

        assert sleeps == []

    async def test_no_wait_after_interval_elapsed(self, fake_time):
        now, sleeps, sleep = fake_time
        limiter = KeyedRateLimiter(500, clock=lambda: now[0], sleep=sleep)

        await limiter.acquire("jumia")
        now[0] += 1.0
        await limiter.acquire("jumia")

        assert sleeps == []

    async def test_concurrent_callers_queue_one_interval_apart(self, fake_time):
        now, sleeps, sleep = fake_time
        limiter = KeyedRateLimiter(500, clock=lambda: now[0], sleep=sleep)

        limiter._reserve("jumia")
        second = limiter._reserve("jumia")
        third = limiter._reserve("jumia")

        assert second == pytest.approx(0.5)
        assert third == pytest.approx(1.0)

    async def test_zero_interval_never_waits(self, fake_time):
        now, sleeps, sleep = fake_time
        limiter = KeyedRateLimiter(0, clock=lambda: now[0], sleep=sleep)

        for _ in range(3):
            await limiter.acquire("jumia")

        assert sleeps == []
