"""
Marketplace search with cache fallback, star grid filters and item lookup
"""
import pytest

from cbgwatch.models import Item
from cbgwatch.scrapers.base import MarketplaceError
from cbgwatch.services.item_search import ItemSearchService, StarGridFilter
from conftest import make_item


class TestStarGridFilter:

    def test_inactive_by_default(self):
        assert StarGridFilter().active is False
        assert StarGridFilter().matches(None) is True

    def test_star_level_counts_filled_slots(self):
        star_filter = StarGridFilter(star_level=2)

        assert star_filter.matches([5, 3, None, None])
        assert not star_filter.matches([5, None, None, None])
        assert not star_filter.matches([5, 3, 1, None])

    def test_slot_bounds_are_inclusive_and_require_a_value(self):
        star_filter = StarGridFilter(slot_min=[3, None, None, None], slot_max=[5, None, None, 2])

        assert star_filter.matches([3, None, None, 2])
        assert star_filter.matches([5, 1, 1, None]) is False
        assert not star_filter.matches([2, None, None, None])
        assert not star_filter.matches([None, None, None, None])


class TestSearch:

    @pytest.mark.asyncio
    async def test_category_and_filters_passed_upstream(self, session_factory, client):
        client.items["A"] = make_item("A", 100)

        async with session_factory() as db:
            result = await ItemSearchService(db, client).search(
                keyword="Fox", category="weapon_skin", price_min=100, price_max=50000, page=2, limit=20,
            )

        assert result.cached is False
        assert [item["id"] for item in result.items] == ["A"]
        assert client.search_calls == [{
            "kind_id": 4, "page": 2, "count": 20,
            "keyword": "Fox", "price_min": 100, "price_max": 50000,
        }]

    @pytest.mark.asyncio
    async def test_page_filtered_by_rarity_and_stars(self, session_factory, client):
        client.items["A"] = dict(make_item("A", 100), rarity="red", star_grid=[5, 5, None, None])
        client.items["B"] = dict(make_item("B", 100), rarity="red", star_grid=[5, None, None, None])
        client.items["C"] = dict(make_item("C", 100), rarity="gold", star_grid=[5, 5, None, None])

        async with session_factory() as db:
            result = await ItemSearchService(db, client).search(
                rarity="red", star_filter=StarGridFilter(star_level=2),
            )

        assert [item["id"] for item in result.items] == ["A"]
        assert client.search_calls[0]["kind_id"] == 3

    @pytest.mark.asyncio
    async def test_upstream_failure_serves_cache(self, session_factory, client, seed):
        client.search_error = MarketplaceError("blocked")
        await seed.item("A", 1000, name="Fox Spirit")
        await seed.item("B", 9000, name="Fox Tail")
        await seed.item("C", 1000, name="Crane")
        await seed.item("D", 1000, name="Fox Blade", category="weapon_skin")

        async with session_factory() as db:
            result = await ItemSearchService(db, client).search(keyword="fox", price_max=5000)

        assert result.cached is True
        assert result.error == "blocked"
        assert [item.id for item in result.items] == ["A"]
        assert result.total == 1
        assert result.page_count == 1

    @pytest.mark.asyncio
    async def test_cache_fallback_pages_after_star_filter(self, session_factory, client, seed):
        client.search_error = MarketplaceError("blocked")
        for item_id in ("A", "B", "C"):
            await seed.item(item_id, 100, star_grid=[4, None, None, None])
        await seed.item("D", 100, star_grid=[1, None, None, None])

        async with session_factory() as db:
            result = await ItemSearchService(db, client).search(
                page=2, limit=2, star_filter=StarGridFilter(slot_min=[3, None, None, None]),
            )

        assert [item.id for item in result.items] == ["C"]
        assert result.total == 3
        assert result.page_count == 2


class TestGetItem:

    @pytest.mark.asyncio
    async def test_live_detail_preferred(self, session_factory, client, seed):
        await seed.item("A", 100, name="Cached")
        client.details["A"] = make_item("A", 90, name="Live")

        async with session_factory() as db:
            item = await ItemSearchService(db, client).get_item("A")

        assert item["name"] == "Live"
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_cache_before_lookup(self, session_factory, client, seed):
        await seed.item("A", 100, name="Cached")

        async with session_factory() as db:
            item = await ItemSearchService(db, client).get_item("A")

        assert isinstance(item, Item)
        assert item.name == "Cached"
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_falls_back_to_lookup(self, session_factory, client):
        client.items["A"] = make_item("A", 100)

        async with session_factory() as db:
            service = ItemSearchService(db, client)
            assert (await service.get_item("A"))["id"] == "A"
            assert await service.get_item("missing") is None

        assert client.calls == ["A", "missing"]
