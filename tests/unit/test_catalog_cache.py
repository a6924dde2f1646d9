"""Unit tests for the TTL cache and cached catalog lookups."""

import time
from unittest.mock import patch

import pytest

from portal.core.cache import MemoryCache
from portal.services.catalog_service import CatalogService


class TestMemoryCache:
    """Tests for MemoryCache."""

    def test_set_and_get(self) -> None:
        cache = MemoryCache()
        cache.set("key", {"a": 1})

        assert cache.get("key") == {"a": 1}
        assert cache.get("missing") is None

    def test_entries_expire(self) -> None:
        """Test that values disappear after their TTL."""
        cache = MemoryCache(default_ttl=10)
        cache.set("key", "value")

        with patch("portal.core.cache.time.time", return_value=time.time() + 11):
            assert cache.get("key") is None

    def test_evicts_when_full(self) -> None:
        """Test that the size limit is kept."""
        cache = MemoryCache(max_size=2)
        cache.set("a", 1, ttl=10)
        cache.set("b", 2, ttl=100)
        cache.set("c", 3, ttl=100)

        assert cache.get("a") is None
        assert cache.get_stats()["entries"] == 2

    def test_cleanup(self) -> None:
        cache = MemoryCache()
        cache.set("old", 1, ttl=1)
        cache.set("new", 2, ttl=100)

        with patch("portal.core.cache.time.time", return_value=time.time() + 5):
            assert cache.cleanup() == 1


class TestCatalogService:
    """Tests for CatalogService."""

    @pytest.mark.asyncio
    async def test_lists_active_services_by_price(self, fake_db) -> None:
        """Test that inactive services are hidden."""
        fake_db.seed("services", {"name": "Large", "price": 900000, "is_active": True})
        fake_db.seed("services", {"name": "Small", "price": 100000, "is_active": True})
        fake_db.seed("services", {"name": "Retired", "price": 50000, "is_active": False})

        services = await CatalogService().list_active_services()

        assert [s["name"] for s in services] == ["Small", "Large"]

    @pytest.mark.asyncio
    async def test_results_are_cached_until_expiry(self, fake_db, service_row) -> None:
        """Test that catalog edits show up once the cached entry expires."""
        catalog = CatalogService()
        await catalog.get_service(service_row["id"])
        fake_db.rows("services")[0]["name"] = "Renamed"

        assert (await catalog.get_service(service_row["id"]))["name"] == "Business Website"

        with patch("portal.core.cache.time.time", return_value=time.time() + catalog.cache.default_ttl + 1):
            assert (await catalog.get_service(service_row["id"]))["name"] == "Renamed"

    @pytest.mark.asyncio
    async def test_missing_service_is_not_cached(self, fake_db) -> None:
        catalog = CatalogService()

        assert await catalog.get_service("missing") is None
        added = fake_db.seed("services", {"id": "missing", "name": "Late", "price": 1, "is_active": True})

        assert (await catalog.get_service("missing"))["name"] == added["name"]
