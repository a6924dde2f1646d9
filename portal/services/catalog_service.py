"""Service catalog lookups with caching."""

from typing import Any

from portal.core.cache import get_cache
from portal.core.supabase import get_supabase_client

CACHE_PREFIX = "services:"


class CatalogService:
    """Read access to the ``services`` table, cached for the configured TTL."""

    def __init__(self) -> None:
        """Initialize catalog service with Supabase client and cache."""
        self.client = get_supabase_client()
        self.cache = get_cache()

    async def list_active_services(self) -> list[dict[str, Any]]:
        """List services that can currently be ordered.

        Returns:
            list: Active services ordered by price.
        """
        cache_key = f"{CACHE_PREFIX}active"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        response = (
            self.client.table("services")
            .select("*")
            .eq("is_active", True)
            .order("price")
            .execute()
        )
        services = response.data or []
        self.cache.set(cache_key, services)
        return services

    async def get_service(self, service_id: str) -> dict[str, Any] | None:
        """Get a service by ID, active or not.

        Args:
            service_id: The service's ID.

        Returns:
            dict | None: The services row or None if not found.
        """
        cache_key = f"{CACHE_PREFIX}{service_id}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        response = (
            self.client.table("services")
            .select("*")
            .eq("id", str(service_id))
            .maybe_single()
            .execute()
        )
        service = response.data if response and response.data else None
        if service:
            self.cache.set(cache_key, service)
        return service
