"""Shopify Admin REST connector — variants, SKUs and inventory levels.

Every call goes through RateLimitedClient, so 429s and transport errors
are retried there. This layer turns the remaining error statuses into
typed exceptions:
  - 404            -> ShopifyNotFoundError
  - other >= 400   -> ShopifyAPIError(status_code)
  - missing creds  -> ShopifyConfigError (raised before any request)

Called by: connectors/catalog.py, services/sku_repair_service.py,
           services/inventory_push_service.py,
           services/inventory_correction_service.py, dependencies.py
Depends on: http_client.py, cache.py, config.py, exceptions.py
"""

import logging

import httpx

from ..cache import TTLCache
from ..config import settings
from ..exceptions import ShopifyAPIError, ShopifyConfigError, ShopifyNotFoundError
from ..http_client import RateLimitedClient

log = logging.getLogger(__name__)

PRIMARY_LOCATION_KEY = "primary_location_id"


class ShopifyConnector:
    def __init__(
        self,
        base_url: str,
        client: RateLimitedClient,
        cache: TTLCache | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.cache = cache or TTLCache(default_ttl=settings.location_cache_ttl_seconds)

    @classmethod
    def from_settings(
        cls,
        http: httpx.AsyncClient | None = None,
        cache: TTLCache | None = None,
        **client_kwargs,
    ) -> "ShopifyConnector":
        """Build a connector from .env settings. Fails fast on missing credentials."""
        if not settings.shopify_store_domain.strip() or not settings.shopify_access_token.strip():
            raise ShopifyConfigError(
                "Shopify credentials not configured",
                "set SHOPIFY_STORE_DOMAIN and SHOPIFY_ACCESS_TOKEN",
            )
        client = RateLimitedClient(
            http,
            headers={
                "X-Shopify-Access-Token": settings.shopify_access_token,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            **client_kwargs,
        )
        return cls(settings.shopify_admin_url, client, cache)

    async def aclose(self) -> None:
        await self.client.aclose()

    # ── Low level ───────────────────────────────────────────────────

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send one request and raise a typed error for any non-2xx status."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        resp = await self.client.request(method, url, **kwargs)
        if resp.status_code == 404:
            raise ShopifyNotFoundError(f"{method} {path} not found", resp.text[:300])
        if resp.status_code >= 400:
            raise ShopifyAPIError(
                f"{method} {path} returned {resp.status_code}",
                resp.text[:300],
                status_code=resp.status_code,
            )
        return resp

    # ── Variants ────────────────────────────────────────────────────

    async def update_variant_sku(self, variant_id: int, sku: str) -> dict:
        resp = await self.request(
            "PUT",
            f"variants/{variant_id}.json",
            json={"variant": {"id": variant_id, "sku": sku}},
        )
        return resp.json().get("variant", {})

    async def find_variant_by_sku(self, sku: str) -> dict | None:
        """Exact SKU match. The endpoint's filter is loose, so re-check locally."""
        resp = await self.request("GET", "variants.json", params={"sku": sku})
        for variant in resp.json().get("variants", []):
            if (variant.get("sku") or "") == sku:
                return variant
        return None

    # ── Inventory ───────────────────────────────────────────────────

    async def get_primary_location_id(self) -> int:
        cached = self.cache.get(PRIMARY_LOCATION_KEY)
        if cached is not None:
            return cached
        resp = await self.request("GET", "locations.json")
        locations = resp.json().get("locations", [])
        if not locations:
            raise ShopifyAPIError("Store has no inventory locations", status_code=resp.status_code)
        primary = next(
            (loc for loc in locations if loc.get("legacy") or loc.get("primary")),
            locations[0],
        )
        self.cache.set(PRIMARY_LOCATION_KEY, primary["id"])
        log.info(f"Shopify primary location: {primary.get('name')} ({primary['id']})")
        return primary["id"]

    def invalidate_location_cache(self) -> None:
        self.cache.invalidate(PRIMARY_LOCATION_KEY)

    async def get_inventory_levels(self, inventory_item_id: int) -> list[dict]:
        resp = await self.request(
            "GET",
            "inventory_levels.json",
            params={"inventory_item_ids": str(inventory_item_id)},
        )
        return resp.json().get("inventory_levels", [])

    async def set_inventory_level(self, inventory_item_id: int, location_id: int, available: int) -> dict:
        resp = await self.request(
            "POST",
            "inventory_levels/set.json",
            json={
                "location_id": location_id,
                "inventory_item_id": inventory_item_id,
                "available": available,
            },
        )
        return resp.json().get("inventory_level", {})

    async def adjust_inventory_level(self, inventory_item_id: int, location_id: int, adjustment: int) -> dict:
        """Relative change of available stock; negative values take stock away."""
        resp = await self.request(
            "POST",
            "inventory_levels/adjust.json",
            json={
                "location_id": location_id,
                "inventory_item_id": inventory_item_id,
                "available_adjustment": adjustment,
            },
        )
        return resp.json().get("inventory_level", {})
