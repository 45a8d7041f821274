"""
dependencies.py — Shared FastAPI Dependencies

Business Rules:
- get_shopify_connector builds a connector per request from settings and
  closes it afterwards; missing credentials abort with a 500 and a clear
  message before any work starts
- to_http_exception is the single place typed errors become status codes

Called by: all routers
Depends on: connectors/shopify.py, exceptions.py
"""

import logging

from fastapi import HTTPException

from .config import settings
from .connectors.catalog import CatalogWalker
from .connectors.shopify import ShopifyConnector
from .exceptions import (
    ShopifyConfigError,
    ShopifyConnectionError,
    ShopifyError,
    ShopifyRateLimitError,
    SkuConflictError,
    SyncError,
)

log = logging.getLogger(__name__)


async def get_shopify_connector():
    try:
        connector = ShopifyConnector.from_settings()
    except ShopifyConfigError as e:
        log.error(f"Shopify connector unavailable: {e}")
        raise HTTPException(500, str(e))
    try:
        yield connector
    finally:
        await connector.aclose()


def build_walker(connector: ShopifyConnector) -> CatalogWalker:
    return CatalogWalker(connector, page_size=settings.catalog_page_size)


def to_http_exception(exc: Exception) -> HTTPException:
    """Map sync/Shopify errors to an HTTPException the router can raise."""
    if isinstance(exc, SkuConflictError):
        return HTTPException(
            409,
            {"error": exc.message, "conflicting_sku": exc.conflicting_sku,
             "conflicting_variant_id": exc.conflicting_variant_id},
        )
    if isinstance(exc, SyncError):
        return HTTPException(exc.status_code, exc.message)
    if isinstance(exc, ShopifyConfigError):
        return HTTPException(500, str(exc))
    if isinstance(exc, ShopifyRateLimitError):
        return HTTPException(429, f"Shopify rate limit: {exc}")
    if isinstance(exc, ShopifyConnectionError):
        return HTTPException(503, f"Shopify unreachable: {exc}")
    if isinstance(exc, ShopifyError):
        return HTTPException(502, f"Shopify error: {exc}")
    return HTTPException(500, "Internal error")
