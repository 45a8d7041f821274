"""Outbound connectors — Shopify Admin REST and the paginated catalog walker."""

from .catalog import CatalogPage, CatalogWalker, extract_next_cursor  # noqa: F401
from .shopify import ShopifyConnector  # noqa: F401
