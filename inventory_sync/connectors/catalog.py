"""Paginated catalog walker — one page of products per call, opaque cursor.

Shopify paginates /products.json with a page_info token carried in the
Link header's rel="next" entry. The token is returned to the caller as
next_cursor and persisted in the sync log, so a walk over thousands of
variants can continue in a later, separate invocation.

Business Rules:
- First page sends limit + status filter
- Follow-up pages send ONLY limit + page_info (Shopify rejects other
  filters alongside a cursor)
- No rel="next" link -> next_cursor is None -> walk finished

Called by: services/sku_repair_service.py
Depends on: connectors/shopify.py
"""

import logging
import re
from dataclasses import dataclass, field
from typing import AsyncIterator

from .shopify import ShopifyConnector

log = logging.getLogger(__name__)

_NEXT_LINK = re.compile(r'<[^>]*[?&]page_info=([^&>]+)[^>]*>;\s*rel="?next"?')

DEFAULT_STATUS_FILTER = "active,draft"


def extract_next_cursor(link_header: str | None) -> str | None:
    """page_info token of the rel="next" entry, or None on the last page."""
    if not link_header:
        return None
    for part in link_header.split(","):
        match = _NEXT_LINK.search(part)
        if match:
            return match.group(1)
    return None


@dataclass
class CatalogPage:
    products: list[dict] = field(default_factory=list)
    next_cursor: str | None = None
    cursor: str | None = None

    @property
    def variant_count(self) -> int:
        return sum(len(p.get("variants") or []) for p in self.products)


class CatalogWalker:
    def __init__(
        self,
        connector: ShopifyConnector,
        page_size: int = 50,
        status: str = DEFAULT_STATUS_FILTER,
    ):
        self.connector = connector
        self.page_size = max(1, min(page_size, 250))
        self.status = status

    async def fetch_page(self, cursor: str | None = None) -> CatalogPage:
        if cursor:
            params = {"limit": self.page_size, "page_info": cursor}
        else:
            params = {"limit": self.page_size, "status": self.status}
        resp = await self.connector.request("GET", "products.json", params=params)
        products = resp.json().get("products", [])
        next_cursor = extract_next_cursor(resp.headers.get("link"))
        log.debug(f"Catalog page: {len(products)} products, next={'yes' if next_cursor else 'no'}")
        return CatalogPage(products=products, next_cursor=next_cursor, cursor=cursor)

    async def iter_pages(
        self, cursor: str | None = None, max_pages: int | None = None
    ) -> AsyncIterator[CatalogPage]:
        """Yield pages until the catalog ends or max_pages is reached."""
        fetched = 0
        while True:
            page = await self.fetch_page(cursor)
            fetched += 1
            yield page
            if not page.next_cursor:
                return
            if max_pages is not None and fetched >= max_pages:
                return
            cursor = page.next_cursor
