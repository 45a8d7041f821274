"""
conftest.py — Shared Test Fixtures for the inventory sync service

Provides an in-memory SQLite database, a fake Shopify Admin API served
through httpx.MockTransport, a connector wired to it with a recording
sleep (no real waiting), a FastAPI TestClient, and factory fixtures for
products, variants and deliveries.

Business Rules:
- All tests run against an isolated in-memory DB
- No test talks to a real Shopify store
- Each test function gets fresh tables and a fresh fake store

Called by: all test files via pytest autodiscovery
Depends on: inventory_sync.models (Base), inventory_sync.database (get_db),
            inventory_sync.dependencies (get_shopify_connector)
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SHOPIFY_STORE_DOMAIN"] = "test-shop"
os.environ["SHOPIFY_ACCESS_TOKEN"] = "shpat_test_token"

import json
import re
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from inventory_sync.connectors.shopify import ShopifyConnector
from inventory_sync.http_client import RateLimitedClient
from inventory_sync.models import (
    Base, Delivery, DeliveryItem, Order, OrderItem, Product, ProductVariant,
)

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """SQLite ignores FKs by default — turn them on."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


BASE_URL = "https://test-shop.myshopify.com/admin/api/2024-01"
T0 = datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)


# ── Fake Shopify store ───────────────────────────────────────────────


class FakeShopify:
    """Just enough of the Admin REST API for the sync engines.

    products: list of {"id", "title", "variants": [{"id", "sku", "inventory_item_id"}]}
    levels:   {inventory_item_id: {location_id: available}}
    """

    def __init__(self):
        self.products: list[dict] = []
        self.levels: dict[int, dict[int, int]] = {}
        self.locations = [
            {"id": 501, "name": "Overflow", "legacy": False, "primary": False},
            {"id": 500, "name": "Workshop", "legacy": False, "primary": True},
        ]
        self.requests: list[httpx.Request] = []
        self.fail_variant_ids: set[int] = set()
        self.fail_product_listing = False
        self.frozen_items: set[int] = set()  # inventory items whose level ignores writes
        self.rate_limit_next = 0
        self.retry_after: str | None = None

    # Builders

    def add_product(self, product_id: int, title: str, variants: list[tuple[int, str | None]]) -> dict:
        product = {
            "id": product_id,
            "title": title,
            "variants": [
                {"id": vid, "product_id": product_id, "sku": sku, "title": f"{title} {vid}",
                 "inventory_item_id": vid + 1_000_000}
                for vid, sku in variants
            ],
        }
        self.products.append(product)
        return product

    def set_level(self, inventory_item_id: int, available: int, location_id: int = 500) -> None:
        self.levels.setdefault(inventory_item_id, {})[location_id] = available

    def all_variants(self) -> list[dict]:
        return [v for p in self.products for v in p["variants"]]

    def variant(self, variant_id: int) -> dict:
        return next(v for v in self.all_variants() if v["id"] == variant_id)

    def calls(self, method: str, path_fragment: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and path_fragment in r.url.path]

    # Transport

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.rate_limit_next > 0:
            self.rate_limit_next -= 1
            headers = {"Retry-After": self.retry_after} if self.retry_after else {}
            return httpx.Response(429, headers=headers, json={"errors": "Exceeded 2 calls per second"})

        path = request.url.path.split("/admin/api/2024-01/", 1)[-1]
        params = {k: v[0] for k, v in parse_qs(urlparse(str(request.url)).query).items()}

        if request.method == "GET" and path == "products.json":
            return self._products(params)
        m = re.fullmatch(r"variants/(\d+)\.json", path)
        if request.method == "PUT" and m:
            return self._update_variant(int(m.group(1)), request)
        if request.method == "GET" and path == "variants.json":
            sku = params.get("sku", "")
            found = [v for v in self.all_variants() if (v["sku"] or "").startswith(sku)]
            return httpx.Response(200, json={"variants": found})
        if request.method == "GET" and path == "locations.json":
            return httpx.Response(200, json={"locations": self.locations})
        if request.method == "GET" and path == "inventory_levels.json":
            item_id = int(params["inventory_item_ids"])
            levels = [
                {"inventory_item_id": item_id, "location_id": loc, "available": qty}
                for loc, qty in self.levels.get(item_id, {}).items()
            ]
            return httpx.Response(200, json={"inventory_levels": levels})
        if request.method == "POST" and path == "inventory_levels/set.json":
            body = json.loads(request.content)
            if body["inventory_item_id"] not in self.frozen_items:
                self.set_level(body["inventory_item_id"], body["available"], body["location_id"])
            return httpx.Response(200, json={"inventory_level": body})
        if request.method == "POST" and path == "inventory_levels/adjust.json":
            return self._adjust_level(json.loads(request.content))
        return httpx.Response(404, json={"errors": "Not Found"})

    def _products(self, params: dict) -> httpx.Response:
        if self.fail_product_listing:
            return httpx.Response(500, json={"errors": "Internal Server Error"})
        limit = int(params.get("limit", 50))
        start = int(params["page_info"][1:]) if "page_info" in params else 0
        page = self.products[start:start + limit]
        headers = {}
        if start + limit < len(self.products):
            headers["Link"] = (
                f'<{BASE_URL}/products.json?limit={limit}&page_info=p{start + limit}>; rel="next"'
            )
        return httpx.Response(200, headers=headers, json={"products": page})

    def _adjust_level(self, body: dict) -> httpx.Response:
        item_id, location_id = body["inventory_item_id"], body["location_id"]
        if location_id not in self.levels.get(item_id, {}):
            return httpx.Response(422, json={"errors": ["Inventory item is not stocked at the location"]})
        if item_id not in self.frozen_items:
            self.levels[item_id][location_id] += body["available_adjustment"]
        level = {
            "inventory_item_id": item_id,
            "location_id": location_id,
            "available": self.levels[item_id][location_id],
        }
        return httpx.Response(200, json={"inventory_level": level})

    def _update_variant(self, variant_id: int, request: httpx.Request) -> httpx.Response:
        if variant_id in self.fail_variant_ids:
            return httpx.Response(422, json={"errors": {"sku": ["is invalid"]}})
        body = json.loads(request.content)
        variant = self.variant(variant_id)
        variant["sku"] = body["variant"]["sku"]
        return httpx.Response(200, json={"variant": variant})


class SleepRecorder:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def fake_shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def connector(fake_shopify: FakeShopify, sleeper: SleepRecorder) -> ShopifyConnector:
    """Connector whose HTTP goes to the fake store and whose sleeps are recorded."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake_shopify.handler))
    client = RateLimitedClient(
        http,
        headers={"X-Shopify-Access-Token": "shpat_test_token"},
        max_attempts=3,
        base_delay=1.0,
        pacing_delay=0.2,
        sleep=sleeper,
    )
    return ShopifyConnector(BASE_URL, client)


@pytest.fixture()
def test_product(db_session: Session) -> Product:
    product = Product(name="Cotton Tee", shopify_product_id=9001, created_at=T0)
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture()
def make_variant(db_session: Session, test_product: Product):
    """Factory: make_variant(sku, stock=0, size="M", color="Blue", minutes=0)."""

    def _make(sku, stock=0, size="M", color="Blue", minutes=0, product=None):
        variant = ProductVariant(
            product_id=(product or test_product).id,
            size=size,
            color=color,
            sku_variant=sku,
            stock_quantity=stock,
            created_at=T0 + timedelta(minutes=minutes),
        )
        db_session.add(variant)
        db_session.commit()
        db_session.refresh(variant)
        return variant

    return _make


@pytest.fixture()
def test_order(db_session: Session) -> Order:
    order = Order(order_number="ORD-0001", status="in_production", created_at=T0)
    db_session.add(order)
    db_session.commit()
    db_session.refresh(order)
    return order


@pytest.fixture()
def make_delivery(db_session: Session, test_order: Order):
    """Factory: make_delivery([(variant, qty_approved), ...]) -> Delivery with items."""

    def _make(lines, tracking="DEL-0001"):
        delivery = Delivery(order_id=test_order.id, tracking_number=tracking, status="approved")
        db_session.add(delivery)
        db_session.flush()
        for variant, qty in lines:
            order_item = OrderItem(
                order_id=test_order.id, product_variant_id=variant.id, quantity=qty
            )
            db_session.add(order_item)
            db_session.flush()
            db_session.add(
                DeliveryItem(
                    delivery_id=delivery.id,
                    order_item_id=order_item.id,
                    product_variant_id=variant.id,
                    quantity_delivered=qty,
                    quantity_approved=qty,
                )
            )
        db_session.commit()
        db_session.refresh(delivery)
        return delivery

    return _make


@pytest.fixture()
def client(db_session: Session, connector: ShopifyConnector) -> TestClient:
    """FastAPI TestClient using the test session and the fake-store connector."""
    from inventory_sync.database import get_db
    from inventory_sync.dependencies import get_shopify_connector
    from inventory_sync.main import app

    def _override_db():
        yield db_session

    def _override_connector():
        return connector

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_shopify_connector] = _override_connector
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
