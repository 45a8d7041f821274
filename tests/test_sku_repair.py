"""
test_sku_repair.py — Tests for the artificial SKU repair engine

Full walk, idempotence, per-variant error isolation, batch budget with
pause/resume through the persisted cursor, cooperative cancellation
between pages, and listing failures.

Called by: pytest
Depends on: inventory_sync/services/sku_repair_service.py,
            tests/conftest.py (fake_shopify, connector)
"""

import pytest

from inventory_sync.connectors.catalog import CatalogWalker
from inventory_sync.exceptions import InvalidSyncTransition, ShopifyAPIError
from inventory_sync.models import SyncLog
from inventory_sync.services import sync_log_service
from inventory_sync.services.sku_repair_service import repair_artificial_skus

V1, V2, V3, V4, V5 = 44000000000001, 44000000000002, 44000000000003, 44000000000004, 44000000000005


@pytest.fixture()
def catalog(fake_shopify):
    """Two pages at page_size=2: [Tee, Hoodie], [Cap]."""
    fake_shopify.add_product(1, "Tee", [(V1, "SHOPIFY-1"), (V2, "COT-BLU-M-042")])
    fake_shopify.add_product(2, "Hoodie", [(V3, None), (V4, "ID-4")])
    fake_shopify.add_product(3, "Cap", [(V5, str(V5))])  # already repaired
    return fake_shopify


@pytest.fixture()
def walker(connector):
    return CatalogWalker(connector, page_size=2)


class CancellingWalker(CatalogWalker):
    """Runs a callback after each page fetch, standing in for a concurrent cancel call."""

    def __init__(self, connector, on_page, **kwargs):
        super().__init__(connector, **kwargs)
        self.on_page = on_page

    async def fetch_page(self, cursor=None):
        page = await super().fetch_page(cursor)
        self.on_page()
        return page


def _set_running(db_session, status):
    """Move whichever log is running to status, as the operator endpoints would."""
    db_session.query(SyncLog).filter(SyncLog.status == "running").update(
        {"status": status}, synchronize_session=False
    )
    db_session.commit()


# ── Full run & idempotence ───────────────────────────────────────────


class TestFullRun:
    @pytest.mark.asyncio
    async def test_repairs_only_artificial_skus(self, db_session, catalog, walker):
        result = await repair_artificial_skus(db_session, walker, max_variants=100)
        assert result["success"] is True
        assert result["status"] == "completed"
        assert result["summary"] == {
            "processed": 5, "updated": 3, "errors": 0, "skipped": 2, "products_scanned": 3,
        }
        assert result["next_cursor"] is None
        assert catalog.variant(V1)["sku"] == str(V1)
        assert catalog.variant(V2)["sku"] == "COT-BLU-M-042"
        assert catalog.variant(V3)["sku"] == str(V3)
        assert catalog.variant(V4)["sku"] == str(V4)
        assert len(catalog.calls("PUT", "/variants/")) == 3

        log = db_session.query(SyncLog).one()
        assert log.sync_type == "sku_repair"
        assert log.status == "completed"
        assert log.completed_at is not None
        assert log.updated_items == 3

    @pytest.mark.asyncio
    async def test_second_run_updates_nothing(self, db_session, catalog, walker):
        await repair_artificial_skus(db_session, walker)
        puts_after_first = len(catalog.calls("PUT", "/variants/"))

        second = await repair_artificial_skus(db_session, walker)
        assert second["summary"]["updated"] == 0
        assert second["summary"]["skipped"] == 5
        assert len(catalog.calls("PUT", "/variants/")) == puts_after_first

    @pytest.mark.asyncio
    async def test_failed_variant_does_not_abort_batch(self, db_session, catalog, walker):
        catalog.fail_variant_ids.add(V1)
        result = await repair_artificial_skus(db_session, walker)
        assert result["status"] == "completed"
        assert result["summary"]["errors"] == 1
        assert result["summary"]["updated"] == 2
        errors = [d for d in result["details"] if d["status"] == "error"]
        assert errors[0]["variant_id"] == V1
        assert catalog.variant(V1)["sku"] == "SHOPIFY-1"
        assert catalog.variant(V4)["sku"] == str(V4)


# ── Budget, pause & resume ───────────────────────────────────────────


class TestResume:
    @pytest.mark.asyncio
    async def test_budget_pauses_at_page_boundary(self, db_session, catalog, walker):
        first = await repair_artificial_skus(db_session, walker, max_variants=1)
        assert first["status"] == "paused"
        assert first["stopped_by"] == "batch_limit"
        assert first["summary"]["processed"] == 4  # whole first page
        assert first["next_cursor"] == "p2"

        log = sync_log_service.get_log(db_session, first["process_id"])
        assert log.status == "paused"
        assert log.current_cursor == "p2"

        second = await repair_artificial_skus(
            db_session, walker, max_variants=1, process_id=first["process_id"]
        )
        assert second["status"] == "completed"
        assert second["process_id"] == first["process_id"]
        assert second["summary"]["products_scanned"] == 1
        assert second["totals"]["processed_items"] == 5
        assert second["totals"]["products_scanned"] == 3
        assert db_session.query(SyncLog).count() == 1

    @pytest.mark.asyncio
    async def test_explicit_resume_cursor(self, db_session, catalog, walker):
        result = await repair_artificial_skus(db_session, walker, resume_from_cursor="p2")
        assert result["summary"]["products_scanned"] == 1
        assert catalog.variant(V1)["sku"] == "SHOPIFY-1"  # first page never visited

    @pytest.mark.asyncio
    async def test_completed_batch_cannot_be_resumed(self, db_session, catalog, walker):
        done = await repair_artificial_skus(db_session, walker)
        with pytest.raises(InvalidSyncTransition):
            await repair_artificial_skus(db_session, walker, process_id=done["process_id"])

    @pytest.mark.asyncio
    async def test_cancelled_paused_batch_cannot_be_resumed(self, db_session, catalog, walker):
        paused = await repair_artificial_skus(db_session, walker, max_variants=1)
        sync_log_service.cancel(db_session, paused["process_id"])
        with pytest.raises(InvalidSyncTransition):
            await repair_artificial_skus(db_session, walker, process_id=paused["process_id"])


# ── Cancellation ─────────────────────────────────────────────────────


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_is_seen_between_pages(self, db_session, catalog, connector):
        walker = CancellingWalker(connector, lambda: _set_running(db_session, "cancelled"), page_size=2)
        result = await repair_artificial_skus(db_session, walker, max_variants=100)

        assert result["status"] == "cancelled"
        assert result["summary"]["products_scanned"] == 2
        # The page in flight finished; the next page was never fetched
        assert catalog.variant(V4)["sku"] == str(V4)
        assert len(catalog.calls("GET", "products.json")) == 1

        log = sync_log_service.get_log(db_session, result["process_id"])
        assert log.status == "cancelled"
        assert log.current_cursor == "p2"
        assert log.updated_items == 3

    @pytest.mark.asyncio
    async def test_pause_is_seen_between_pages(self, db_session, catalog, connector):
        walker = CancellingWalker(connector, lambda: _set_running(db_session, "paused"), page_size=2)
        result = await repair_artificial_skus(db_session, walker, max_variants=100)

        assert result["status"] == "paused"
        assert result["stopped_by"] == "operator"
        assert result["next_cursor"] == "p2"
        assert len(catalog.calls("GET", "products.json")) == 1

        log = sync_log_service.get_log(db_session, result["process_id"])
        assert log.status == "paused"
        assert log.current_cursor == "p2"
        assert log.completed_at is None

        resumed = await repair_artificial_skus(
            db_session, CatalogWalker(connector, page_size=2), process_id=result["process_id"]
        )
        assert resumed["status"] == "completed"
        assert resumed["summary"]["products_scanned"] == 1
        assert resumed["totals"]["updated_items"] == 3

    @pytest.mark.asyncio
    async def test_pause_during_last_page_keeps_operator_status(self, db_session, catalog, connector):
        walker = CancellingWalker(connector, lambda: _set_running(db_session, "paused"), page_size=10)
        result = await repair_artificial_skus(db_session, walker, max_variants=100)

        assert result["status"] == "paused"
        assert result["stopped_by"] == "operator"
        assert result["summary"]["updated"] == 3
        log = sync_log_service.get_log(db_session, result["process_id"])
        assert log.status == "paused"
        assert log.details["walk_finished"] is True

        # Resuming closes the batch without walking the catalog again
        closed = await repair_artificial_skus(
            db_session, CatalogWalker(connector, page_size=10), process_id=result["process_id"]
        )
        assert closed["status"] == "completed"
        assert closed["summary"]["processed"] == 0
        assert len(catalog.calls("GET", "products.json")) == 1

    @pytest.mark.asyncio
    async def test_cancel_during_last_page_is_not_overwritten(self, db_session, catalog, connector):
        walker = CancellingWalker(connector, lambda: _set_running(db_session, "cancelled"), page_size=10)
        result = await repair_artificial_skus(db_session, walker, max_variants=100)
        assert result["status"] == "cancelled"
        assert sync_log_service.get_log(db_session, result["process_id"]).status == "cancelled"


# ── Failures & accounting ────────────────────────────────────────────


class TestFailures:
    @pytest.mark.asyncio
    async def test_listing_failure_marks_log_failed(self, db_session, catalog, walker):
        catalog.fail_product_listing = True
        with pytest.raises(ShopifyAPIError):
            await repair_artificial_skus(db_session, walker)
        log = db_session.query(SyncLog).one()
        assert log.status == "failed"
        assert "500" in log.error_message

    @pytest.mark.asyncio
    async def test_rate_limit_hits_are_recorded(self, db_session, catalog, walker, sleeper):
        catalog.rate_limit_next = 2
        result = await repair_artificial_skus(db_session, walker)
        assert result["status"] == "completed"
        assert sleeper.calls[:2] == [2.0, 4.0]
        log = db_session.query(SyncLog).one()
        assert log.rate_limit_hits == 2
        assert log.api_calls >= 5
