"""
inventory_correction_service.py — Take back stock that a delivery added twice.

When a delivery was pushed twice (before the synced flag existed, or by a
forced resync), the remote store carries the approved quantity twice.
For each reported SKU this applies a negative adjustment of the duplicated
quantity at the primary location and reads the level back.

Business Rules:
- Relative adjust (inventory_levels/adjust), never an absolute set, so
  sales recorded since the double push are kept
- Current level and the read-back are both taken at the primary location
- A SKU not found remotely, a location with no level, or a read-back more
  than VERIFY_TOLERANCE from the expected level is a per-item failure;
  the batch continues
- A result below zero is applied and logged as a warning
- One sync log row per invocation (sync_type="inventory_duplication_fix")

Called by: routers/functions.py (fix-inventory-duplication)
Depends on: connectors/shopify.py, services/inventory_push_service.py
            (level_at, VERIFY_TOLERANCE), services/sync_log_service.py
"""

import logging

from sqlalchemy.orm import Session

from ..connectors.shopify import ShopifyConnector
from ..exceptions import NotFoundError, ShopifyError
from ..models import Delivery
from . import sync_log_service
from .inventory_push_service import VERIFY_TOLERANCE, level_at

log = logging.getLogger(__name__)


async def _correct_item(connector: ShopifyConnector, sku: str, duplicated: int) -> dict:
    result = {"sku": sku, "reduction_requested": duplicated}
    try:
        remote = await connector.find_variant_by_sku(sku)
        if remote is None or not remote.get("inventory_item_id"):
            result.update(status="not_found", error="variant not found remotely")
            return result
        inventory_item_id = remote["inventory_item_id"]
        location_id = await connector.get_primary_location_id()

        levels = await connector.get_inventory_levels(inventory_item_id)
        if not any(lv.get("location_id") == location_id for lv in levels):
            result.update(status="failed", error=f"no inventory level at location {location_id}")
            return result
        previous = level_at(levels, location_id)
        expected = previous - duplicated

        await connector.adjust_inventory_level(inventory_item_id, location_id, -duplicated)
        final = level_at(await connector.get_inventory_levels(inventory_item_id), location_id)
    except ShopifyError as e:
        result.update(status="failed", error=str(e))
        return result

    result.update(
        shopify_variant_id=remote.get("id"),
        inventory_item_id=inventory_item_id,
        location_id=location_id,
        previous_inventory=previous,
        expected_inventory=expected,
        corrected_inventory=final,
    )
    if abs(final - expected) > VERIFY_TOLERANCE:
        result.update(status="failed", error=f"adjustment not applied: expected {expected}, found {final}")
        return result
    if final < 0:
        log.warning(f"SKU {sku}: stock is {final} after removing {duplicated} duplicated units")
    result["status"] = "corrected"
    return result


async def fix_inventory_duplication(
    db: Session,
    connector: ShopifyConnector,
    items: list[dict],
    *,
    delivery_id: int | None = None,
) -> dict:
    """Remove duplicated_quantity from each SKU's remote stock, in input order.

    items: [{"sku": str, "duplicated_quantity": int}, ...]
    """
    if delivery_id is not None and not db.get(Delivery, delivery_id):
        raise NotFoundError(f"Delivery {delivery_id} not found")

    entry = sync_log_service.create_log(
        db, "inventory_duplication_fix", delivery_id=delivery_id, total_items=len(items)
    )
    calls_before = connector.client.api_calls
    hits_before = connector.client.rate_limit_hits
    results: list[dict] = []
    try:
        for item in items:
            sku = (item.get("sku") or "").strip()
            result = await _correct_item(connector, sku, int(item["duplicated_quantity"]))
            if result["status"] != "corrected":
                log.warning(f"Duplication fix for SKU {sku} {result['status']}: {result['error']}")
            results.append(result)
    except Exception as e:
        db.rollback()
        sync_log_service.finish(db, entry, "failed", error_message=str(e))
        raise

    corrected = sum(1 for r in results if r["status"] == "corrected")
    failures = [r for r in results if r["status"] != "corrected"]
    error_message = "; ".join(f"{r['sku']}: {r['error']}" for r in failures)[:2000] or None

    entry.processed_items = len(results)
    entry.updated_items = corrected
    entry.error_items = len(failures)
    entry.api_calls = connector.client.api_calls - calls_before
    entry.rate_limit_hits = connector.client.rate_limit_hits - hits_before
    entry.details = {"results": results}
    log_status = sync_log_service.finish(
        db,
        entry,
        "failed" if results and not corrected else "completed",
        error_message=error_message,
    )

    log.info(
        f"Duplication fix{f' for delivery {delivery_id}' if delivery_id else ''}: "
        f"{corrected}/{len(results)} SKUs corrected"
    )
    return {
        "success": not failures,
        "process_id": entry.process_id,
        "log_status": log_status,
        "delivery_id": delivery_id,
        "corrected_items": corrected,
        "total_items": len(results),
        "results": results,
    }
