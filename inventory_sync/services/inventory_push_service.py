"""
inventory_push_service.py — Push approved delivery quantities to Shopify stock.

For each approved item the remote level is read fresh and set to
available + approved quantity, then the local delivery item is marked
synced so the same approval is never applied twice.

Business Rules:
- One push per delivery at a time: deliveries.sync_in_progress is taken
  with a conditional UPDATE; a lock older than sync_lock_minutes is stale
  and may be taken over
- Items already synced_to_shopify are reported as already_synced, never
  re-applied (the synced flag is the only idempotence guard)
- Quantity 0 -> skipped; no SKU / no delivery item / variant missing
  remotely -> per-item failure, the batch continues
- Level is read at the primary location (fallback: first level listed)
- After the set the level is read back; a result more than
  VERIFY_TOLERANCE away from the expected quantity is a per-item failure
  and the item stays unsynced
- Each item commits on its own so a crash keeps earlier synced flags
- resync_delivery picks items (failed ones by default, specific SKUs, or
  all) and runs the same push, which clears their synced flag only once
  the delivery lock is held
- One sync log row per invocation with counts and per-item results

Called by: routers/functions.py (sync-inventory-shopify, resync-delivery),
           services/inventory_correction_service.py (level_at, VERIFY_TOLERANCE)
Depends on: connectors/shopify.py, models (Delivery, DeliveryItem),
            services/sync_log_service.py
"""

import logging
from datetime import timedelta

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.shopify import ShopifyConnector
from ..exceptions import NotFoundError, ShopifyError, SyncInProgressError
from ..models import Delivery, DeliveryItem, ProductVariant
from ..models.base import utcnow
from . import sync_log_service

log = logging.getLogger(__name__)

VERIFY_TOLERANCE = 1


# ── Delivery lock ───────────────────────────────────────────────────


def _lock_cutoff():
    return utcnow() - timedelta(minutes=settings.sync_lock_minutes)


def lock_is_held(delivery: Delivery) -> bool:
    if not delivery.sync_in_progress:
        return False
    return bool(delivery.last_sync_attempt and delivery.last_sync_attempt > _lock_cutoff())


def acquire_lock(db: Session, delivery: Delivery) -> None:
    """Take the push lock or raise SyncInProgressError."""
    if delivery.sync_in_progress and not lock_is_held(delivery):
        log.warning(f"Delivery {delivery.id}: taking over stale sync lock")
    taken = (
        db.query(Delivery)
        .filter(
            Delivery.id == delivery.id,
            or_(
                Delivery.sync_in_progress.is_(False),
                Delivery.last_sync_attempt.is_(None),
                Delivery.last_sync_attempt <= _lock_cutoff(),
            ),
        )
        .update(
            {
                Delivery.sync_in_progress: True,
                Delivery.last_sync_attempt: utcnow(),
                Delivery.sync_attempts: Delivery.sync_attempts + 1,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    db.refresh(delivery)
    if not taken:
        raise SyncInProgressError(f"Delivery {delivery.id} is already being synced")


def release_lock(db: Session, delivery: Delivery, error_message: str | None) -> None:
    pending = (
        db.query(DeliveryItem)
        .filter(
            DeliveryItem.delivery_id == delivery.id,
            DeliveryItem.quantity_approved > 0,
            DeliveryItem.synced_to_shopify.is_(False),
        )
        .count()
    )
    delivery.sync_in_progress = False
    delivery.synced_to_shopify = pending == 0
    delivery.sync_error_message = error_message
    db.commit()



# ── Per-item push ───────────────────────────────────────────────────


def _delivery_item_for(db: Session, delivery_id: int, variant_id: str) -> tuple[DeliveryItem | None, bool]:
    """(next unsynced item, whether every matching item is already synced)."""
    items = (
        db.query(DeliveryItem)
        .filter(
            DeliveryItem.delivery_id == delivery_id,
            DeliveryItem.product_variant_id == variant_id,
        )
        .order_by(DeliveryItem.id)
        .all()
    )
    pending = [i for i in items if not i.synced_to_shopify]
    return (pending[0] if pending else None), bool(items) and not pending


def _record_failure(db: Session, d_item: DeliveryItem | None, result: dict, error: str) -> dict:
    result.update(status="failed", error=error)
    if d_item is not None:
        d_item.sync_error_message = error[:1000]
        d_item.last_sync_attempt = utcnow()
        d_item.sync_attempt_count = (d_item.sync_attempt_count or 0) + 1
        db.commit()
    log.warning(f"Inventory push failed for SKU {result['sku']}: {error}")
    return result


def level_at(levels: list[dict], location_id: int) -> int:
    """Available quantity at one location; a location with no level counts as 0."""
    level = next((lv for lv in levels if lv.get("location_id") == location_id), None)
    return int((level or {}).get("available") or 0)


async def _push_item(db: Session, connector: ShopifyConnector, delivery_id: int, item: dict) -> dict:
    sku = (item.get("sku_variant") or "").strip()
    qty = int(item.get("quantity_approved") or 0)
    variant_id = item.get("variant_id")
    result = {"sku": sku, "variant_id": variant_id, "added_quantity": qty}

    d_item, all_synced = _delivery_item_for(db, delivery_id, variant_id)
    if all_synced:
        result["status"] = "already_synced"
        return result
    if qty <= 0:
        result["status"] = "skipped"
        return result
    if not sku:
        return _record_failure(db, d_item, result, "missing SKU")
    if d_item is None:
        return _record_failure(db, None, result, "no delivery item for this variant")

    try:
        remote = await connector.find_variant_by_sku(sku)
        if remote is None:
            return _record_failure(db, d_item, result, "variant not found remotely")
        inventory_item_id = remote.get("inventory_item_id")
        if not inventory_item_id:
            return _record_failure(db, d_item, result, "remote variant has no inventory item")

        primary_id = await connector.get_primary_location_id()
        levels = await connector.get_inventory_levels(inventory_item_id)
        level = next((lv for lv in levels if lv.get("location_id") == primary_id), None)
        if level is None and levels:
            level = levels[0]
        location_id = level["location_id"] if level else primary_id
        previous = int((level or {}).get("available") or 0)
        new_quantity = previous + qty

        await connector.set_inventory_level(inventory_item_id, location_id, new_quantity)
        verified = level_at(await connector.get_inventory_levels(inventory_item_id), location_id)
    except ShopifyError as e:
        return _record_failure(db, d_item, result, str(e))

    result.update(
        previous_quantity=previous,
        new_quantity=new_quantity,
        verified_quantity=verified,
        shopify_variant_id=remote.get("id"),
        inventory_item_id=inventory_item_id,
        location_id=location_id,
        variant_title=remote.get("title"),
    )
    if abs(verified - new_quantity) > VERIFY_TOLERANCE:
        return _record_failure(
            db, d_item, result,
            f"level not applied: expected {new_quantity}, found {verified}",
        )

    d_item.synced_to_shopify = True
    d_item.last_sync_attempt = utcnow()
    d_item.sync_attempt_count = (d_item.sync_attempt_count or 0) + 1
    d_item.sync_error_message = None
    db.commit()

    result["status"] = "success"
    log.info(f"SKU {sku}: {previous} + {qty} = {verified} at location {location_id}")
    return result


# ── Batch entry points ──────────────────────────────────────────────


def _summarize(results: list[dict]) -> dict:
    by_status = {"success": 0, "failed": 0, "skipped": 0, "already_synced": 0}
    for r in results:
        by_status[r["status"]] += 1
    return {
        "successful": by_status["success"],
        "failed": by_status["failed"],
        "skipped": by_status["skipped"],
        "already_synced": by_status["already_synced"],
        "total": len(results),
    }


def _overall_status(summary: dict) -> str:
    if summary["failed"] and summary["successful"]:
        return "partial"
    if summary["failed"]:
        return "failed"
    if summary["successful"]:
        return "success"
    return "noop"


def _reset_synced_flags(db: Session, delivery_id: int, item_ids: list[int]) -> None:
    """Operator override for resync. Only called while the delivery lock is held."""
    (
        db.query(DeliveryItem)
        .filter(DeliveryItem.delivery_id == delivery_id, DeliveryItem.id.in_(item_ids))
        .update(
            {DeliveryItem.synced_to_shopify: False, DeliveryItem.sync_error_message: None},
            synchronize_session="fetch",
        )
    )
    db.commit()


async def sync_approved_items(
    db: Session,
    connector: ShopifyConnector,
    delivery_id: int,
    approved_items: list[dict],
    *,
    sync_type: str = "inventory_push",
    reset_item_ids: list[int] | None = None,
) -> dict:
    """Push each approved item once, strictly in input order.

    reset_item_ids clears the synced flag on those delivery items after
    the lock is taken, so a resync that loses the lock race changes nothing.
    """
    delivery = db.get(Delivery, delivery_id)
    if not delivery:
        raise NotFoundError(f"Delivery {delivery_id} not found")

    acquire_lock(db, delivery)
    entry = None
    results: list[dict] = []
    calls_before = connector.client.api_calls
    hits_before = connector.client.rate_limit_hits
    error_message = None
    try:
        entry = sync_log_service.create_log(
            db, sync_type, delivery_id=delivery_id, total_items=len(approved_items)
        )
        if reset_item_ids:
            _reset_synced_flags(db, delivery_id, reset_item_ids)
        for item in approved_items:
            results.append(await _push_item(db, connector, delivery_id, item))
    except Exception as e:
        db.rollback()
        error_message = str(e)
        if entry is not None:
            sync_log_service.finish(db, entry, "failed", error_message=error_message)
        raise
    finally:
        failures = [r for r in results if r["status"] == "failed"]
        if error_message is None and failures:
            error_message = "; ".join(f"{r['sku']}: {r['error']}" for r in failures)[:2000]
        release_lock(db, delivery, error_message)

    summary = _summarize(results)
    status = _overall_status(summary)
    entry.processed_items = summary["total"]
    entry.updated_items = summary["successful"]
    entry.error_items = summary["failed"]
    entry.skipped_items = summary["skipped"] + summary["already_synced"]
    entry.api_calls = connector.client.api_calls - calls_before
    entry.rate_limit_hits = connector.client.rate_limit_hits - hits_before
    entry.details = {"results": results}
    log_status = sync_log_service.finish(
        db,
        entry,
        "failed" if status == "failed" else "completed",
        error_message=error_message,
    )

    log.info(
        f"Delivery {delivery_id} push ({sync_type}): {summary['successful']} ok, "
        f"{summary['failed']} failed, {summary['already_synced']} already synced"
    )
    return {
        "success": summary["failed"] == 0,
        "status": status,
        "process_id": entry.process_id,
        "log_status": log_status,
        "results": results,
        "summary": summary,
    }


def select_resync_items(
    db: Session,
    delivery_id: int,
    specific_skus: list[str] | None = None,
    retry_all: bool = False,
) -> list[DeliveryItem]:
    q = (
        db.query(DeliveryItem)
        .join(ProductVariant, DeliveryItem.product_variant_id == ProductVariant.id)
        .filter(DeliveryItem.delivery_id == delivery_id, DeliveryItem.quantity_approved > 0)
    )
    if specific_skus:
        wanted = {s.strip() for s in specific_skus if s and s.strip()}
        q = q.filter(ProductVariant.sku_variant.in_(wanted))
    elif not retry_all:
        q = q.filter(
            or_(
                DeliveryItem.synced_to_shopify.is_(False),
                DeliveryItem.sync_error_message.isnot(None),
            )
        )
    return q.order_by(DeliveryItem.id).all()


async def resync_delivery(
    db: Session,
    connector: ShopifyConnector,
    delivery_id: int,
    specific_skus: list[str] | None = None,
    retry_all: bool = False,
) -> dict:
    """Operator replay: clear the synced flag on the chosen items and push again."""
    delivery = db.get(Delivery, delivery_id)
    if not delivery:
        raise NotFoundError(f"Delivery {delivery_id} not found")
    if lock_is_held(delivery):
        raise SyncInProgressError(f"Delivery {delivery_id} is already being synced")

    items = select_resync_items(db, delivery_id, specific_skus, retry_all)
    if not items:
        return {
            "success": True,
            "status": "noop",
            "process_id": None,
            "results": [],
            "summary": _summarize([]),
            "attempted_items": 0,
            "message": "No items need resync",
        }

    approved = [
        {
            "variant_id": i.product_variant_id,
            "sku_variant": i.variant.sku_variant if i.variant else None,
            "quantity_approved": i.quantity_approved,
        }
        for i in items
    ]
    log.info(f"Delivery {delivery_id}: resync of {len(approved)} item(s) requested")

    result = await sync_approved_items(
        db,
        connector,
        delivery_id,
        approved,
        sync_type="inventory_resync",
        reset_item_ids=[i.id for i in items],
    )
    result["attempted_items"] = len(approved)
    return result
