"""
sku_repair_service.py — Replace artificial Shopify SKUs with the variant id.

Walks the remote catalog page by page and rewrites every artificial SKU
(see sku_rules.is_artificial) to the variant's own Shopify id. Ids are
unique and stable, so a repaired variant never qualifies again and the
whole job can be re-run safely.

Business Rules:
- One PUT per qualifying variant, sequential, in catalog order
- A failed variant update is counted and the walk continues
- Progress (cursor + counters) is saved to the sync log after every page
- max_variants is checked between pages; a started page is finished
- An operator pause or cancel is seen between pages by re-reading the log
  status; the saved cursor is kept and the final transition is skipped
- Listing failure marks the log failed and propagates to the caller
- Resume: pass process_id (cursor taken from the log) or an explicit
  resume_from_cursor

Called by: routers/functions.py (assign-shopify-skus), scripts/run_sku_repair.py
Depends on: connectors/catalog.py, sku_rules.py, services/sync_log_service.py
"""

import logging
from dataclasses import asdict, dataclass

from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.catalog import CatalogPage, CatalogWalker
from ..exceptions import InvalidSyncTransition, NotFoundError, ShopifyError
from ..models import SyncLog
from ..models.base import utcnow
from ..sku_rules import is_artificial
from . import sync_log_service

log = logging.getLogger(__name__)

MAX_DETAIL_ROWS = 200


@dataclass
class RepairCounts:
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    products_scanned: int = 0


def needs_repair(sku: str | None, variant_id) -> bool:
    """Artificial and not already rewritten to the variant's own id."""
    if not is_artificial(sku):
        return False
    return (sku or "").strip() != str(variant_id)


def _open_batch(db: Session, process_id: str | None) -> SyncLog:
    if not process_id:
        return sync_log_service.create_log(db, "sku_repair")
    entry = sync_log_service.get_log(db, process_id)
    if entry.sync_type != "sku_repair":
        raise NotFoundError(f"Sync process {process_id} is not a SKU repair")
    if entry.status == "paused":
        sync_log_service.transition(db, entry, "running")
    elif entry.status != "running":
        raise InvalidSyncTransition(
            f"Sync process {process_id} is {entry.status} and cannot be resumed"
        )
    return entry


async def _repair_page(connector, page: CatalogPage, counts: RepairCounts, details: list) -> None:
    for product in page.products:
        for variant in product.get("variants") or []:
            counts.processed += 1
            variant_id = variant.get("id")
            old_sku = variant.get("sku")
            if variant_id is None or not needs_repair(old_sku, variant_id):
                counts.skipped += 1
                continue

            new_sku = str(variant_id)
            row = {
                "product_id": product.get("id"),
                "product_title": product.get("title"),
                "variant_id": variant_id,
                "old_sku": old_sku,
                "new_sku": new_sku,
            }
            try:
                await connector.update_variant_sku(variant_id, new_sku)
            except ShopifyError as e:
                counts.errors += 1
                row.update(status="error", error=str(e))
                log.warning(f"SKU repair failed for variant {variant_id}: {e}")
            else:
                counts.updated += 1
                row["status"] = "updated"
            if len(details) < MAX_DETAIL_ROWS:
                details.append(row)


class _Progress:
    """Writes this invocation's counts on top of the totals the log had when it started."""

    def __init__(self, entry: SyncLog, client):
        self.entry = entry
        self.client = client
        self.base = {
            "processed_items": entry.processed_items or 0,
            "updated_items": entry.updated_items or 0,
            "skipped_items": entry.skipped_items or 0,
            "error_items": entry.error_items or 0,
            "products_scanned": entry.products_scanned or 0,
            "api_calls": (entry.api_calls or 0) - client.api_calls,
            "rate_limit_hits": (entry.rate_limit_hits or 0) - client.rate_limit_hits,
        }

    def save(self, db: Session, counts: RepairCounts, cursor: str | None) -> None:
        entry, base = self.entry, self.base
        entry.processed_items = base["processed_items"] + counts.processed
        entry.updated_items = base["updated_items"] + counts.updated
        entry.skipped_items = base["skipped_items"] + counts.skipped
        entry.error_items = base["error_items"] + counts.errors
        entry.products_scanned = base["products_scanned"] + counts.products_scanned
        entry.api_calls = base["api_calls"] + self.client.api_calls
        entry.rate_limit_hits = base["rate_limit_hits"] + self.client.rate_limit_hits
        entry.current_cursor = cursor
        entry.last_activity_at = utcnow()
        db.commit()


def _response(entry: SyncLog, counts: RepairCounts, details: list, status: str,
              stopped_by: str, message: str) -> dict:
    return {
        "success": True,
        "status": status,
        "stopped_by": stopped_by,
        "process_id": entry.process_id,
        "summary": asdict(counts),
        "totals": sync_log_service.log_to_dict(entry),
        "next_cursor": entry.current_cursor,
        "message": message,
        "details": details,
    }


async def repair_artificial_skus(
    db: Session,
    walker: CatalogWalker,
    *,
    max_variants: int | None = None,
    process_id: str | None = None,
    resume_from_cursor: str | None = None,
) -> dict:
    """Run one bounded invocation of the SKU repair batch."""
    budget = max_variants or settings.sku_repair_batch_size
    connector = walker.connector

    entry = _open_batch(db, process_id)
    counts = RepairCounts()
    if process_id and not resume_from_cursor and (entry.details or {}).get("walk_finished"):
        # Paused by an operator after the last page; nothing left to walk
        sync_log_service.transition(db, entry, "completed")
        return _response(entry, counts, [], "completed", "end_of_catalog",
                         "Catalog walk had already finished; batch closed")

    cursor = resume_from_cursor or entry.current_cursor
    log.info(
        f"SKU repair {entry.process_id}: budget={budget} cursor={'yes' if cursor else 'start'}"
    )

    progress = _Progress(entry, connector.client)
    details: list[dict] = []
    stopped_by = "batch_limit"

    try:
        while True:
            if sync_log_service.current_status(db, entry) != "running":
                stopped_by = "operator"
                break
            page = await walker.fetch_page(cursor)
            counts.products_scanned += len(page.products)
            await _repair_page(connector, page, counts, details)
            cursor = page.next_cursor
            progress.save(db, counts, cursor)
            if not cursor:
                stopped_by = "end_of_catalog"
                break
            if counts.processed >= budget:
                break
    except ShopifyError as e:
        progress.save(db, counts, cursor)
        sync_log_service.finish(db, entry, "failed", error_message=str(e))
        log.error(f"SKU repair {entry.process_id} failed: {e}")
        raise

    # An operator may have paused or cancelled while the last page ran
    status = sync_log_service.current_status(db, entry)
    entry.details = {
        "last_invocation": details,
        "walk_finished": stopped_by == "end_of_catalog",
    }
    if status != "running":
        stopped_by = "operator"
        db.commit()
        message = f"Process {status} by operator; progress so far is saved"
    elif stopped_by == "end_of_catalog":
        sync_log_service.transition(db, entry, "completed")
        status = "completed"
        message = f"Catalog complete: {counts.updated} SKUs updated in this run"
    else:
        sync_log_service.transition(db, entry, "paused")
        status = "paused"
        message = (
            f"Batch limit reached after {counts.processed} variants; "
            f"resume with processId {entry.process_id}"
        )

    log.info(
        f"SKU repair {entry.process_id} {status} ({stopped_by}): processed={counts.processed} "
        f"updated={counts.updated} errors={counts.errors}"
    )
    return _response(entry, counts, details, status, stopped_by, message)
