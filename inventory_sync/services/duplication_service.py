"""Sales-metric duplication — investigate, clean, validate.

Overlapping sync runs sometimes write two or more sales_metrics rows for
the same (date, variant). The earliest-created row is treated as the
real one; later copies are the double counts and get deleted.
"""

import logging
from collections import defaultdict
from datetime import date

from sqlalchemy.orm import Session

from ..models import ProductVariant, SalesMetric
from ..models.base import utcnow
from . import sync_log_service

log = logging.getLogger(__name__)


def _duplicate_groups(db: Session, metric_date: date, specific_sku: str | None = None) -> list[list]:
    q = (
        db.query(SalesMetric, ProductVariant)
        .outerjoin(ProductVariant, SalesMetric.product_variant_id == ProductVariant.id)
        .filter(SalesMetric.metric_date == metric_date)
    )
    if specific_sku:
        q = q.filter(ProductVariant.sku_variant == specific_sku.strip())
    rows = q.order_by(SalesMetric.created_at, SalesMetric.id).all()

    groups: dict[str, list] = defaultdict(list)
    for metric, variant in rows:
        groups[metric.product_variant_id].append((metric, variant))
    return [g for g in groups.values() if len(g) > 1]


def investigate(db: Session, metric_date: date) -> dict:
    """Every (date, variant) with more than one row, oldest entry first."""
    duplications = []
    for group in _duplicate_groups(db, metric_date):
        variant = group[0][1]
        metrics = [m for m, _ in group]
        duplications.append(
            {
                "variant_id": metrics[0].product_variant_id,
                "sku_variant": variant.sku_variant if variant else None,
                "product_name": variant.product.name if variant and variant.product else None,
                "duplicate_count": len(metrics),
                "total_sales": sum(m.sales_quantity or 0 for m in metrics),
                "total_orders": sum(m.orders_count or 0 for m in metrics),
                "entries": [
                    {
                        "id": m.id,
                        "sales_quantity": m.sales_quantity,
                        "orders_count": m.orders_count,
                        "created_at": m.created_at.isoformat() if m.created_at else None,
                    }
                    for m in metrics
                ],
            }
        )
    extra = sum(d["duplicate_count"] - 1 for d in duplications)
    log.info(f"Investigated {metric_date}: {len(duplications)} duplicated variants, {extra} extra rows")
    return {
        "success": True,
        "date": metric_date.isoformat(),
        "duplications": duplications,
        "investigation_summary": {
            "total_duplicated_variants": len(duplications),
            "total_duplicate_entries": extra,
        },
    }


def clean(db: Session, metric_date: date, specific_sku: str | None = None) -> dict:
    """Keep the earliest row per group, delete the rest. Zero deletions once clean."""
    groups = _duplicate_groups(db, metric_date, specific_sku)
    entry = sync_log_service.create_log(db, "duplication_fix", total_items=len(groups))

    deleted = 0
    cleaned = []
    try:
        for group in groups:
            keep, *extras = [m for m, _ in group]
            for m in extras:
                db.delete(m)
            deleted += len(extras)
            variant = group[0][1]
            cleaned.append(
                {
                    "variant_id": keep.product_variant_id,
                    "sku_variant": variant.sku_variant if variant else None,
                    "kept_entry_id": keep.id,
                    "deleted_entry_ids": [m.id for m in extras],
                }
            )
        entry.processed_items = len(groups)
        entry.updated_items = deleted
        entry.details = {"date": metric_date.isoformat(), "specific_sku": specific_sku, "cleaned": cleaned}
        entry.last_activity_at = utcnow()
        db.flush()
    except Exception as e:
        db.rollback()
        sync_log_service.transition(db, entry, "failed", error_message=str(e))
        raise
    sync_log_service.transition(db, entry, "completed")

    log.info(f"Cleaned {metric_date}: deleted {deleted} duplicate sales metric rows")
    return {
        "success": True,
        "date": metric_date.isoformat(),
        "process_id": entry.process_id,
        "deleted_entries": deleted,
        "cleaned_variants": cleaned,
    }


def validate(db: Session, metric_date: date) -> dict:
    remaining = _duplicate_groups(db, metric_date)
    return {
        "success": True,
        "date": metric_date.isoformat(),
        "is_clean": not remaining,
        "duplicates_remaining": len(remaining),
        "validation_results": [
            {"variant_id": g[0][0].product_variant_id, "entries": len(g)} for g in remaining
        ],
    }
