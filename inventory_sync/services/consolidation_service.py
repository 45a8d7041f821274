"""
consolidation_service.py — Merge duplicate local variants into one.

Duplicates are variants of the same product whose size and color match
after normalization (case and whitespace). Each group collapses into a
single "winner" that keeps the summed stock and every reference.

Business Rules:
- Winner priority: real numeric SKU > real SKU > artificial SKU;
  ties -> earliest created_at, then lowest id
- Two or more distinct real SKUs in one group -> not merged, reported
  as conflicting_skus for an operator to decide
- Winner stock = sum of every member's stock
- Every FK column pointing at product_variants.id is re-pointed
  (discovered from the model metadata, so new tables are covered)
- Sales metrics on a date the winner already has are folded into the
  winner's row instead of creating a (date, variant) duplicate
- Losers are deleted only after a count confirms zero references remain
- All groups merge in ONE transaction with row locks; any error rolls back
- Running it twice reports zero consolidations the second time

Called by: routers/functions.py (consolidate-duplicate-variants)
Depends on: models, sku_rules.py
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..exceptions import ConsolidationError
from ..models import Base, ProductVariant, SalesMetric
from ..sku_rules import is_artificial, is_numeric_sku, normalize_attribute

log = logging.getLogger(__name__)

_NEVER = datetime.max.replace(tzinfo=timezone.utc)


# ── Grouping & winner selection ─────────────────────────────────────


def sku_tier(sku: str | None) -> int:
    """0 = real numeric, 1 = real, 2 = artificial."""
    if is_artificial(sku):
        return 2
    return 0 if is_numeric_sku(sku) else 1


def winner_sort_key(variant: ProductVariant) -> tuple:
    return (sku_tier(variant.sku_variant), variant.created_at or _NEVER, str(variant.id))


def pick_winner(group: list[ProductVariant]) -> ProductVariant:
    return min(group, key=winner_sort_key)


def group_key(variant: ProductVariant) -> tuple:
    return (variant.product_id, normalize_attribute(variant.size), normalize_attribute(variant.color))


def _load_groups(db: Session, lock: bool = False) -> list[list[ProductVariant]]:
    q = db.query(ProductVariant).order_by(ProductVariant.product_id, ProductVariant.id)
    if lock:
        q = q.with_for_update()
    groups: dict[tuple, list[ProductVariant]] = defaultdict(list)
    for v in q.all():
        groups[group_key(v)].append(v)
    return [g for g in groups.values() if len(g) > 1]


def _real_skus(group: list[ProductVariant]) -> list[str]:
    return sorted({v.sku_variant.strip() for v in group if not is_artificial(v.sku_variant)})


def _describe(group: list[ProductVariant]) -> dict:
    first = group[0]
    return {
        "product_id": first.product_id,
        "size": first.size,
        "color": first.color,
        "variants": [
            {"id": v.id, "sku": v.sku_variant, "stock_quantity": v.stock_quantity or 0}
            for v in sorted(group, key=winner_sort_key)
        ],
    }


def find_duplicate_groups(db: Session) -> list[dict]:
    """Read-only preview of every duplicate group and its would-be winner."""
    out = []
    for group in _load_groups(db):
        row = _describe(group)
        real = _real_skus(group)
        if len(real) > 1:
            row["winner_id"] = None
            row["conflicting_skus"] = real
        else:
            row["winner_id"] = pick_winner(group).id
        out.append(row)
    return out


# ── Reference re-pointing ───────────────────────────────────────────


def variant_references() -> list[tuple]:
    """(table, column) for every FK that targets product_variants.id."""
    target = ProductVariant.__table__.c.id
    refs = []
    for table in Base.metadata.sorted_tables:
        for fk in table.foreign_keys:
            if fk.column is target:
                refs.append((table, fk.parent))
    return refs


def _fold_sales_metrics(db: Session, winner_id: str, loser_ids: list[str]) -> int:
    """Move loser metrics to the winner, summing into an existing same-date row."""
    by_date = {
        m.metric_date: m
        for m in db.query(SalesMetric)
        .filter(SalesMetric.product_variant_id == winner_id)
        .order_by(SalesMetric.created_at, SalesMetric.id)
    }
    moved = 0
    loser_rows = (
        db.query(SalesMetric)
        .filter(SalesMetric.product_variant_id.in_(loser_ids))
        .order_by(SalesMetric.created_at, SalesMetric.id)
        .all()
    )
    for m in loser_rows:
        target = by_date.get(m.metric_date)
        if target is None:
            m.product_variant_id = winner_id
            by_date[m.metric_date] = m
        else:
            target.sales_quantity = (target.sales_quantity or 0) + (m.sales_quantity or 0)
            target.orders_count = (target.orders_count or 0) + (m.orders_count or 0)
            target.revenue = (target.revenue or 0) + (m.revenue or 0)
            db.delete(m)
        moved += 1
    db.flush()
    return moved


def _repoint_references(db: Session, winner_id: str, loser_ids: list[str]) -> dict:
    counts = {}
    moved = _fold_sales_metrics(db, winner_id, loser_ids)
    if moved:
        counts[SalesMetric.__tablename__] = moved
    for table, column in variant_references():
        result = db.execute(
            update(table).where(column.in_(loser_ids)).values({column.name: winner_id})
        )
        if result.rowcount:
            counts[table.name] = counts.get(table.name, 0) + result.rowcount
    return counts


def count_references(db: Session, variant_ids: list[str]) -> int:
    total = 0
    for table, column in variant_references():
        total += db.execute(
            select(func.count()).select_from(table).where(column.in_(variant_ids))
        ).scalar()
    return total


# ── Consolidation ───────────────────────────────────────────────────


def _merge_group(db: Session, group: list[ProductVariant]) -> dict:
    winner = pick_winner(group)
    losers = [v for v in group if v.id != winner.id]
    loser_ids = [v.id for v in losers]

    total_stock = sum(v.stock_quantity or 0 for v in group)
    winner.stock_quantity = total_stock
    if winner.sku_variant:
        winner.sku_variant = winner.sku_variant.strip()
    db.flush()

    repointed = _repoint_references(db, winner.id, loser_ids)

    remaining = count_references(db, loser_ids)
    if remaining:
        raise ConsolidationError(
            f"{remaining} references still point at variants {loser_ids}; aborting merge"
        )

    db.query(ProductVariant).filter(ProductVariant.id.in_(loser_ids)).delete(
        synchronize_session=False
    )
    log.info(
        f"Consolidated {len(losers)} variant(s) into {winner.id} "
        f"(sku={winner.sku_variant}, stock={total_stock})"
    )
    return {
        "product_id": winner.product_id,
        "size": winner.size,
        "color": winner.color,
        "winner_id": winner.id,
        "winner_sku": winner.sku_variant,
        "merged_variant_ids": loser_ids,
        "merged_skus": [v.sku_variant for v in losers],
        "total_stock": total_stock,
        "references_repointed": repointed,
    }


def consolidate_duplicates(db: Session, dry_run: bool = False) -> dict:
    """Merge every duplicate group in a single transaction."""
    consolidations: list[dict] = []
    skipped: list[dict] = []
    variants_consolidated = 0

    try:
        groups = _load_groups(db, lock=not dry_run)
        for group in groups:
            real = _real_skus(group)
            if len(real) > 1:
                row = _describe(group)
                row.update(reason="conflicting_skus", skus=real)
                skipped.append(row)
                log.warning(
                    f"Duplicate group for product {group[0].product_id} has conflicting SKUs {real}; "
                    "left for operator review"
                )
                continue
            if dry_run:
                winner = pick_winner(group)
                row = _describe(group)
                row.update(
                    winner_id=winner.id,
                    total_stock=sum(v.stock_quantity or 0 for v in group),
                )
                consolidations.append(row)
            else:
                consolidations.append(_merge_group(db, group))
            variants_consolidated += len(group) - 1

        if dry_run:
            db.rollback()
        else:
            db.commit()
    except Exception:
        db.rollback()
        log.exception("Variant consolidation failed; rolled back")
        raise
    finally:
        db.expire_all()

    return {
        "success": True,
        "dry_run": dry_run,
        "variants_consolidated": variants_consolidated,
        "consolidation_details": {
            "groups_found": len(consolidations) + len(skipped),
            "groups_merged": 0 if dry_run else len(consolidations),
            "consolidations": consolidations,
            "skipped": skipped,
        },
    }
