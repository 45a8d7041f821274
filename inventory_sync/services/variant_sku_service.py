"""Manual variant SKU update with a conflict check.

References point at the variant id, so changing the SKU moves nothing;
the counts tell the operator what the change touches. Pending (unsynced)
delivery items will be pushed to Shopify under the new SKU.
"""

import logging

from sqlalchemy.orm import Session

from ..exceptions import NotFoundError, SkuConflictError
from ..models import DeliveryItem, InventoryReplenishment, OrderItem, ProductVariant
from ..sku_rules import is_artificial

log = logging.getLogger(__name__)


def _get_variant(db: Session, variant_id: str) -> ProductVariant:
    variant = db.get(ProductVariant, variant_id)
    if not variant:
        raise NotFoundError(f"Variant {variant_id} not found")
    return variant


def _find_conflict(db: Session, variant_id: str, new_sku: str) -> ProductVariant | None:
    return (
        db.query(ProductVariant)
        .filter(ProductVariant.sku_variant == new_sku, ProductVariant.id != variant_id)
        .first()
    )


def _reference_counts(db: Session, variant_id: str) -> dict:
    return {
        "order_items": db.query(OrderItem).filter(OrderItem.product_variant_id == variant_id).count(),
        "delivery_items": db.query(DeliveryItem).filter(DeliveryItem.product_variant_id == variant_id).count(),
        "inventory_replenishment": db.query(InventoryReplenishment)
        .filter(InventoryReplenishment.product_variant_id == variant_id)
        .count(),
    }


def check_sku_update_safety(db: Session, variant_id: str, new_sku: str) -> dict:
    """Read-only preview of a SKU change."""
    variant = _get_variant(db, variant_id)
    new_sku = new_sku.strip()
    result = {
        "success": True,
        "variant_id": variant.id,
        "current_sku": variant.sku_variant,
        "new_sku": new_sku,
    }

    conflict = _find_conflict(db, variant.id, new_sku)
    if conflict:
        result.update(
            success=False,
            error="SKU already exists",
            conflicting_sku=new_sku,
            conflicting_variant_id=conflict.id,
            can_update=False,
            requires_confirmation=False,
        )
        return result

    pending = (
        db.query(DeliveryItem)
        .filter(
            DeliveryItem.product_variant_id == variant.id,
            DeliveryItem.synced_to_shopify.is_(False),
            DeliveryItem.quantity_approved > 0,
        )
        .count()
    )
    warnings = []
    if pending:
        warnings.append(f"{pending} approved delivery item(s) not yet pushed will use the new SKU")
    if is_artificial(new_sku):
        warnings.append("New SKU looks auto-generated and will be picked up by SKU repair")

    result.update(
        references=_reference_counts(db, variant.id),
        pending_deliveries=pending,
        warnings=warnings,
        can_update=True,
        requires_confirmation=bool(warnings),
    )
    return result


def update_variant_sku(db: Session, variant_id: str, new_sku: str) -> dict:
    """Change a variant's SKU; refuses if another variant already uses it."""
    variant = _get_variant(db, variant_id)
    new_sku = new_sku.strip()
    conflict = _find_conflict(db, variant.id, new_sku)
    if conflict:
        raise SkuConflictError(
            "SKU already exists", conflicting_sku=new_sku, conflicting_variant_id=conflict.id
        )

    old_sku = variant.sku_variant
    variant.sku_variant = new_sku
    db.commit()
    log.info(f"Variant {variant.id} SKU changed: {old_sku} -> {new_sku}")
    return {
        "success": True,
        "variant_id": variant.id,
        "old_sku": old_sku,
        "new_sku": new_sku,
        "affected_tables": _reference_counts(db, variant.id),
        "message": f"SKU updated from {old_sku} to {new_sku}",
    }
