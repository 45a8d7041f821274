"""Variant API — duplicate preview and manual SKU changes."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import to_http_exception
from ..exceptions import SyncError
from ..schemas.functions import VariantSkuUpdate
from ..services import consolidation_service, variant_sku_service

router = APIRouter(tags=["variants"])


@router.get("/api/variants/duplicates")
def api_duplicate_groups(db: Session = Depends(get_db)):
    groups = consolidation_service.find_duplicate_groups(db)
    return {"groups": groups, "total": len(groups)}


@router.get("/api/variants/{variant_id}/sku-safety")
def api_sku_safety(
    variant_id: str,
    new_sku: str = Query(..., min_length=1, max_length=255),
    db: Session = Depends(get_db),
):
    try:
        return variant_sku_service.check_sku_update_safety(db, variant_id, new_sku)
    except SyncError as e:
        raise to_http_exception(e)


@router.put("/api/variants/{variant_id}/sku")
def api_update_sku(variant_id: str, body: VariantSkuUpdate, db: Session = Depends(get_db)):
    try:
        return variant_sku_service.update_variant_sku(db, variant_id, body.new_sku)
    except SyncError as e:
        raise to_http_exception(e)
