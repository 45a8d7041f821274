"""Function-style sync endpoints — one POST per operation, JSON in, JSON out."""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..config import settings
from ..connectors.shopify import ShopifyConnector
from ..database import get_db
from ..dependencies import build_walker, get_shopify_connector, to_http_exception
from ..exceptions import ShopifyError, SyncError
from ..rate_limit import limiter
from ..schemas.functions import (
    AssignSkusRequest,
    AssignSkusResponse,
    ConsolidateRequest,
    ConsolidateResponse,
    FixDuplicationsRequest,
    FixInventoryDuplicationRequest,
    FixInventoryDuplicationResponse,
    ResyncDeliveryRequest,
    SyncInventoryRequest,
    SyncInventoryResponse,
)
from ..services import (
    consolidation_service,
    duplication_service,
    inventory_correction_service,
    inventory_push_service,
)
from ..services.sku_repair_service import repair_artificial_skus

router = APIRouter(tags=["functions"])
log = logging.getLogger(__name__)


@router.post("/functions/assign-shopify-skus", response_model=AssignSkusResponse)
@limiter.limit(settings.rate_limit_functions)
async def assign_shopify_skus(
    request: Request,
    body: AssignSkusRequest,
    db: Session = Depends(get_db),
    connector: ShopifyConnector = Depends(get_shopify_connector),
):
    try:
        return await repair_artificial_skus(
            db,
            build_walker(connector),
            max_variants=body.max_variants,
            process_id=body.process_id,
            resume_from_cursor=body.resume_from_cursor,
        )
    except (SyncError, ShopifyError) as e:
        raise to_http_exception(e)


@router.post("/functions/consolidate-duplicate-variants", response_model=ConsolidateResponse)
@limiter.limit(settings.rate_limit_functions)
def consolidate_duplicate_variants(
    request: Request,
    body: ConsolidateRequest | None = None,
    db: Session = Depends(get_db),
):
    dry_run = body.dry_run if body else False
    try:
        return consolidation_service.consolidate_duplicates(db, dry_run=dry_run)
    except SyncError as e:
        raise to_http_exception(e)


@router.post("/functions/sync-inventory-shopify", response_model=SyncInventoryResponse)
@limiter.limit(settings.rate_limit_functions)
async def sync_inventory_shopify(
    request: Request,
    body: SyncInventoryRequest,
    db: Session = Depends(get_db),
    connector: ShopifyConnector = Depends(get_shopify_connector),
):
    items = [i.model_dump() for i in body.approved_items]
    try:
        return await inventory_push_service.sync_approved_items(db, connector, body.delivery_id, items)
    except (SyncError, ShopifyError) as e:
        raise to_http_exception(e)


@router.post("/functions/resync-delivery", response_model=SyncInventoryResponse)
@limiter.limit(settings.rate_limit_functions)
async def resync_delivery(
    request: Request,
    body: ResyncDeliveryRequest,
    db: Session = Depends(get_db),
    connector: ShopifyConnector = Depends(get_shopify_connector),
):
    try:
        return await inventory_push_service.resync_delivery(
            db,
            connector,
            body.delivery_id,
            specific_skus=body.specific_skus,
            retry_all=body.retry_all,
        )
    except (SyncError, ShopifyError) as e:
        raise to_http_exception(e)


@router.post("/functions/fix-sync-duplications")
@limiter.limit(settings.rate_limit_functions)
def fix_sync_duplications(
    request: Request,
    body: FixDuplicationsRequest,
    db: Session = Depends(get_db),
):
    if body.action == "investigate":
        return duplication_service.investigate(db, body.date)
    if body.action == "clean":
        return duplication_service.clean(db, body.date, body.specific_sku)
    return duplication_service.validate(db, body.date)


@router.post("/functions/fix-inventory-duplication", response_model=FixInventoryDuplicationResponse)
@limiter.limit(settings.rate_limit_functions)
async def fix_inventory_duplication(
    request: Request,
    body: FixInventoryDuplicationRequest,
    db: Session = Depends(get_db),
    connector: ShopifyConnector = Depends(get_shopify_connector),
):
    items = [i.model_dump() for i in body.duplicated_items]
    try:
        return await inventory_correction_service.fix_inventory_duplication(
            db, connector, items, delivery_id=body.delivery_id
        )
    except (SyncError, ShopifyError) as e:
        raise to_http_exception(e)
