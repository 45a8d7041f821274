"""
schemas/functions.py — Request/response models for the /functions endpoints

Business Rules:
- Request fields accept the camelCase names the dashboard sends
  (maxVariants, deliveryId, ...) as well as snake_case
- maxVariants is 1..1000; quantities are never negative
- fix-sync-duplications action is one of investigate | clean | validate
- fix-inventory-duplication takes at least one item, each removing 1 or more units
- Responses allow extra keys so per-operation details pass through

Called by: routers/functions.py
Depends on: pydantic
"""

from __future__ import annotations

import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _CamelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


# ── assign-shopify-skus ──────────────────────────────────────────────


class AssignSkusRequest(_CamelRequest):
    max_variants: int | None = Field(default=None, alias="maxVariants", ge=1, le=1000)
    process_id: str | None = Field(default=None, alias="processId")
    resume_from_cursor: str | None = Field(default=None, alias="resumeFromCursor")


class RepairSummary(BaseModel):
    processed: int = 0
    updated: int = 0
    errors: int = 0
    skipped: int = 0
    products_scanned: int = 0


class AssignSkusResponse(BaseModel, extra="allow"):
    success: bool
    status: str
    stopped_by: str | None = None
    process_id: str
    summary: RepairSummary
    next_cursor: str | None = None
    message: str = ""


# ── consolidate-duplicate-variants ───────────────────────────────────


class ConsolidateRequest(_CamelRequest):
    dry_run: bool = Field(default=False, alias="dryRun")


class ConsolidateResponse(BaseModel, extra="allow"):
    success: bool
    dry_run: bool = False
    variants_consolidated: int = 0
    consolidation_details: dict = Field(default_factory=dict)


# ── sync-inventory-shopify / resync-delivery ─────────────────────────


class ApprovedItem(_CamelRequest):
    variant_id: str = Field(alias="variantId", min_length=1)
    sku_variant: str | None = Field(default=None, alias="skuVariant")
    quantity_approved: int = Field(alias="quantityApproved", ge=0)


class SyncInventoryRequest(_CamelRequest):
    delivery_id: int = Field(alias="deliveryId")
    approved_items: list[ApprovedItem] = Field(alias="approvedItems", min_length=1)


class ResyncDeliveryRequest(_CamelRequest):
    delivery_id: int = Field(alias="deliveryId")
    specific_skus: list[str] | None = Field(default=None, alias="specificSkus")
    retry_all: bool = Field(default=False, alias="retryAll")


class PushSummary(BaseModel):
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    already_synced: int = 0
    total: int = 0


class SyncInventoryResponse(BaseModel, extra="allow"):
    success: bool
    status: str
    process_id: str | None = None
    log_status: str | None = None
    results: list[dict] = Field(default_factory=list)
    summary: PushSummary


# ── fix-inventory-duplication ────────────────────────────────────────


class DuplicatedItem(_CamelRequest):
    sku: str = Field(min_length=1)
    duplicated_quantity: int = Field(alias="duplicatedQuantity", ge=1)

    @field_validator("sku")
    @classmethod
    def sku_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("SKU must not be blank")
        return v


class FixInventoryDuplicationRequest(_CamelRequest):
    delivery_id: int | None = Field(default=None, alias="deliveryId")
    duplicated_items: list[DuplicatedItem] = Field(alias="duplicatedItems", min_length=1)


class FixInventoryDuplicationResponse(BaseModel, extra="allow"):
    success: bool
    process_id: str
    log_status: str | None = None
    delivery_id: int | None = None
    corrected_items: int = 0
    total_items: int = 0
    results: list[dict] = Field(default_factory=list)


# ── fix-sync-duplications ────────────────────────────────────────────


class FixDuplicationsRequest(_CamelRequest):
    action: Literal["investigate", "clean", "validate"]
    date: datetime.date
    specific_sku: str | None = Field(default=None, alias="specificSku")

    @field_validator("specific_sku")
    @classmethod
    def sku_not_blank(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


# ── Manual SKU update ────────────────────────────────────────────────


class VariantSkuUpdate(BaseModel):
    new_sku: str = Field(min_length=1, max_length=255)

    @field_validator("new_sku")
    @classmethod
    def sku_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("SKU must not be blank")
        return v
