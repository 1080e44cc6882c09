"""
GRN Router — goods receipt workflow endpoints.

  1. Create a draft GRN against a purchase order
  2. Record received quantities and quality dispositions per line
  3. Advance status: draft → received → under_inspection → approved / rejected
  4. Approval consolidates approved lines into warehouse inventory

Domain errors propagate to the ReceivingError handler in api/main.py.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.notifications import InventoryEventBus
from api.deps import get_actor, get_catalog_source, get_db, get_event_bus, get_purchasing_source
from integrations.catalog import CatalogSource
from integrations.identity import Actor
from integrations.purchasing import PurchasingSource
from supply_chain import receiving

router = APIRouter(prefix="/api/v1/grns", tags=["grns"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class GRNItemResponse(BaseModel):
    grn_item_id: UUID
    line_number: int
    po_item_ref: str | None
    item_kind: str
    item_ref: str | None
    item_code: str | None
    item_name: str
    unit_of_measure: str
    color: str | None
    attributes: dict[str, Any]
    ordered_quantity: float
    received_quantity: float
    approved_quantity: float
    rejected_quantity: float
    unit_price: float
    tax_rate: float
    subtotal: float
    tax_amount: float
    line_total: float
    quality_status: str
    batch_number: str | None
    expiry_date: date | None
    condition_notes: str | None
    inspection_notes: str | None
    image_url: str | None
    catalog_name: str | None

    model_config = {"from_attributes": True}


class GRNResponse(BaseModel):
    receipt_id: UUID
    receipt_number: str
    purchase_order_ref: str
    purchase_order_number: str | None
    supplier_ref: str | None
    receipt_date: date
    received_date: datetime | None
    received_location: str | None
    status: str
    total_items_received: int
    total_items_approved: int
    total_items_rejected: int
    total_amount_received: float
    total_amount_approved: float
    total_quantity_received: float
    total_quantity_approved: float
    total_quantity_rejected: float
    created_by: str | None
    received_by: str | None
    quality_inspector: str | None
    inspection_date: datetime | None
    approved_by: str | None
    approved_at: datetime | None
    inspection_notes: str | None
    rejection_reason: str | None
    created_at: datetime
    updated_at: datetime
    items: list[GRNItemResponse]

    model_config = {"from_attributes": True}


class GRNCreateRequest(BaseModel):
    purchase_order_ref: str | None = None
    receipt_date: date | None = None
    received_location: str | None = None
    inspection_notes: str | None = None


class GRNHeaderUpdateRequest(BaseModel):
    receipt_date: date | None = None
    received_location: str | None = None
    inspection_notes: str | None = None
    rejection_reason: str | None = None


class GRNItemUpdateRequest(BaseModel):
    received_quantity: float | None = None
    approved_quantity: float | None = None
    rejected_quantity: float | None = None
    batch_number: str | None = None
    expiry_date: date | None = None
    condition_notes: str | None = None
    inspection_notes: str | None = None
    attributes: dict[str, Any] | None = None


class QualityRequest(BaseModel):
    quality_status: str
    inspection_notes: str | None = None


class TransitionRequest(BaseModel):
    status: str
    bin_code: str | None = None
    rejection_reason: str | None = None
    inspection_notes: str | None = None


class ConsolidateRequest(BaseModel):
    bin_code: str | None = None


class TransitionResponse(BaseModel):
    message: str
    previous_status: str
    grn: GRNResponse
    consolidation: dict[str, Any] | None = None


class TotalsResponse(BaseModel):
    items_received: int
    items_approved: int
    items_rejected: int
    amount_received: float
    amount_approved: float
    quantity_received: float
    quantity_approved: float
    quantity_rejected: float


class InventoryLogResponse(BaseModel):
    log_id: UUID
    warehouse_inventory_id: UUID
    grn_id: UUID | None
    grn_item_id: UUID | None
    item_kind: str
    item_ref: str | None
    item_code: str
    item_name: str
    color: str | None
    quantity: float
    old_quantity: float
    new_quantity: float
    unit: str
    bin_id: UUID | None
    stock_status: str
    action: str
    reference_type: str
    reference_number: str | None
    notes: str | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[GRNResponse])
async def list_grns(
    status: str | None = None,
    purchase_order_ref: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """List GRNs, newest first."""
    return await receiving.list_receipts(db, status, purchase_order_ref, skip, limit)


@router.post("/", response_model=GRNResponse, status_code=status.HTTP_201_CREATED)
async def create_grn(
    payload: GRNCreateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
    purchasing: PurchasingSource = Depends(get_purchasing_source),
    catalog: CatalogSource = Depends(get_catalog_source),
):
    """Create a draft GRN with one line per purchase-order line."""
    return await receiving.create_receipt(
        db,
        purchasing,
        actor,
        payload.purchase_order_ref,
        receipt_date=payload.receipt_date,
        received_location=payload.received_location,
        inspection_notes=payload.inspection_notes,
        catalog=catalog,
    )


@router.get("/{grn_id}", response_model=GRNResponse)
async def get_grn(
    grn_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return await receiving.get_receipt(db, grn_id)


@router.patch("/{grn_id}", response_model=GRNResponse)
async def update_grn(
    grn_id: UUID,
    payload: GRNHeaderUpdateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Edit header fields of a non-terminal GRN."""
    return await receiving.update_receipt_header(db, grn_id, payload.model_dump(exclude_unset=True), actor)


@router.patch("/{grn_id}/items/{item_id}", response_model=GRNResponse)
async def update_grn_item(
    grn_id: UUID,
    item_id: UUID,
    payload: GRNItemUpdateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Record received quantity, batch data or (pending lines) an explicit split."""
    return await receiving.update_line_item(db, grn_id, item_id, payload.model_dump(exclude_unset=True), actor)


@router.post("/{grn_id}/items/{item_id}/quality", response_model=GRNResponse)
async def set_grn_item_quality(
    grn_id: UUID,
    item_id: UUID,
    payload: QualityRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return await receiving.set_line_quality(
        db, grn_id, item_id, payload.quality_status, actor, inspection_notes=payload.inspection_notes
    )


@router.post("/{grn_id}/status", response_model=TransitionResponse)
async def transition_grn(
    grn_id: UUID,
    payload: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
    events: InventoryEventBus = Depends(get_event_bus),
):
    """
    Move the GRN to a new status.

    Approving (fully or partially) adds approved quantities to warehouse
    inventory first; the status only changes once every approved line is in.
    """
    outcome = await receiving.transition_receipt(
        db,
        grn_id,
        payload.status,
        actor,
        bin_code=payload.bin_code,
        rejection_reason=payload.rejection_reason,
        inspection_notes=payload.inspection_notes,
        events=events,
    )
    return TransitionResponse(
        message=outcome.message,
        previous_status=outcome.previous_status,
        grn=GRNResponse.model_validate(outcome.receipt),
        consolidation=outcome.consolidation.as_dict() if outcome.consolidation else None,
    )


@router.post("/{grn_id}/consolidate")
async def consolidate_grn(
    grn_id: UUID,
    payload: ConsolidateRequest | None = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
    events: InventoryEventBus = Depends(get_event_bus),
):
    """Retry consolidation for an approved GRN. Lines already in inventory are skipped."""
    result = await receiving.consolidate_receipt(
        db,
        grn_id,
        actor,
        bin_code=payload.bin_code if payload else None,
        events=events,
    )
    return result.as_dict()


@router.get("/{grn_id}/totals", response_model=TotalsResponse)
async def get_grn_totals(
    grn_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    totals = await receiving.get_receipt_totals(db, grn_id)
    return totals.as_dict()


@router.get("/{grn_id}/logs", response_model=list[InventoryLogResponse])
async def get_grn_logs(
    grn_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Inventory log entries written for this GRN."""
    return await receiving.list_receipt_logs(db, grn_id)
