"""
Purchase Order Router — read-only view of POs goods can be received against.

Data comes from the purchasing collaborator (local tables or remote
service, see api/deps.py).
"""

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.deps import get_actor, get_purchasing_source
from integrations.identity import Actor
from integrations.purchasing import PurchasingSource
from supply_chain.errors import ReceiptNotFoundError

router = APIRouter(prefix="/api/v1/purchase-orders", tags=["purchase-orders"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class POLineResponse(BaseModel):
    po_item_ref: str
    line_number: int
    item_kind: str
    item_ref: str | None
    item_code: str | None
    item_name: str
    ordered_quantity: float
    unit_of_measure: str
    unit_price: float
    tax_rate: float
    attributes: dict[str, Any]

    model_config = {"from_attributes": True}


class POResponse(BaseModel):
    po_ref: str
    po_number: str
    status: str
    supplier_ref: str | None
    supplier_name: str | None
    lines: list[POLineResponse]

    model_config = {"from_attributes": True}


class POSummaryResponse(BaseModel):
    po_ref: str
    po_number: str
    status: str
    supplier_name: str | None
    expected_delivery: date | None
    line_count: int

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/receivable", response_model=list[POSummaryResponse])
async def list_receivable_purchase_orders(
    purchasing: PurchasingSource = Depends(get_purchasing_source),
    actor: Actor = Depends(get_actor),
):
    """POs that can have a GRN recorded against them."""
    return await purchasing.list_receivable_orders()


@router.get("/{po_ref}", response_model=POResponse)
async def get_purchase_order(
    po_ref: str,
    purchasing: PurchasingSource = Depends(get_purchasing_source),
    actor: Actor = Depends(get_actor),
):
    po = await purchasing.get_purchase_order(po_ref)
    if po is None:
        raise ReceiptNotFoundError(f"Purchase order '{po_ref}' not found", field="po_ref")
    return po
