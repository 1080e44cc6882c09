"""
Inventory Router — warehouse ledger, audit log and bins.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from api.deps import get_actor, get_db
from api.v1.routers.receipts import InventoryLogResponse
from db.models import Bin, InventoryLog, WarehouseInventory
from integrations.identity import Actor
from inventory.bins import create_bin

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class LedgerRowResponse(BaseModel):
    inventory_id: UUID
    item_kind: str
    item_ref: str | None
    item_code: str
    item_name: str
    color: str | None
    bin_id: UUID
    bin_code: str | None = None
    stock_status: str
    unit: str
    quantity: float
    version: int
    grn_id: UUID | None
    received_date: datetime
    notes: str | None
    updated_at: datetime

    model_config = {"from_attributes": True}


class BinResponse(BaseModel):
    bin_id: UUID
    bin_code: str
    location_type: str
    description: str | None
    is_active: bool

    model_config = {"from_attributes": True}


class BinCreateRequest(BaseModel):
    bin_code: str
    location_type: str = "receiving_zone"
    description: str | None = None


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[LedgerRowResponse])
async def list_inventory(
    bin_code: str | None = None,
    item_ref: str | None = None,
    item_code: str | None = None,
    stock_status: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Current ledger rows, filtered by bin / item / stock status."""
    query = select(WarehouseInventory).options(selectinload(WarehouseInventory.bin))
    if bin_code:
        query = query.join(Bin, WarehouseInventory.bin_id == Bin.bin_id).where(Bin.bin_code == bin_code)
    if item_ref:
        query = query.where(WarehouseInventory.item_ref == item_ref)
    if item_code:
        query = query.where(WarehouseInventory.item_code == item_code)
    if stock_status:
        query = query.where(WarehouseInventory.stock_status == stock_status)
    query = query.order_by(WarehouseInventory.item_name, WarehouseInventory.created_at).offset(skip).limit(limit)

    result = await db.execute(query)
    rows = []
    for row in result.scalars().all():
        response = LedgerRowResponse.model_validate(row)
        response.bin_code = row.bin.bin_code if row.bin else None
        rows.append(response)
    return rows


@router.get("/logs", response_model=list[InventoryLogResponse])
async def list_inventory_logs(
    grn_id: UUID | None = None,
    inventory_id: UUID | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Ledger audit trail, newest first."""
    query = select(InventoryLog)
    if grn_id:
        query = query.where(InventoryLog.grn_id == grn_id)
    if inventory_id:
        query = query.where(InventoryLog.warehouse_inventory_id == inventory_id)
    query = query.order_by(InventoryLog.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/bins", response_model=list[BinResponse])
async def list_bins(
    location_type: str | None = None,
    active_only: bool = True,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    query = select(Bin)
    if location_type:
        query = query.where(Bin.location_type == location_type)
    if active_only:
        query = query.where(Bin.is_active.is_(True))
    result = await db.execute(query.order_by(Bin.bin_code))
    return result.scalars().all()


@router.post("/bins", response_model=BinResponse, status_code=status.HTTP_201_CREATED)
async def add_bin(
    payload: BinCreateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return await create_bin(db, payload.bin_code, payload.location_type, payload.description)
