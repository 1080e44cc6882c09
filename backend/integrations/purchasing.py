"""
Purchasing collaborator — the purchase orders a receipt is recorded against.

Two sources implement the same interface so receiving logic never cares
where PO data lives:
  - DatabasePurchasingSource  local purchase_orders tables (default)
  - HttpPurchasingSource      remote purchasing service (purchasing_api_url)

A missing PO is `None`; an unreachable or malformed source is a
CollaboratorError, which aborts receipt creation.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import httpx
import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from db.models import PurchaseOrder
from supply_chain.errors import CollaboratorError

logger = structlog.get_logger()

RECEIVABLE_PO_STATUSES = ("approved", "ordered", "partially_received")


@dataclass(frozen=True)
class PurchaseOrderLine:
    po_item_ref: str
    line_number: int
    item_kind: str
    item_name: str
    ordered_quantity: float
    item_ref: str | None = None
    item_code: str | None = None
    unit_of_measure: str = "pcs"
    unit_price: float = 0.0
    tax_rate: float = 0.0
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PurchaseOrderSnapshot:
    po_ref: str
    po_number: str
    status: str
    supplier_ref: str | None = None
    supplier_name: str | None = None
    lines: list[PurchaseOrderLine] = field(default_factory=list)


@dataclass(frozen=True)
class PurchaseOrderSummary:
    po_ref: str
    po_number: str
    status: str
    supplier_name: str | None = None
    expected_delivery: date | None = None
    line_count: int = 0


class PurchasingSource(ABC):
    """Read-only view of purchase orders."""

    @abstractmethod
    async def get_purchase_order(self, po_ref: str) -> PurchaseOrderSnapshot | None:
        """Return the PO with its lines, or None if it does not exist."""
        ...

    @abstractmethod
    async def list_receivable_orders(self) -> list[PurchaseOrderSummary]:
        """POs that can still have goods received against them."""
        ...


# ── Local tables ───────────────────────────────────────────────────────────


class DatabasePurchasingSource(PurchasingSource):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_purchase_order(self, po_ref: str) -> PurchaseOrderSnapshot | None:
        try:
            condition = PurchaseOrder.po_id == uuid.UUID(str(po_ref))
        except ValueError:
            condition = PurchaseOrder.po_number == po_ref

        result = await self.db.execute(
            select(PurchaseOrder)
            .where(condition)
            .options(selectinload(PurchaseOrder.items), selectinload(PurchaseOrder.supplier))
        )
        po = result.scalar_one_or_none()
        if po is None:
            return None

        return PurchaseOrderSnapshot(
            po_ref=str(po.po_id),
            po_number=po.po_number,
            status=po.status,
            supplier_ref=str(po.supplier_id),
            supplier_name=po.supplier.name if po.supplier else None,
            lines=[
                PurchaseOrderLine(
                    po_item_ref=str(item.po_item_id),
                    line_number=item.line_number,
                    item_kind=item.item_kind,
                    item_ref=str(item.catalog_item_id) if item.catalog_item_id else None,
                    item_code=item.item_code,
                    item_name=item.item_name,
                    ordered_quantity=item.quantity,
                    unit_of_measure=item.unit_of_measure,
                    unit_price=item.unit_price,
                    tax_rate=item.tax_rate,
                    attributes=dict(item.attributes or {}),
                )
                for item in po.items
            ],
        )

    async def list_receivable_orders(self) -> list[PurchaseOrderSummary]:
        result = await self.db.execute(
            select(PurchaseOrder)
            .where(or_(*(PurchaseOrder.status == s for s in RECEIVABLE_PO_STATUSES)))
            .options(selectinload(PurchaseOrder.items), selectinload(PurchaseOrder.supplier))
            .order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.po_number)
        )
        return [
            PurchaseOrderSummary(
                po_ref=str(po.po_id),
                po_number=po.po_number,
                status=po.status,
                supplier_name=po.supplier.name if po.supplier else None,
                expected_delivery=po.expected_delivery,
                line_count=len(po.items),
            )
            for po in result.scalars().all()
        ]


# ── Remote service ─────────────────────────────────────────────────────────


def parse_purchase_order(payload: dict[str, Any]) -> PurchaseOrderSnapshot:
    """Map a purchasing-service PO document onto a snapshot."""
    try:
        lines = [
            PurchaseOrderLine(
                po_item_ref=str(item.get("po_item_id") or item["id"]),
                line_number=int(item.get("line_number", index + 1)),
                item_kind=item.get("item_kind", "item"),
                item_ref=str(item["item_ref"]) if item.get("item_ref") else None,
                item_code=item.get("item_code"),
                item_name=item["item_name"],
                ordered_quantity=float(item["quantity"]),
                unit_of_measure=item.get("unit_of_measure") or "pcs",
                unit_price=float(item.get("unit_price") or 0.0),
                tax_rate=float(item.get("tax_rate") or 0.0),
                attributes=dict(item.get("attributes") or {}),
            )
            for index, item in enumerate(payload.get("items", []))
        ]
        return PurchaseOrderSnapshot(
            po_ref=str(payload.get("po_id") or payload["id"]),
            po_number=payload["po_number"],
            status=payload.get("status", "approved"),
            supplier_ref=str(payload["supplier_id"]) if payload.get("supplier_id") else None,
            supplier_name=payload.get("supplier_name"),
            lines=lines,
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise CollaboratorError("purchasing", f"Malformed purchase order payload: {exc}") from exc


class HttpPurchasingSource(PurchasingSource):
    """Client for a remote purchasing service."""

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {"Accept": "application/json"}
        if api_token:
            self.headers["Authorization"] = f"Bearer {api_token}"

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        reraise=True,
    )
    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            return await client.get(path, params=params)

    async def get_purchase_order(self, po_ref: str) -> PurchaseOrderSnapshot | None:
        try:
            response = await self._get(f"/purchase-orders/{po_ref}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("purchasing.request_failed", po_ref=po_ref, error=str(exc))
            raise CollaboratorError(
                "purchasing", f"Purchasing service unavailable: {exc}", field="purchase_order_ref"
            ) from exc
        return parse_purchase_order(payload)

    async def list_receivable_orders(self) -> list[PurchaseOrderSummary]:
        try:
            response = await self._get("/purchase-orders", params={"status": ",".join(RECEIVABLE_PO_STATUSES)})
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("purchasing.request_failed", error=str(exc))
            raise CollaboratorError("purchasing", f"Purchasing service unavailable: {exc}") from exc

        rows = payload.get("purchase_orders", []) if isinstance(payload, dict) else payload
        try:
            return [
                PurchaseOrderSummary(
                    po_ref=str(row.get("po_id") or row["id"]),
                    po_number=row["po_number"],
                    status=row.get("status", "approved"),
                    supplier_name=row.get("supplier_name"),
                    expected_delivery=date.fromisoformat(row["expected_delivery"])
                    if row.get("expected_delivery")
                    else None,
                    line_count=int(row.get("line_count", len(row.get("items", [])))),
                )
                for row in rows
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise CollaboratorError("purchasing", f"Malformed purchase order list: {exc}") from exc
