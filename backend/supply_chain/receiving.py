"""
Receiving Module — GRN lifecycle against a purchase order.

Called from the GRN API for every receipt mutation:
1. Create a draft GRN with one line per PO line (received quantity 0)
2. Record received quantities, batch/expiry data and quality dispositions
3. Advance status through the state machine (supply_chain/grn_status.py)
4. On approval, consolidate approved lines into the warehouse ledger
5. Publish grn.status_changed / inventory.updated after commit

Every mutation locks the receipt row, refuses terminal receipts, keeps
lines already written to the ledger fixed and persists recomputed totals
in the same transaction.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from alerts.notifications import InventoryEventBus, inventory_updated_event, status_changed_event
from core.config import get_settings
from db.models import ITEM_KINDS, GoodsReceipt, GRNItem, InventoryLog
from integrations.catalog import CatalogSource, enrich_line
from integrations.identity import Actor
from integrations.purchasing import RECEIVABLE_PO_STATUSES, PurchasingSource
from inventory.bins import resolve_receiving_bin
from inventory.consolidation import ConsolidationResult, consolidate_lines, has_log_entry
from supply_chain.errors import (
    CollaboratorError,
    ConcurrencyConflictError,
    ConsolidationError,
    PreconditionNotMetError,
    ReceiptLockedError,
    ReceiptNotFoundError,
    ReceiptValidationError,
)
from supply_chain.grn_status import (
    CONSOLIDATING_STATUSES,
    STATUS_MESSAGES,
    GRNStatus,
    is_terminal,
    parse_status,
    requires_consolidation,
    transition_stamps,
    validate_transition,
)
from supply_chain.numbering import next_receipt_number
from supply_chain.quality import apply_quality_status, parse_quality_status, resolve_split
from supply_chain.totals import ReceiptTotals, apply_totals, compute_line_amounts, compute_receipt_totals

logger = structlog.get_logger()

HEADER_EDITABLE_FIELDS = frozenset({"receipt_date", "received_location", "inspection_notes", "rejection_reason"})
LINE_EDITABLE_FIELDS = frozenset(
    {
        "received_quantity",
        "approved_quantity",
        "rejected_quantity",
        "batch_number",
        "expiry_date",
        "condition_notes",
        "inspection_notes",
        "attributes",
    }
)


@dataclass
class TransitionOutcome:
    receipt: GoodsReceipt
    previous_status: str
    message: str
    consolidation: ConsolidationResult | None = None


# ─── Loading & guards ───────────────────────────────────────────────────────


async def _load_receipt(db: AsyncSession, receipt_id: uuid.UUID, *, for_update: bool = False) -> GoodsReceipt:
    query = (
        select(GoodsReceipt)
        .where(GoodsReceipt.receipt_id == receipt_id)
        .options(selectinload(GoodsReceipt.items))
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    receipt = result.scalar_one_or_none()
    if receipt is None:
        raise ReceiptNotFoundError(f"GRN {receipt_id} not found", field="receipt_id")
    return receipt


def _ensure_editable(receipt: GoodsReceipt) -> None:
    if is_terminal(receipt.status):
        raise ReceiptLockedError(
            f"GRN {receipt.receipt_number} is {receipt.status} and can no longer be edited",
            field="status",
        )


async def _ensure_line_not_consolidated(db: AsyncSession, receipt: GoodsReceipt, line: GRNItem, what: str) -> None:
    """A line already written to the ledger keeps the quantities it was stocked with."""
    if await has_log_entry(db, line.grn_item_id):
        raise ReceiptLockedError(
            f"Line {line.line_number} of GRN {receipt.receipt_number} is already in inventory; "
            f"its {what} can no longer change",
            field=what,
            line_id=line.grn_item_id,
        )


def _find_line(receipt: GoodsReceipt, line_id: uuid.UUID) -> GRNItem:
    for line in receipt.items:
        if line.grn_item_id == line_id:
            return line
    raise ReceiptNotFoundError(
        f"Line {line_id} does not belong to GRN {receipt.receipt_number}",
        field="line_id",
        line_id=line_id,
    )


def _reject_unknown_fields(changes: dict[str, Any], allowed: frozenset[str], line_id=None) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise ReceiptValidationError(
            f"Field(s) not editable: {', '.join(unknown)}",
            field=unknown[0],
            line_id=line_id,
        )


def _to_quantity(value: Any, field: str, line_id=None) -> float:
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        raise ReceiptValidationError(f"{field} must be a number", field=field, line_id=line_id) from None
    if quantity < 0:
        raise ReceiptValidationError(f"{field} must be zero or greater", field=field, line_id=line_id)
    return quantity


def refresh_totals(receipt: GoodsReceipt) -> ReceiptTotals:
    totals = compute_receipt_totals(receipt.items)
    apply_totals(receipt, totals)
    return totals


def _refresh_line_amounts(line: GRNItem) -> None:
    line.subtotal, line.tax_amount, line.line_total = compute_line_amounts(
        line.received_quantity, line.unit_price, line.tax_rate
    )


# ─── Create & read ──────────────────────────────────────────────────────────


async def create_receipt(
    db: AsyncSession,
    purchasing: PurchasingSource,
    actor: Actor,
    purchase_order_ref: str | None,
    *,
    receipt_date: date | None = None,
    received_location: str | None = None,
    inspection_notes: str | None = None,
    catalog: CatalogSource | None = None,
    now: datetime | None = None,
) -> GoodsReceipt:
    """Create a draft GRN mirroring the PO's lines."""
    if not purchase_order_ref:
        raise ReceiptValidationError("Select a purchase order to receive against", field="purchase_order_ref")

    settings = get_settings()
    now = now or datetime.utcnow()

    po = await purchasing.get_purchase_order(purchase_order_ref)
    if po is None:
        raise ReceiptValidationError(
            f"Purchase order '{purchase_order_ref}' not found", field="purchase_order_ref"
        )
    if po.status not in RECEIVABLE_PO_STATUSES:
        raise ReceiptValidationError(
            f"Purchase order {po.po_number} is '{po.status}' and cannot be received against",
            field="purchase_order_ref",
        )
    if not po.lines:
        raise ReceiptValidationError(f"Purchase order {po.po_number} has no line items", field="purchase_order_ref")
    for po_line in po.lines:
        if po_line.item_kind not in ITEM_KINDS:
            raise CollaboratorError(
                "purchasing",
                f"PO line {po_line.line_number} has unknown item kind '{po_line.item_kind}'",
                field="item_kind",
            )

    receipt = GoodsReceipt(
        purchase_order_ref=po.po_ref,
        purchase_order_number=po.po_number,
        supplier_ref=po.supplier_ref,
        receipt_date=receipt_date or now.date(),
        received_location=received_location,
        status=GRNStatus.DRAFT.value,
        inspection_notes=inspection_notes,
        created_by=actor.user_id,
    )

    enriched = 0
    for po_line in po.lines:
        line = GRNItem(
            line_number=po_line.line_number,
            po_item_ref=po_line.po_item_ref,
            item_kind=po_line.item_kind,
            item_ref=po_line.item_ref,
            item_code=po_line.item_code,
            item_name=po_line.item_name,
            unit_of_measure=po_line.unit_of_measure or settings.receiving_default_unit,
            ordered_quantity=po_line.ordered_quantity,
            received_quantity=0.0,
            approved_quantity=0.0,
            rejected_quantity=0.0,
            unit_price=po_line.unit_price,
            tax_rate=po_line.tax_rate,
            quality_status="pending",
            attributes=dict(po_line.attributes),
        )
        _refresh_line_amounts(line)
        if await enrich_line(line, catalog):
            enriched += 1
        receipt.items.append(line)

    refresh_totals(receipt)
    # Drawn last: the counter row stays locked until commit.
    receipt.receipt_number = await next_receipt_number(db, settings.receipt_number_prefix, now)
    db.add(receipt)
    await db.commit()

    logger.info(
        "grn.created",
        grn_id=str(receipt.receipt_id),
        receipt_number=receipt.receipt_number,
        po_number=po.po_number,
        lines=len(po.lines),
        enriched=enriched,
        actor=actor.user_id,
    )
    return await _load_receipt(db, receipt.receipt_id)


async def get_receipt(db: AsyncSession, receipt_id: uuid.UUID) -> GoodsReceipt:
    return await _load_receipt(db, receipt_id)


async def list_receipts(
    db: AsyncSession,
    status: str | None = None,
    purchase_order_ref: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> list[GoodsReceipt]:
    query = select(GoodsReceipt).options(selectinload(GoodsReceipt.items))
    if status:
        query = query.where(GoodsReceipt.status == parse_status(status).value)
    if purchase_order_ref:
        query = query.where(GoodsReceipt.purchase_order_ref == purchase_order_ref)
    query = query.order_by(GoodsReceipt.created_at.desc(), GoodsReceipt.receipt_number.desc())
    result = await db.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all())


async def get_receipt_totals(db: AsyncSession, receipt_id: uuid.UUID) -> ReceiptTotals:
    receipt = await _load_receipt(db, receipt_id)
    return compute_receipt_totals(receipt.items)


async def list_receipt_logs(db: AsyncSession, receipt_id: uuid.UUID) -> list[InventoryLog]:
    await _load_receipt(db, receipt_id)
    result = await db.execute(
        select(InventoryLog).where(InventoryLog.grn_id == receipt_id).order_by(InventoryLog.created_at)
    )
    return list(result.scalars().all())


# ─── Header & line mutations ────────────────────────────────────────────────


async def update_receipt_header(
    db: AsyncSession,
    receipt_id: uuid.UUID,
    changes: dict[str, Any],
    actor: Actor,
) -> GoodsReceipt:
    _reject_unknown_fields(changes, HEADER_EDITABLE_FIELDS)
    if "receipt_date" in changes and changes["receipt_date"] is None:
        raise ReceiptValidationError("receipt_date cannot be cleared", field="receipt_date")

    receipt = await _load_receipt(db, receipt_id, for_update=True)
    _ensure_editable(receipt)

    for field, value in changes.items():
        setattr(receipt, field, value)
    await db.commit()

    logger.info(
        "grn.header_updated",
        grn_id=str(receipt_id),
        fields=sorted(changes),
        actor=actor.user_id,
    )
    return await _load_receipt(db, receipt_id)


async def update_line_item(
    db: AsyncSession,
    receipt_id: uuid.UUID,
    line_id: uuid.UUID,
    changes: dict[str, Any],
    actor: Actor,
) -> GoodsReceipt:
    """Record received quantity, an explicit split (pending lines) or batch data."""
    _reject_unknown_fields(changes, LINE_EDITABLE_FIELDS, line_id=line_id)

    receipt = await _load_receipt(db, receipt_id, for_update=True)
    _ensure_editable(receipt)
    line = _find_line(receipt, line_id)

    # Validate everything before touching the line.
    received = (
        _to_quantity(changes["received_quantity"], "received_quantity", line_id)
        if "received_quantity" in changes
        else line.received_quantity
    )
    explicit_split = {"approved_quantity", "rejected_quantity"} & set(changes)
    if explicit_split and line.quality_status != "pending":
        raise ReceiptValidationError(
            f"Quantities of a {line.quality_status} line follow its quality status; "
            "set it back to pending to split manually",
            field=sorted(explicit_split)[0],
            line_id=line_id,
        )
    approved = (
        _to_quantity(changes["approved_quantity"], "approved_quantity", line_id)
        if "approved_quantity" in changes
        else line.approved_quantity
    )
    rejected = (
        _to_quantity(changes["rejected_quantity"], "rejected_quantity", line_id)
        if "rejected_quantity" in changes
        else line.rejected_quantity
    )
    approved, rejected = resolve_split(line.quality_status, received, approved, rejected, line_id=line_id)
    if "attributes" in changes and not isinstance(changes["attributes"], dict):
        raise ReceiptValidationError("attributes must be an object", field="attributes", line_id=line_id)
    if (received, approved, rejected) != (line.received_quantity, line.approved_quantity, line.rejected_quantity):
        changed = [f for f in ("received_quantity", "approved_quantity", "rejected_quantity") if f in changes]
        await _ensure_line_not_consolidated(db, receipt, line, changed[0])
    if "attributes" in changes and {**(line.attributes or {}), **changes["attributes"]} != (line.attributes or {}):
        await _ensure_line_not_consolidated(db, receipt, line, "attributes")

    line.received_quantity = received
    line.approved_quantity = approved
    line.rejected_quantity = rejected
    for field in ("batch_number", "expiry_date", "condition_notes", "inspection_notes"):
        if field in changes:
            setattr(line, field, changes[field])
    if "attributes" in changes:
        line.attributes = {**(line.attributes or {}), **changes["attributes"]}

    _refresh_line_amounts(line)
    totals = refresh_totals(receipt)
    await db.commit()

    logger.info(
        "grn.line_updated",
        grn_id=str(receipt_id),
        line_id=str(line_id),
        fields=sorted(changes),
        received_quantity=received,
        total_amount_received=totals.amount_received,
        actor=actor.user_id,
    )
    return await _load_receipt(db, receipt_id)


async def set_line_quality(
    db: AsyncSession,
    receipt_id: uuid.UUID,
    line_id: uuid.UUID,
    quality_status: str,
    actor: Actor,
    inspection_notes: str | None = None,
) -> GoodsReceipt:
    parsed = parse_quality_status(quality_status)

    receipt = await _load_receipt(db, receipt_id, for_update=True)
    _ensure_editable(receipt)
    line = _find_line(receipt, line_id)
    if parsed.value != line.quality_status:
        await _ensure_line_not_consolidated(db, receipt, line, "quality_status")

    apply_quality_status(line, parsed)
    if inspection_notes is not None:
        line.inspection_notes = inspection_notes
    refresh_totals(receipt)
    await db.commit()

    logger.info(
        "grn.line_quality_set",
        grn_id=str(receipt_id),
        line_id=str(line_id),
        quality_status=parsed.value,
        approved_quantity=line.approved_quantity,
        rejected_quantity=line.rejected_quantity,
        actor=actor.user_id,
    )
    return await _load_receipt(db, receipt_id)


# ─── Status transitions & consolidation ─────────────────────────────────────


async def _publish(events: InventoryEventBus | None, event) -> None:
    if events is not None:
        await events.publish(event)


async def transition_receipt(
    db: AsyncSession,
    receipt_id: uuid.UUID,
    requested_status: str,
    actor: Actor,
    *,
    bin_code: str | None = None,
    rejection_reason: str | None = None,
    inspection_notes: str | None = None,
    events: InventoryEventBus | None = None,
    now: datetime | None = None,
) -> TransitionOutcome:
    """Validate, consolidate if approving, then compare-and-set the status.

    A line that fails to consolidate leaves the status untouched; the lines
    that did consolidate stay committed and are skipped on the next attempt.
    """
    now = now or datetime.utcnow()
    receipt = await _load_receipt(db, receipt_id, for_update=True)
    read_status = receipt.status
    receipt_number = receipt.receipt_number

    target = validate_transition(read_status, requested_status, receipt.items)

    result = None
    if requires_consolidation(target):
        bin_ = await resolve_receiving_bin(db, bin_code)
        result = await consolidate_lines(db, receipt, receipt.items, bin_, actor)
        if not result.ok:
            await db.commit()
            logger.error(
                "grn.transition_incomplete",
                grn_id=str(receipt_id),
                receipt_number=receipt_number,
                requested=target.value,
                failed=len(result.failed),
                applied=len(result.applied),
            )
            if result.applied:
                await _publish(events, inventory_updated_event(receipt, result))
            raise ConsolidationError(
                f"{len(result.failed)} approved line(s) of GRN {receipt_number} could not be added to "
                f"inventory; status stays '{read_status}'. Retry to finish.",
                result.failed,
            )

    values: dict[str, Any] = {"status": target.value, "updated_at": now, **transition_stamps(target, actor, now)}
    if rejection_reason is not None:
        values["rejection_reason"] = rejection_reason
    if inspection_notes is not None:
        values["inspection_notes"] = inspection_notes

    cas = await db.execute(
        update(GoodsReceipt)
        .where(GoodsReceipt.receipt_id == receipt_id, GoodsReceipt.status == read_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if cas.rowcount != 1:
        await db.rollback()
        logger.warning(
            "grn.transition_conflict",
            grn_id=str(receipt_id),
            receipt_number=receipt_number,
            expected=read_status,
            requested=target.value,
        )
        raise ConcurrencyConflictError(
            f"GRN {receipt_number} changed while moving to '{target.value}'; reload and retry",
            field="status",
        )
    await db.commit()

    receipt = await _load_receipt(db, receipt_id)
    logger.info(
        "grn.transitioned",
        grn_id=str(receipt_id),
        receipt_number=receipt_number,
        previous=read_status,
        status=target.value,
        added=len(result.added) if result else 0,
        consolidated=len(result.consolidated) if result else 0,
        actor=actor.user_id,
    )

    await _publish(events, status_changed_event(receipt, read_status, actor.user_id))
    if result is not None and result.applied:
        await _publish(events, inventory_updated_event(receipt, result))

    return TransitionOutcome(
        receipt=receipt,
        previous_status=read_status,
        message=STATUS_MESSAGES.get(target, f"GRN moved to {target.value}"),
        consolidation=result,
    )


async def consolidate_receipt(
    db: AsyncSession,
    receipt_id: uuid.UUID,
    actor: Actor,
    *,
    bin_code: str | None = None,
    events: InventoryEventBus | None = None,
) -> ConsolidationResult:
    """Re-run consolidation for an approved GRN. Already-logged lines are skipped."""
    receipt = await _load_receipt(db, receipt_id, for_update=True)
    if parse_status(receipt.status) not in CONSOLIDATING_STATUSES:
        raise PreconditionNotMetError(
            f"GRN {receipt.receipt_number} is '{receipt.status}'; only approved or partially "
            "approved GRNs can be consolidated",
            field="status",
        )

    bin_ = await resolve_receiving_bin(db, bin_code)
    result = await consolidate_lines(db, receipt, receipt.items, bin_, actor)
    await db.commit()

    logger.info(
        "grn.consolidated",
        grn_id=str(receipt_id),
        receipt_number=receipt.receipt_number,
        added=len(result.added),
        consolidated=len(result.consolidated),
        skipped=len(result.skipped),
        failed=len(result.failed),
    )
    if result.applied:
        await _publish(events, inventory_updated_event(receipt, result))
    if not result.ok:
        raise ConsolidationError(
            f"{len(result.failed)} approved line(s) of GRN {receipt.receipt_number} could not be added to inventory",
            result.failed,
        )
    return result
