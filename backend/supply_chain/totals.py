"""
Totals Calculator — pure aggregation over GRN line items.

Used both to persist the header totals after every line mutation and to
serve summaries; never performs I/O.
"""

from collections.abc import Iterable
from dataclasses import asdict, dataclass

from supply_chain.quality import REJECTING_STATUSES, QualityStatus

AMOUNT_PRECISION = 2


@dataclass(frozen=True)
class ReceiptTotals:
    items_received: int = 0
    items_approved: int = 0
    items_rejected: int = 0
    amount_received: float = 0.0
    amount_approved: float = 0.0
    quantity_received: float = 0.0
    quantity_approved: float = 0.0
    quantity_rejected: float = 0.0

    def as_dict(self) -> dict:
        return asdict(self)


def compute_line_amounts(received_quantity: float, unit_price: float, tax_rate: float) -> tuple[float, float, float]:
    """Return (subtotal, tax_amount, line_total) for a received quantity.

    `tax_rate` is a percentage.
    """
    subtotal = round((received_quantity or 0.0) * (unit_price or 0.0), AMOUNT_PRECISION)
    tax_amount = round(subtotal * (tax_rate or 0.0) / 100, AMOUNT_PRECISION)
    return subtotal, tax_amount, round(subtotal + tax_amount, AMOUNT_PRECISION)


def compute_receipt_totals(lines: Iterable) -> ReceiptTotals:
    items_received = items_approved = items_rejected = 0
    amount_received = amount_approved = 0.0
    quantity_received = quantity_approved = quantity_rejected = 0.0

    for line in lines:
        status = QualityStatus(line.quality_status)
        line_total = line.line_total or 0.0

        items_received += 1
        amount_received += line_total
        quantity_received += line.received_quantity or 0.0
        quantity_approved += line.approved_quantity or 0.0
        quantity_rejected += line.rejected_quantity or 0.0

        if status == QualityStatus.APPROVED:
            items_approved += 1
            amount_approved += line_total
        elif status in REJECTING_STATUSES:
            items_rejected += 1

    return ReceiptTotals(
        items_received=items_received,
        items_approved=items_approved,
        items_rejected=items_rejected,
        amount_received=round(amount_received, AMOUNT_PRECISION),
        amount_approved=round(amount_approved, AMOUNT_PRECISION),
        quantity_received=quantity_received,
        quantity_approved=quantity_approved,
        quantity_rejected=quantity_rejected,
    )


def apply_totals(receipt, totals: ReceiptTotals) -> None:
    """Copy computed totals onto the receipt header columns."""
    receipt.total_items_received = totals.items_received
    receipt.total_items_approved = totals.items_approved
    receipt.total_items_rejected = totals.items_rejected
    receipt.total_amount_received = totals.amount_received
    receipt.total_amount_approved = totals.amount_approved
    receipt.total_quantity_received = totals.quantity_received
    receipt.total_quantity_approved = totals.quantity_approved
    receipt.total_quantity_rejected = totals.quantity_rejected
