"""
Line Item Quality Classifier.

Applied whenever a user sets a line's quality status. Recomputes the
approved/rejected split from the received quantity:

    approved           → approved = received, rejected = 0
    rejected, damaged  → approved = 0,        rejected = received
    pending            → split left as last explicitly set

Pure mutation on the line object; never touches the ledger. Only the
consolidation engine writes stock, and only on an approved transition.
"""

from enum import Enum

from supply_chain.errors import ReceiptValidationError


class QualityStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DAMAGED = "damaged"


REJECTING_STATUSES = frozenset({QualityStatus.REJECTED, QualityStatus.DAMAGED})


def parse_quality_status(value: str | QualityStatus) -> QualityStatus:
    try:
        return QualityStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in QualityStatus)
        raise ReceiptValidationError(
            f"Invalid quality status '{value}'. Valid statuses: {valid}",
            field="quality_status",
        ) from None


def derived_split(status: QualityStatus, received_quantity: float) -> tuple[float, float] | None:
    """Return (approved, rejected) implied by `status`, or None for pending."""
    if status == QualityStatus.APPROVED:
        return received_quantity, 0.0
    if status in REJECTING_STATUSES:
        return 0.0, received_quantity
    return None


def validate_quantity_split(
    received_quantity: float,
    approved_quantity: float,
    rejected_quantity: float,
    *,
    line_id=None,
) -> None:
    """Raise if any quantity is negative or approved + rejected exceeds received."""
    for field, value in (
        ("received_quantity", received_quantity),
        ("approved_quantity", approved_quantity),
        ("rejected_quantity", rejected_quantity),
    ):
        if value is None or value < 0:
            raise ReceiptValidationError(f"{field} must be zero or greater", field=field, line_id=line_id)

    if approved_quantity + rejected_quantity > received_quantity:
        raise ReceiptValidationError(
            f"approved ({approved_quantity:g}) + rejected ({rejected_quantity:g}) "
            f"exceeds received quantity ({received_quantity:g})",
            field="approved_quantity",
            line_id=line_id,
        )


def apply_quality_status(line, status: str | QualityStatus) -> QualityStatus:
    """Set `line.quality_status` and recompute its approved/rejected split."""
    parsed = parse_quality_status(status)
    line.quality_status = parsed.value
    split = derived_split(parsed, line.received_quantity or 0.0)
    if split is not None:
        line.approved_quantity, line.rejected_quantity = split
    return parsed


def resolve_split(
    status: str | QualityStatus,
    received_quantity: float,
    approved_quantity: float,
    rejected_quantity: float,
    *,
    line_id=None,
) -> tuple[float, float]:
    """Return the (approved, rejected) split a line must carry.

    Classified lines follow their status. A pending line keeps its explicit
    split, which must still fit inside the received quantity.
    """
    split = derived_split(parse_quality_status(status), received_quantity or 0.0)
    if split is not None:
        approved_quantity, rejected_quantity = split
    validate_quantity_split(received_quantity, approved_quantity, rejected_quantity, line_id=line_id)
    return approved_quantity, rejected_quantity
