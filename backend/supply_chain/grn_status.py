"""
GRN Status State Machine.

    draft               → received
    received            → under_inspection | approved | rejected
    under_inspection    → approved | rejected | partially_approved
    partially_approved  → approved | rejected

`approved` and `rejected` are terminal. Entering `approved` or
`partially_approved` needs at least one approved line; entering `rejected`
needs at least one rejected or damaged line. A table miss and a failed
precondition raise different errors so callers can word them differently.

This module only decides; supply_chain/receiving.py applies the decision
with a compare-and-set on the stored status.
"""

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any

from integrations.identity import Actor
from supply_chain.errors import InvalidTransitionError, PreconditionNotMetError, ReceiptValidationError
from supply_chain.quality import REJECTING_STATUSES, QualityStatus


class GRNStatus(str, Enum):
    DRAFT = "draft"
    RECEIVED = "received"
    UNDER_INSPECTION = "under_inspection"
    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIALLY_APPROVED = "partially_approved"


TRANSITIONS: dict[GRNStatus, frozenset[GRNStatus]] = {
    GRNStatus.DRAFT: frozenset({GRNStatus.RECEIVED}),
    GRNStatus.RECEIVED: frozenset({GRNStatus.UNDER_INSPECTION, GRNStatus.APPROVED, GRNStatus.REJECTED}),
    GRNStatus.UNDER_INSPECTION: frozenset(
        {GRNStatus.APPROVED, GRNStatus.REJECTED, GRNStatus.PARTIALLY_APPROVED}
    ),
    GRNStatus.PARTIALLY_APPROVED: frozenset({GRNStatus.APPROVED, GRNStatus.REJECTED}),
    GRNStatus.APPROVED: frozenset(),
    GRNStatus.REJECTED: frozenset(),
}

TERMINAL_STATUSES = frozenset({GRNStatus.APPROVED, GRNStatus.REJECTED})
CONSOLIDATING_STATUSES = frozenset({GRNStatus.APPROVED, GRNStatus.PARTIALLY_APPROVED})

STATUS_MESSAGES = {
    GRNStatus.RECEIVED: "GRN marked as received",
    GRNStatus.UNDER_INSPECTION: "GRN moved to inspection",
    GRNStatus.APPROVED: "GRN approved and inventory updated",
    GRNStatus.REJECTED: "GRN rejected",
    GRNStatus.PARTIALLY_APPROVED: "GRN partially approved and inventory updated",
}


def parse_status(value: str | GRNStatus) -> GRNStatus:
    try:
        return GRNStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in GRNStatus)
        raise ReceiptValidationError(f"Unknown GRN status '{value}'. Valid statuses: {valid}", field="status") from None


def allowed_transitions(current: str | GRNStatus) -> frozenset[GRNStatus]:
    return TRANSITIONS[parse_status(current)]


def is_terminal(status: str | GRNStatus) -> bool:
    return parse_status(status) in TERMINAL_STATUSES


def requires_consolidation(target: str | GRNStatus) -> bool:
    return parse_status(target) in CONSOLIDATING_STATUSES


def validate_transition(current: str | GRNStatus, requested: str | GRNStatus, lines: Iterable) -> GRNStatus:
    """Check the table, then the quality-disposition preconditions.

    Returns the parsed target status. Raises InvalidTransitionError or
    PreconditionNotMetError; never mutates anything.
    """
    current_status = parse_status(current)
    target = parse_status(requested)

    if target not in TRANSITIONS[current_status]:
        raise InvalidTransitionError(current_status.value, target.value)

    qualities = {QualityStatus(line.quality_status) for line in lines}

    if target in CONSOLIDATING_STATUSES and QualityStatus.APPROVED not in qualities:
        raise PreconditionNotMetError(
            f"Cannot move GRN to '{target.value}' without any approved items; approve at least one line first",
            field="quality_status",
        )

    if target == GRNStatus.REJECTED and not (qualities & REJECTING_STATUSES):
        raise PreconditionNotMetError(
            "Cannot reject GRN without any rejected or damaged items; mark at least one line rejected first",
            field="quality_status",
        )

    return target


def transition_stamps(target: GRNStatus, actor: Actor, now: datetime) -> dict[str, Any]:
    """Header fields written atomically with the status change."""
    if target == GRNStatus.RECEIVED:
        return {"received_date": now, "received_by": actor.user_id}
    if target == GRNStatus.UNDER_INSPECTION:
        return {"quality_inspector": actor.user_id, "inspection_date": now}
    if target in TERMINAL_STATUSES:
        return {"approved_by": actor.user_id, "approved_at": now}
    return {}
