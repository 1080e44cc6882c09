"""
Receiving error taxonomy.

Every error is scoped to one operation on one receipt and carries enough
structure (kind + offending field / line) for the caller to render a
specific message. The API layer maps `kind` to an HTTP status.
"""

from __future__ import annotations

import uuid
from typing import Any


class ReceivingError(Exception):
    """Base class for all goods-receipt workflow errors."""

    kind = "receiving_error"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        line_id: uuid.UUID | str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.line_id = line_id

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        if self.line_id is not None:
            payload["line_id"] = str(self.line_id)
        return payload


class ReceiptValidationError(ReceivingError):
    """Malformed or missing header/line data. Raised before any write."""

    kind = "validation_error"


class ReceiptNotFoundError(ReceiptValidationError):
    kind = "not_found"


class ReceiptLockedError(ReceiptValidationError):
    """Mutation attempted on a receipt in a terminal status."""

    kind = "receipt_locked"


class ReceivingBinNotFoundError(ReceiptValidationError):
    """No active bin could be resolved for newly received stock."""


class InvalidTransitionError(ReceivingError):
    kind = "invalid_transition"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change GRN status from '{current}' to '{requested}'",
            field="status",
        )
        self.current = current
        self.requested = requested

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload.update({"current": self.current, "requested": self.requested})
        return payload


class PreconditionNotMetError(ReceivingError):
    """Transition is in the table but the quality-disposition gate failed."""

    kind = "precondition_not_met"


class ConcurrencyConflictError(ReceivingError):
    """A compare-and-set lost the race. Safe to retry after re-reading."""

    kind = "concurrency_conflict"


class CollaboratorError(ReceivingError):
    kind = "collaborator_failure"

    def __init__(self, collaborator: str, message: str, *, field: str | None = None):
        super().__init__(message, field=field)
        self.collaborator = collaborator

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["collaborator"] = self.collaborator
        return payload


class ConsolidationError(ReceivingError):
    """One or more approved lines could not be written to the ledger.

    Lines that did consolidate are committed and carry a log entry, so a
    retry only acts on the lines listed in `failures`.
    """

    kind = "consolidation_failure"

    def __init__(self, message: str, failures: list | None = None):
        super().__init__(message)
        self.failures = list(failures or [])

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["failures"] = [
            {"line_id": str(f.line_id), "item_name": f.item_name, "error": f.error} for f in self.failures
        ]
        return payload
