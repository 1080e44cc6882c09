"""
Identity collaborator — the acting user attached to GRN stamps.

Identity is always passed explicitly into operations that stamp
received_by / quality_inspector / approved_by; nothing reads an ambient
"current user".
"""

from dataclasses import dataclass
from typing import Any

from supply_chain.errors import ReceiptValidationError


@dataclass(frozen=True)
class Actor:
    user_id: str
    email: str | None = None
    name: str | None = None

    def __post_init__(self):
        if not self.user_id or not str(self.user_id).strip():
            raise ReceiptValidationError("Acting user identity is required", field="actor")


def actor_from_claims(claims: dict[str, Any]) -> Actor:
    """Build an Actor from a decoded JWT payload."""
    user_id = claims.get("sub") or claims.get("user_id")
    if not user_id:
        raise ReceiptValidationError("Token carries no subject claim", field="actor")
    return Actor(
        user_id=str(user_id),
        email=claims.get("email"),
        name=claims.get("name"),
    )
