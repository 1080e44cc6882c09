"""
Inventory event notifications.

Events are published only after the unit of work that produced them has
committed:
  - grn.status_changed   every committed status transition
  - inventory.updated    committed consolidation work (added / merged rows)

Delivery is best effort. A failing subscriber is logged and skipped; it
never turns a committed transition into an error.
"""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger()

STATUS_CHANGED = "grn.status_changed"
INVENTORY_UPDATED = "inventory.updated"


@dataclass(frozen=True)
class InventoryEvent:
    event_type: str
    grn_id: str
    receipt_number: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_message(self) -> dict[str, Any]:
        return {
            "type": self.event_type,
            "payload": {
                "grn_id": self.grn_id,
                "receipt_number": self.receipt_number,
                "occurred_at": self.occurred_at.isoformat(),
                **self.payload,
            },
        }


Subscriber = Callable[[InventoryEvent], Awaitable[None]]


class InventoryEventBus:
    """In-process fan-out to registered async subscribers."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    @property
    def subscribers(self) -> list[Subscriber]:
        return list(self._subscribers)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    async def publish(self, event: InventoryEvent) -> int:
        """Deliver to every subscriber. Returns how many accepted the event."""
        delivered = 0
        for subscriber in list(self._subscribers):
            try:
                await subscriber(event)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "events.delivery_failed",
                    event_type=event.event_type,
                    grn_id=event.grn_id,
                    subscriber=getattr(subscriber, "__name__", type(subscriber).__name__),
                    error=str(exc),
                )
        logger.info("events.published", event_type=event.event_type, grn_id=event.grn_id, delivered=delivered)
        return delivered


class RedisEventPublisher:
    """Subscriber that relays events onto a Redis pub/sub channel."""

    def __init__(self, redis_url: str, channel: str):
        self.redis_url = redis_url
        self.channel = channel

    async def __call__(self, event: InventoryEvent) -> None:
        redis = aioredis.from_url(self.redis_url)
        try:
            await redis.publish(self.channel, json.dumps(event.to_message(), default=str))
        finally:
            await redis.aclose()


_event_bus = InventoryEventBus()


def get_event_bus() -> InventoryEventBus:
    return _event_bus


def status_changed_event(receipt, previous_status: str, actor_id: str) -> InventoryEvent:
    return InventoryEvent(
        event_type=STATUS_CHANGED,
        grn_id=str(receipt.receipt_id),
        receipt_number=receipt.receipt_number,
        payload={
            "previous_status": previous_status,
            "status": receipt.status,
            "actor": actor_id,
        },
    )


def inventory_updated_event(receipt, result) -> InventoryEvent:
    return InventoryEvent(
        event_type=INVENTORY_UPDATED,
        grn_id=str(receipt.receipt_id),
        receipt_number=receipt.receipt_number,
        payload={
            "bin_code": result.bin_code,
            "added": len(result.added),
            "consolidated": len(result.consolidated),
            "rows": [
                {
                    "inventory_id": str(o.ledger_row_id),
                    "action": o.action,
                    "quantity": o.quantity,
                    "new_quantity": o.new_quantity,
                }
                for o in result.applied
            ],
        },
    )
