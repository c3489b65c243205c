"""
Order domain events.

One event per applied transition; the application layer turns them into
notifications and other side effects. Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class OrderEvent:
    order_id: str
    client_id: str
    freelancer_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # notification type sent to the counter-party
    notification_type: str = ""

    def recipients(self) -> list[str]:
        return []


@dataclass
class OrderCreated(OrderEvent):
    notification_type: str = "order_created"

    def recipients(self) -> list[str]:
        return [self.freelancer_id]


@dataclass
class OrderAccepted(OrderEvent):
    notification_type: str = "order_accepted"

    def recipients(self) -> list[str]:
        return [self.client_id]


@dataclass
class OrderDeclined(OrderEvent):
    reason: Optional[str] = None
    expired: bool = False
    notification_type: str = "order_declined"

    def recipients(self) -> list[str]:
        return [self.client_id]


@dataclass
class OrderPaymentCaptured(OrderEvent):
    amount: str = ""
    notification_type: str = "order_payment_completed"

    def recipients(self) -> list[str]:
        return [self.client_id, self.freelancer_id]


@dataclass
class OrderWorkStarted(OrderEvent):
    notification_type: str = "order_in_progress"

    def recipients(self) -> list[str]:
        return [self.client_id]


@dataclass
class OrderDelivered(OrderEvent):
    version: int = 0
    notification_type: str = "order_delivered"

    def recipients(self) -> list[str]:
        return [self.client_id]


@dataclass
class OrderRevisionRequested(OrderEvent):
    version: int = 0
    revisions_used: int = 0
    notification_type: str = "order_revision_requested"

    def recipients(self) -> list[str]:
        return [self.freelancer_id]


@dataclass
class OrderCompleted(OrderEvent):
    notification_type: str = "order_completed"

    def recipients(self) -> list[str]:
        return [self.freelancer_id]


@dataclass
class OrderCancelled(OrderEvent):
    reason: Optional[str] = None
    expired: bool = False
    payment_captured: bool = False
    notification_type: str = "order_cancelled"

    def recipients(self) -> list[str]:
        if self.expired:
            return [self.client_id, self.freelancer_id]
        return [self.freelancer_id]
