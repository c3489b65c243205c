"""
Order aggregate - status graph, ownership guards and the delivery history.

Keep this layer free of infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    InvalidStateException,
    UnauthenticatedException,
    UnauthorizedException,
)


class OrderStatus(str, Enum):
    PENDING_ACCEPTANCE = "pending_acceptance"
    PENDING_PAYMENT = "pending_payment"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    REVISION_REQUESTED = "revision_requested"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.DECLINED, OrderStatus.CANCELLED})


class PlanTier(str, Enum):
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


class ActorRole(str, Enum):
    CLIENT = "client"
    FREELANCER = "freelancer"
    ADMIN = "admin"
    SYSTEM = "system"  # scheduled jobs and gateway webhooks


class OrderAction(str, Enum):
    CREATE = "create"
    ACCEPT = "accept"
    DECLINE = "decline"
    CAPTURE_PAYMENT = "capture_payment"
    START_WORK = "start_work"
    SUBMIT_DELIVERY = "submit_delivery"
    REQUEST_REVISION = "request_revision"
    COMPLETE = "complete"
    CANCEL = "cancel"
    EXPIRE_ACCEPTANCE = "expire_acceptance"
    EXPIRE_PAYMENT = "expire_payment"


class Party(str, Enum):
    CLIENT = "client"
    FREELANCER = "freelancer"
    SYSTEM = "system"


@dataclass(frozen=True)
class Transition:
    sources: frozenset
    target: OrderStatus
    party: Party


# The complete edge set of the order graph. Anything else is InvalidState.
TRANSITIONS: dict[OrderAction, Transition] = {
    OrderAction.ACCEPT: Transition(
        frozenset({OrderStatus.PENDING_ACCEPTANCE}), OrderStatus.PENDING_PAYMENT, Party.FREELANCER
    ),
    OrderAction.DECLINE: Transition(
        frozenset({OrderStatus.PENDING_ACCEPTANCE}), OrderStatus.DECLINED, Party.FREELANCER
    ),
    OrderAction.CAPTURE_PAYMENT: Transition(
        frozenset({OrderStatus.PENDING_PAYMENT}), OrderStatus.ACCEPTED, Party.SYSTEM
    ),
    OrderAction.START_WORK: Transition(
        frozenset({OrderStatus.ACCEPTED}), OrderStatus.IN_PROGRESS, Party.FREELANCER
    ),
    OrderAction.SUBMIT_DELIVERY: Transition(
        frozenset({OrderStatus.IN_PROGRESS, OrderStatus.REVISION_REQUESTED}),
        OrderStatus.DELIVERED,
        Party.FREELANCER,
    ),
    OrderAction.REQUEST_REVISION: Transition(
        frozenset({OrderStatus.DELIVERED}), OrderStatus.REVISION_REQUESTED, Party.CLIENT
    ),
    OrderAction.COMPLETE: Transition(
        frozenset({OrderStatus.DELIVERED}), OrderStatus.COMPLETED, Party.CLIENT
    ),
    OrderAction.CANCEL: Transition(
        frozenset({
            OrderStatus.PENDING_ACCEPTANCE,
            OrderStatus.PENDING_PAYMENT,
            OrderStatus.ACCEPTED,
            OrderStatus.IN_PROGRESS,
        }),
        OrderStatus.CANCELLED,
        Party.CLIENT,
    ),
    OrderAction.EXPIRE_ACCEPTANCE: Transition(
        frozenset({OrderStatus.PENDING_ACCEPTANCE}), OrderStatus.DECLINED, Party.SYSTEM
    ),
    OrderAction.EXPIRE_PAYMENT: Transition(
        frozenset({OrderStatus.PENDING_PAYMENT}), OrderStatus.CANCELLED, Party.SYSTEM
    ),
}

# Statuses in which the client's money is held in escrow
PAYMENT_CAPTURED_STATUSES = frozenset({OrderStatus.ACCEPTED, OrderStatus.IN_PROGRESS})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class Actor:
    """Caller identity, resolved once at the request boundary."""

    id: str
    role: ActorRole

    @classmethod
    def system(cls, name: str = "system") -> "Actor":
        return cls(id=name, role=ActorRole.SYSTEM)

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def require_actor(actor: Optional[Actor]) -> Actor:
    if actor is None or not actor.id:
        raise UnauthenticatedException()
    return actor


def require_admin(actor: Optional[Actor]) -> Actor:
    actor = require_actor(actor)
    if not actor.is_admin:
        raise UnauthorizedException("Only operators can manage payouts and refunds", required="admin")
    return actor


@dataclass
class ServicePlan:
    """Read model of a freelancer's service listing, one price per tier."""

    id: str
    freelancer_id: str
    title: str
    tiers: dict[PlanTier, "PlanTerms"]

    def terms_for(self, tier: PlanTier) -> Optional["PlanTerms"]:
        return self.tiers.get(tier)


@dataclass(frozen=True)
class PlanTerms:
    price: Decimal
    delivery_days: int
    revisions: int


@dataclass
class Order:
    """
    Order aggregate.

    Business rules:
    1. status moves only along TRANSITIONS
    2. the financial snapshot (price, commission, GST, total) is fixed at creation
    3. revisions_used never exceeds revisions_allowed
    4. requirements are immutable after creation
    """

    id: str
    client_id: str
    freelancer_id: str
    service_plan_id: str
    plan_tier: PlanTier
    status: OrderStatus
    price: Decimal
    total_amount: Decimal
    platform_commission: Decimal
    gst_amount: Decimal
    delivery_days: int
    revisions_allowed: int
    revisions_used: int = 0
    requirements: str = ""
    requirement_files: list[str] = field(default_factory=list)
    requirement_links: list[str] = field(default_factory=list)
    delivery_files: list[str] = field(default_factory=list)
    delivery_links: list[str] = field(default_factory=list)
    delivery_message: Optional[str] = None
    accept_deadline: Optional[datetime] = None
    payment_deadline: Optional[datetime] = None
    gateway_order_id: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.accept_deadline = _ensure_utc(self.accept_deadline)
        self.payment_deadline = _ensure_utc(self.payment_deadline)
        self.delivered_at = _ensure_utc(self.delivered_at)
        self.completed_at = _ensure_utc(self.completed_at)
        self.cancelled_at = _ensure_utc(self.cancelled_at)

    @property
    def revisions_remaining(self) -> int:
        return max(0, self.revisions_allowed - self.revisions_used)

    @property
    def freelancer_amount(self) -> Decimal:
        return self.price - self.platform_commission

    @property
    def payment_captured(self) -> bool:
        return self.status in PAYMENT_CAPTURED_STATUSES

    def party_of(self, actor: Actor) -> Optional[Party]:
        if actor.role == ActorRole.SYSTEM:
            return Party.SYSTEM
        if actor.role == ActorRole.CLIENT and actor.id == self.client_id:
            return Party.CLIENT
        if actor.role == ActorRole.FREELANCER and actor.id == self.freelancer_id:
            return Party.FREELANCER
        return None

    def viewer_role(self, actor: Actor) -> Optional[str]:
        if actor.is_admin:
            return ActorRole.ADMIN.value
        if actor.id == self.client_id:
            return ActorRole.CLIENT.value
        if actor.id == self.freelancer_id:
            return ActorRole.FREELANCER.value
        return None

    def can_view(self, actor: Actor) -> bool:
        return self.viewer_role(actor) is not None or actor.role == ActorRole.SYSTEM

    def authorize(self, actor: Optional[Actor], action: OrderAction) -> Transition:
        """Ownership guard: exactly one party may drive each edge."""
        actor = require_actor(actor)
        transition = TRANSITIONS[action]
        if actor.is_admin:
            raise UnauthorizedException("Administrators can view orders but not change them")
        if self.party_of(actor) != transition.party:
            raise UnauthorizedException(
                f"Only the order's {transition.party.value} can {action.value.replace('_', ' ')}",
                required=transition.party.value,
            )
        return transition

    def check_status(self, action: OrderAction) -> Transition:
        transition = TRANSITIONS[action]
        if self.status not in transition.sources:
            raise InvalidStateException(
                self.id, [s.value for s in transition.sources], self.status.value
            )
        return transition

    def referenced_files(self) -> set[str]:
        return set(self.requirement_files) | set(self.delivery_files)


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    REVISION_REQUESTED = "revision_requested"
    APPROVED = "approved"


@dataclass
class DeliveryHistory:
    """One append-only entry per delivery submission or revision request."""

    id: Optional[int]
    order_id: str
    version: int
    status: DeliveryStatus
    message: Optional[str] = None
    delivery_files: list[str] = field(default_factory=list)
    delivery_links: list[str] = field(default_factory=list)
    revision_message: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = _ensure_utc(self.created_at)
