"""
Order domain service - guarded status transitions.

Each mutating method reads the order, checks the caller and the current status, and
then asks the repository for one conditional write that expects exactly the status it
just observed. A concurrent transition therefore surfaces as InvalidStateException
instead of being overwritten. Money movement and notifications are not done here; the
application layer reads ``events`` after the unit of work commits.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Optional, Tuple

from domain.common.exceptions import (
    DomainValidationException,
    EmptyDeliveryException,
    InvalidStateException,
    OrderNotFoundException,
    RevisionQuotaExceededException,
    ServicePlanNotFoundException,
    UnauthorizedException,
)

from .entity import (
    TRANSITIONS,
    Actor,
    ActorRole,
    DeliveryHistory,
    DeliveryStatus,
    Order,
    OrderAction,
    OrderStatus,
    PlanTier,
    require_actor,
    utcnow,
)
from .events import (
    OrderAccepted,
    OrderCancelled,
    OrderCompleted,
    OrderCreated,
    OrderDeclined,
    OrderDelivered,
    OrderEvent,
    OrderPaymentCaptured,
    OrderRevisionRequested,
    OrderWorkStarted,
)
from .pricing import calculate_order_amounts
from .repository import DeliveryHistoryRepository, OrderRepository, ServicePlanRepository


# re-read and retry when a concurrent write moved the order to another legal source
MAX_TRANSITION_ATTEMPTS = 3


def _clean_refs(values: Optional[Iterable[str]]) -> list[str]:
    return [v.strip() for v in (values or []) if v and v.strip()]


class OrderDomainService:
    """
    Order lifecycle rules.

    Responsibilities:
    1. creation with the plan snapshot and the acceptance deadline
    2. ownership and status guards for every edge
    3. revision quota and non-empty delivery checks
    4. delivery history appends
    5. domain events for the side effects
    """

    def __init__(
        self,
        order_repository: OrderRepository,
        delivery_history_repository: DeliveryHistoryRepository,
        service_plan_repository: Optional[ServicePlanRepository] = None,
        *,
        accept_window: timedelta = timedelta(hours=48),
        payment_window: timedelta = timedelta(hours=48),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.order_repository = order_repository
        self.delivery_history_repository = delivery_history_repository
        self.service_plan_repository = service_plan_repository
        self.accept_window = accept_window
        self.payment_window = payment_window
        self.clock = clock
        self.events: List[OrderEvent] = []

    async def get_order(self, order_id: str) -> Order:
        order = await self.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    async def get_visible_order(self, actor: Optional[Actor], order_id: str) -> Order:
        actor = require_actor(actor)
        order = await self.get_order(order_id)
        if not order.can_view(actor):
            raise UnauthorizedException("You are not a party to this order")
        return order

    async def create_order(
        self,
        actor: Optional[Actor],
        *,
        service_plan_id: str,
        plan_tier: PlanTier,
        requirements: str = "",
        requirement_files: Optional[Iterable[str]] = None,
        requirement_links: Optional[Iterable[str]] = None,
    ) -> Order:
        """
        Place an order against a service plan.

        Price, delivery days and revisions are copied from the plan tier so later plan
        edits never change this order.
        """
        actor = require_actor(actor)
        if actor.role != ActorRole.CLIENT:
            raise UnauthorizedException("Only clients can place orders", required="client")

        plan = await self.service_plan_repository.get_by_id(service_plan_id)
        if plan is None:
            raise ServicePlanNotFoundException(service_plan_id)
        terms = plan.terms_for(plan_tier)
        if terms is None:
            raise ServicePlanNotFoundException(service_plan_id, plan_tier.value)
        if plan.freelancer_id == actor.id:
            raise UnauthorizedException("You cannot order your own service")

        amounts = calculate_order_amounts(terms.price)
        now = self.clock()
        order = Order(
            id=str(uuid.uuid4()),
            client_id=actor.id,
            freelancer_id=plan.freelancer_id,
            service_plan_id=plan.id,
            plan_tier=plan_tier,
            status=OrderStatus.PENDING_ACCEPTANCE,
            price=amounts.price,
            total_amount=amounts.total_amount,
            platform_commission=amounts.platform_commission,
            gst_amount=amounts.gst_amount,
            delivery_days=terms.delivery_days,
            revisions_allowed=terms.revisions,
            revisions_used=0,
            requirements=requirements or "",
            requirement_files=_clean_refs(requirement_files),
            requirement_links=_clean_refs(requirement_links),
            accept_deadline=now + self.accept_window,
            created_at=now,
            updated_at=now,
        )
        created = await self.order_repository.create(order)
        self.events.append(OrderCreated(**self._parties(created)))
        return created

    async def accept(self, actor: Optional[Actor], order_id: str) -> Order:
        now = self.clock()
        _, updated = await self._apply(
            actor,
            order_id,
            OrderAction.ACCEPT,
            lambda order: {"payment_deadline": now + self.payment_window},
        )
        self.events.append(OrderAccepted(**self._parties(updated)))
        return updated

    async def decline(
        self, actor: Optional[Actor], order_id: str, reason: Optional[str] = None
    ) -> Tuple[Order, Order]:
        _, updated = before_after = await self._apply(
            actor,
            order_id,
            OrderAction.DECLINE,
            lambda order: {"cancellation_reason": reason},
        )
        self.events.append(OrderDeclined(**self._parties(updated), reason=reason))
        return before_after

    async def capture_payment(self, order_id: str, *, amount: str = "") -> Order:
        """Gateway webhook edge; the caller has already checked the payment deadline."""
        _, updated = await self._apply(
            Actor.system("payment_webhook"), order_id, OrderAction.CAPTURE_PAYMENT
        )
        self.events.append(OrderPaymentCaptured(**self._parties(updated), amount=amount))
        return updated

    async def start_work(self, actor: Optional[Actor], order_id: str) -> Order:
        _, updated = await self._apply(actor, order_id, OrderAction.START_WORK)
        self.events.append(OrderWorkStarted(**self._parties(updated)))
        return updated

    async def submit_delivery(
        self,
        actor: Optional[Actor],
        order_id: str,
        *,
        message: Optional[str] = None,
        files: Optional[Iterable[str]] = None,
        links: Optional[Iterable[str]] = None,
    ) -> Tuple[Order, DeliveryHistory]:
        delivery_files = _clean_refs(files)
        delivery_links = _clean_refs(links)
        if not delivery_files and not delivery_links:
            raise EmptyDeliveryException()

        now = self.clock()

        def changes(order: Order) -> dict[str, Any]:
            values = {
                "delivery_files": delivery_files,
                "delivery_links": delivery_links,
                "delivery_message": message,
            }
            if order.delivered_at is None:
                values["delivered_at"] = now
            return values

        _, updated = await self._apply(actor, order_id, OrderAction.SUBMIT_DELIVERY, changes)
        entry = await self.delivery_history_repository.append(
            DeliveryHistory(
                id=None,
                order_id=updated.id,
                version=0,
                status=DeliveryStatus.DELIVERED,
                message=message,
                delivery_files=list(delivery_files),
                delivery_links=list(delivery_links),
                created_at=now,
            )
        )
        self.events.append(OrderDelivered(**self._parties(updated), version=entry.version))
        return updated, entry

    async def request_revision(
        self, actor: Optional[Actor], order_id: str, *, message: str
    ) -> Tuple[Order, DeliveryHistory]:
        if not message or not message.strip():
            raise DomainValidationException(
                "Please describe what needs to change", field="message"
            )

        def quota_check(order: Order) -> dict[str, Any]:
            if order.revisions_used >= order.revisions_allowed:
                raise RevisionQuotaExceededException(order.revisions_allowed, order.revisions_used)
            return {}

        _, updated = await self._apply(
            actor, order_id, OrderAction.REQUEST_REVISION, quota_check, max_revisions_guard=True
        )
        entry = await self.delivery_history_repository.append(
            DeliveryHistory(
                id=None,
                order_id=updated.id,
                version=0,
                status=DeliveryStatus.REVISION_REQUESTED,
                message=updated.delivery_message,
                delivery_files=list(updated.delivery_files),
                delivery_links=list(updated.delivery_links),
                revision_message=message.strip(),
                created_at=self.clock(),
            )
        )
        self.events.append(
            OrderRevisionRequested(
                **self._parties(updated),
                version=entry.version,
                revisions_used=updated.revisions_used,
            )
        )
        return updated, entry

    async def complete(self, actor: Optional[Actor], order_id: str) -> Order:
        now = self.clock()
        _, updated = await self._apply(
            actor, order_id, OrderAction.COMPLETE, lambda order: {"completed_at": now}
        )
        self.events.append(OrderCompleted(**self._parties(updated)))
        return updated

    async def cancel(
        self, actor: Optional[Actor], order_id: str, reason: Optional[str] = None
    ) -> Tuple[Order, Order]:
        """Returns ``(before, after)``; ``before.payment_captured`` decides the refund."""
        now = self.clock()
        before, updated = await self._apply(
            actor,
            order_id,
            OrderAction.CANCEL,
            lambda order: {"cancelled_at": now, "cancellation_reason": reason},
        )
        self.events.append(
            OrderCancelled(
                **self._parties(updated),
                reason=reason,
                payment_captured=before.payment_captured,
            )
        )
        return before, updated

    async def expire_acceptance(self, order_id: str) -> Tuple[Order, Order]:
        now = self.clock()
        reason = "Freelancer did not respond before the acceptance deadline"

        def changes(order: Order) -> dict[str, Any]:
            if order.accept_deadline is None or order.accept_deadline > now:
                raise DomainValidationException(
                    "Acceptance deadline has not passed", field="accept_deadline"
                )
            return {"cancellation_reason": reason}

        before, updated = await self._apply(
            Actor.system("deadline_job"), order_id, OrderAction.EXPIRE_ACCEPTANCE, changes
        )
        self.events.append(OrderDeclined(**self._parties(updated), reason=reason, expired=True))
        return before, updated

    async def expire_payment(self, order_id: str) -> Tuple[Order, Order]:
        now = self.clock()
        reason = "Payment was not completed before the payment deadline"

        def changes(order: Order) -> dict[str, Any]:
            if order.payment_deadline is None or order.payment_deadline > now:
                raise DomainValidationException(
                    "Payment deadline has not passed", field="payment_deadline"
                )
            return {"cancelled_at": now, "cancellation_reason": reason}

        before, updated = await self._apply(
            Actor.system("deadline_job"), order_id, OrderAction.EXPIRE_PAYMENT, changes
        )
        self.events.append(
            OrderCancelled(**self._parties(updated), reason=reason, expired=True)
        )
        return before, updated

    async def _apply(
        self,
        actor: Optional[Actor],
        order_id: str,
        action: OrderAction,
        changes: Optional[Callable[[Order], dict[str, Any]]] = None,
        *,
        max_revisions_guard: bool = False,
    ) -> Tuple[Order, Order]:
        transition = TRANSITIONS[action]
        for attempt in range(1, MAX_TRANSITION_ATTEMPTS + 1):
            order = await self.get_order(order_id)
            order.authorize(actor, action)
            order.check_status(action)
            values = changes(order) if changes else {}
            values["updated_at"] = self.clock()
            try:
                updated = await self.order_repository.transition(
                    order.id,
                    expected=[order.status],
                    target=transition.target,
                    changes=values,
                    max_revisions_guard=max_revisions_guard,
                )
            except InvalidStateException as exc:
                if exc.actual in {s.value for s in transition.sources} and attempt < MAX_TRANSITION_ATTEMPTS:
                    continue
                raise InvalidStateException(order.id, transition.sources, exc.actual) from exc
            return order, updated
        raise InvalidStateException(order_id, transition.sources, order.status)

    @staticmethod
    def _parties(order: Order) -> dict[str, str]:
        return {
            "order_id": order.id,
            "client_id": order.client_id,
            "freelancer_id": order.freelancer_id,
        }

    def clear_events(self) -> List[OrderEvent]:
        events = self.events.copy()
        self.events.clear()
        return events
