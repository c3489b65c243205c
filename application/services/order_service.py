"""
Order application service - runs a transition and then its side effects.

Every mutating use-case has the same two phases:

1. the guarded status write (plus history/payment rows) in one unit of work,
   committed before anything else happens;
2. an explicit, ordered list of side effects (refund, settlement, chat, stats,
   notifications). Each one is awaited on its own, logged on its own, and its
   failure is reported in the outcome without touching the committed status.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from application.ports.collaborators import ChatPort, NotificationPort, StatsPort
from application.ports.storage import PresignedURL, StoragePort
from application.services.refund_service import RefundOutcome, RefundService
from application.services.settlement_service import SettlementOutcome, SettlementService
from core.logging_config import get_logger
from core.settings import OrderSettings, order_settings
from domain.common.exceptions import (
    BusinessException,
    FileNotInOrderException,
    UnauthorizedException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import (
    Actor,
    ActorRole,
    DeliveryHistory,
    DeliveryStatus,
    Order,
    OrderStatus,
    PlanTier,
    require_actor,
    utcnow,
)
from domain.order.events import OrderEvent
from domain.order.service import OrderDomainService
from domain.payment.entity import Payment, PaymentStatus
from shared.codes import BusinessCode


logger = get_logger(__name__)


@dataclass
class SideEffect:
    name: str
    call: Callable[[], Awaitable[Any]]


@dataclass
class SideEffectResult:
    name: str
    ok: bool
    error: Optional[str] = None
    value: Any = None


@dataclass
class TransitionOutcome:
    order: Order
    side_effects: List[SideEffectResult] = field(default_factory=list)
    history: Optional[DeliveryHistory] = None
    refund: Optional[RefundOutcome] = None
    settlement: Optional[SettlementOutcome] = None

    def effect(self, name: str) -> Optional[SideEffectResult]:
        return next((r for r in self.side_effects if r.name == name), None)


@dataclass
class OrderView:
    order: Order
    delivery_history: List[DeliveryHistory]
    viewer_role: str


async def run_side_effects(order_id: str, effects: Iterable[SideEffect]) -> List[SideEffectResult]:
    """Await each effect in order; a failure is logged and recorded, never raised."""
    results = []
    for effect in effects:
        try:
            value = await effect.call()
        except Exception as exc:
            logger.error(
                "order_side_effect_failed",
                order_id=order_id,
                effect=effect.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            results.append(SideEffectResult(effect.name, ok=False, error=str(exc)))
            continue
        ok = getattr(value, "ok", True)
        logger.info("order_side_effect_done", order_id=order_id, effect=effect.name, ok=ok)
        results.append(SideEffectResult(effect.name, ok=ok, value=value))
    return results


class OrderService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        refunds: RefundService,
        settlement: SettlementService,
        chat: ChatPort,
        notifier: NotificationPort,
        stats: StatsPort,
        storage: Optional[StoragePort] = None,
        config: OrderSettings = order_settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self.refunds = refunds
        self.settlement = settlement
        self.chat = chat
        self.notifier = notifier
        self.stats = stats
        self.storage = storage
        self.config = config
        self.clock = clock

    def _domain(self, uow: AbstractUnitOfWork, clock: Optional[Callable[[], datetime]] = None) -> OrderDomainService:
        return OrderDomainService(
            uow.order_repository,
            uow.delivery_history_repository,
            uow.service_plan_repository,
            accept_window=timedelta(hours=self.config.accept_window_hours),
            payment_window=timedelta(hours=self.config.payment_window_hours),
            clock=clock or self.clock,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def create_order(
        self,
        actor: Optional[Actor],
        *,
        service_plan_id: str,
        plan_tier: PlanTier,
        requirements: str = "",
        requirement_files: Optional[list[str]] = None,
        requirement_links: Optional[list[str]] = None,
    ) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            order = await domain.create_order(
                actor,
                service_plan_id=service_plan_id,
                plan_tier=plan_tier,
                requirements=requirements,
                requirement_files=requirement_files,
                requirement_links=requirement_links,
            )
            events = domain.clear_events()
        logger.info(
            "order_created",
            order_id=order.id,
            client_id=order.client_id,
            freelancer_id=order.freelancer_id,
            tier=order.plan_tier.value,
            total_amount=str(order.total_amount),
        )
        return await self._finish(order, self._notifications(order, events))

    async def accept(self, actor: Optional[Actor], order_id: str) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            order = await domain.accept(actor, order_id)
            events = domain.clear_events()
        logger.info("order_accepted", order_id=order.id, payment_deadline=order.payment_deadline)
        return await self._finish(order, self._notifications(order, events))

    async def decline(
        self, actor: Optional[Actor], order_id: str, reason: Optional[str] = None
    ) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            _, order = await domain.decline(actor, order_id, reason)
            events = domain.clear_events()
        logger.info("order_declined", order_id=order.id, reason=reason)
        effects = [SideEffect("refund", lambda: self.refunds.refund_for_decline(order))]
        effects += self._notifications(order, events)
        return await self._finish(order, effects)

    async def capture_payment(
        self,
        order_id: str,
        *,
        payment_ref: str,
        amount: Decimal,
        captured_at: Optional[datetime] = None,
    ) -> TransitionOutcome:
        """Record the captured payment and move ``pending_payment -> accepted`` together."""
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            order = await domain.capture_payment(order_id, amount=str(amount))
            await uow.payment_repository.create(
                Payment(
                    id=None,
                    order_id=order.id,
                    client_id=order.client_id,
                    freelancer_id=order.freelancer_id,
                    amount=amount,
                    status=PaymentStatus.CAPTURED,
                    gateway_payment_id=payment_ref,
                    platform_fee=order.platform_commission,
                    gst_amount=order.gst_amount,
                    freelancer_amount=order.freelancer_amount,
                    captured_at=captured_at or self.clock(),
                )
            )
            events = domain.clear_events()
        logger.info("order_payment_captured", order_id=order.id, payment_ref=payment_ref, amount=str(amount))
        effects = [
            SideEffect(
                "chat.create_room",
                lambda: self.chat.create_room(order.id, order.client_id, order.freelancer_id),
            )
        ]
        effects += self._notifications(order, events)
        return await self._finish(order, effects)

    async def start_work(self, actor: Optional[Actor], order_id: str) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            order = await domain.start_work(actor, order_id)
            events = domain.clear_events()
        logger.info("order_work_started", order_id=order.id)
        return await self._finish(order, self._notifications(order, events))

    async def submit_delivery(
        self,
        actor: Optional[Actor],
        order_id: str,
        *,
        message: Optional[str] = None,
        files: Optional[list[str]] = None,
        links: Optional[list[str]] = None,
    ) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            order, entry = await domain.submit_delivery(
                actor, order_id, message=message, files=files, links=links
            )
            events = domain.clear_events()
        logger.info("order_delivered", order_id=order.id, version=entry.version)
        outcome = await self._finish(order, self._notifications(order, events))
        outcome.history = entry
        return outcome

    async def request_revision(
        self, actor: Optional[Actor], order_id: str, *, message: str
    ) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            order, entry = await domain.request_revision(actor, order_id, message=message)
            events = domain.clear_events()
        logger.info(
            "order_revision_requested",
            order_id=order.id,
            version=entry.version,
            revisions_used=order.revisions_used,
            revisions_allowed=order.revisions_allowed,
        )
        outcome = await self._finish(order, self._notifications(order, events))
        outcome.history = entry
        return outcome

    async def complete(self, actor: Optional[Actor], order_id: str) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            order = await domain.complete(actor, order_id)
            events = domain.clear_events()
        logger.info("order_completed", order_id=order.id, completed_at=order.completed_at)
        effects = [
            SideEffect(
                "stats.freelancer_earnings",
                lambda: self.stats.increment_freelancer_earnings(order.freelancer_id, order.freelancer_amount),
            ),
            SideEffect(
                "stats.client_spend",
                lambda: self.stats.increment_client_spend(order.client_id, order.total_amount),
            ),
            SideEffect(
                "chat.schedule_closure",
                lambda: self.chat.schedule_closure(
                    order.id, timedelta(hours=self.config.chat_close_delay_hours)
                ),
            ),
            SideEffect("settlement", lambda: self.settlement.settle(order)),
        ]
        effects += self._notifications(order, events)
        return await self._finish(order, effects)

    async def cancel(
        self, actor: Optional[Actor], order_id: str, reason: Optional[str] = None
    ) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow)
            before, order = await domain.cancel(actor, order_id, reason)
            events = domain.clear_events()
        logger.info(
            "order_cancelled",
            order_id=order.id,
            previous_status=before.status.value,
            payment_captured=before.payment_captured,
            reason=reason,
        )
        effects = []
        if before.payment_captured:
            effects.append(SideEffect("refund", lambda: self.refunds.refund_for_cancellation(order)))
        effects += self._notifications(order, events)
        return await self._finish(order, effects)

    async def expire_acceptance(self, order_id: str, *, now: Optional[datetime] = None) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow, clock=(lambda: now) if now else None)
            _, order = await domain.expire_acceptance(order_id)
            events = domain.clear_events()
        logger.info("order_acceptance_expired", order_id=order.id, accept_deadline=order.accept_deadline)
        effects = [SideEffect("refund", lambda: self.refunds.refund_for_decline(order))]
        effects += self._notifications(order, events)
        return await self._finish(order, effects)

    async def expire_payment(self, order_id: str, *, now: Optional[datetime] = None) -> TransitionOutcome:
        async with self._uow_factory() as uow:
            domain = self._domain(uow, clock=(lambda: now) if now else None)
            _, order = await domain.expire_payment(order_id)
            events = domain.clear_events()
        logger.info("order_payment_expired", order_id=order.id, payment_deadline=order.payment_deadline)
        return await self._finish(order, self._notifications(order, events))

    async def _finish(self, order: Order, effects: List[SideEffect]) -> TransitionOutcome:
        results = await run_side_effects(order.id, effects)
        outcome = TransitionOutcome(order=order, side_effects=results)
        refund = outcome.effect("refund")
        if refund is not None:
            outcome.refund = refund.value
        settlement = outcome.effect("settlement")
        if settlement is not None:
            outcome.settlement = settlement.value
        return outcome

    def _notifications(self, order: Order, events: List[OrderEvent]) -> List[SideEffect]:
        effects = []
        for event in events:
            context = {
                "order_id": order.id,
                "status": order.status.value,
                "event_id": event.event_id,
            }
            if getattr(event, "amount", ""):
                context["amount"] = event.amount
            for user_id in event.recipients():
                effects.append(
                    SideEffect(
                        f"notify.{event.notification_type}.{user_id}",
                        # bind loop variables now, not when the effect runs
                        lambda user_id=user_id, event=event, context=context: self.notifier.notify(
                            user_id, event.notification_type, context
                        ),
                    )
                )
        return effects

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_order(self, actor: Optional[Actor], order_id: str) -> OrderView:
        async with self._uow_factory(readonly=True) as uow:
            domain = self._domain(uow)
            order = await domain.get_visible_order(actor, order_id)
            history = await uow.delivery_history_repository.list_by_order(order.id)
        if order.status == OrderStatus.COMPLETED and history:
            # the accepted delivery is the latest one
            history[-1] = dataclasses.replace(history[-1], status=DeliveryStatus.APPROVED)
        return OrderView(order=order, delivery_history=history, viewer_role=order.viewer_role(actor))

    async def list_orders(
        self,
        actor: Optional[Actor],
        *,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Order]:
        actor = require_actor(actor)
        filters: dict[str, Any] = {}
        if actor.role == ActorRole.CLIENT:
            filters["client_id"] = actor.id
        elif actor.role == ActorRole.FREELANCER:
            filters["freelancer_id"] = actor.id
        elif actor.role != ActorRole.ADMIN:
            raise UnauthorizedException("Only parties and operators can list orders")
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_repository.list_for_party(
                status=status, skip=skip, limit=limit, **filters
            )

    async def get_delivery_download_url(
        self, actor: Optional[Actor], order_id: str, file_ref: str
    ) -> PresignedURL:
        """Time-limited download link for a file that belongs to the order."""
        key = (file_ref or "").strip()
        async with self._uow_factory(readonly=True) as uow:
            domain = self._domain(uow)
            order = await domain.get_visible_order(actor, order_id)
            history = await uow.delivery_history_repository.list_by_order(order.id)
        referenced = order.referenced_files()
        for entry in history:
            referenced.update(entry.delivery_files)
        if not key or key not in referenced:
            raise FileNotInOrderException(order.id, key)
        if self.storage is None:
            raise BusinessException(
                code=BusinessCode.SERVICE_UNAVAILABLE,
                message="File storage is not configured",
                error_type="StorageUnavailable",
            )
        ttl = self.config.download_url_ttl_seconds
        filename = key.rsplit("/", 1)[-1].replace('"', "").replace("\r", "").replace("\n", "") or "file"
        url = await self.storage.generate_presigned_url(
            key.lstrip("/"),
            expires_in=ttl,
            method="GET",
            response_content_disposition=f'attachment; filename="{filename}"',
        )
        logger.info("delivery_download_url_issued", order_id=order.id, actor_id=actor.id, expires_in=ttl)
        return url
