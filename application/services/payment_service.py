"""
Application service orchestrating gateway-facing payment use-cases.

Checkout creation for the client, and webhook intake: captures drive the
``pending_payment -> accepted`` edge, transfer and refund events are handed to the
settlement and refund engines. The gateway implementation is injected from the
composition root (API/tasks), keeping dependencies one-way.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from application.dtos.payments import CapturePayment, CheckoutSession, CreateCheckout, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from application.services.order_service import OrderService, TransitionOutcome
from application.services.refund_service import RefundOutcome, RefundService
from application.services.settlement_service import SettlementService
from core.logging_config import get_logger
from domain.common.exceptions import (
    InvalidStateException,
    OrderNotFoundException,
    PaymentAlreadyExistsException,
    UnauthorizedException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Actor, Order, OrderAction, OrderStatus, Party, require_actor, utcnow
from domain.order.pricing import from_minor
from shared.codes.payment_codes import (
    WEBHOOK_PAYMENT_AUTHORIZED,
    WEBHOOK_PAYMENT_CAPTURED,
    WEBHOOK_PAYMENT_FAILED,
    WEBHOOK_REFUND_EVENTS,
    WEBHOOK_TRANSFER_EVENTS,
)


logger = get_logger(__name__)


@dataclass
class WebhookResult:
    event_id: str
    event_type: str
    handled: bool
    detail: Optional[str] = None
    order_id: Optional[str] = None
    transition: Optional[TransitionOutcome] = None
    refund: Optional[RefundOutcome] = None


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        *,
        orders: OrderService,
        settlement: SettlementService,
        refunds: RefundService,
        currency: str = "INR",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.orders = orders
        self.settlement = settlement
        self.refunds = refunds
        self.currency = currency
        self.clock = clock

    async def create_checkout(self, actor: Optional[Actor], order_id: str) -> CheckoutSession:
        """Open (or reuse) the gateway order the client pays against."""
        actor = require_actor(actor)
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        if order.party_of(actor) != Party.CLIENT:
            raise UnauthorizedException("Only the order's client can pay for it", required="client")
        order.check_status(OrderAction.CAPTURE_PAYMENT)
        self._check_deadline(order)

        if order.gateway_order_id:
            return CheckoutSession(
                gateway_order_id=order.gateway_order_id,
                amount=order.total_amount,
                currency=self.currency,
                provider=self.gateway.provider,
                order_id=order.id,
            )

        session = await self.gateway.create_checkout(
            CreateCheckout(
                order_id=order.id,
                amount=order.total_amount,
                currency=self.currency,
                notes={"order_id": order.id},
            )
        )
        async with self._uow_factory() as uow:
            await uow.order_repository.set_gateway_order_id(order.id, session.gateway_order_id)
        logger.info(
            "payment_checkout_created",
            order_id=order.id,
            gateway_order_id=session.gateway_order_id,
            amount=str(order.total_amount),
        )
        return session

    def _check_deadline(self, order: Order) -> None:
        if order.payment_deadline is not None and order.payment_deadline <= self.clock():
            raise InvalidStateException(order.id, [OrderStatus.PENDING_PAYMENT], "payment_expired")

    async def handle_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookResult:
        event = self.gateway.parse_webhook(headers, body)
        logger.info("payment_webhook_parsed", provider=self.gateway.provider, event_type=event.type, event_id=event.id)

        if event.type in (WEBHOOK_PAYMENT_CAPTURED, WEBHOOK_PAYMENT_AUTHORIZED):
            return await self._on_payment(event)
        if event.type == WEBHOOK_PAYMENT_FAILED:
            entity = event.entity("payment")
            logger.warning(
                "payment_failed",
                gateway_order_id=entity.get("order_id"),
                payment_ref=entity.get("id"),
                reason=entity.get("error_description"),
            )
            return WebhookResult(event.id, event.type, handled=True, detail="logged")
        if event.type in WEBHOOK_TRANSFER_EVENTS:
            handled = await self.settlement.handle_transfer_webhook(event)
            return WebhookResult(event.id, event.type, handled=handled)
        if event.type in WEBHOOK_REFUND_EVENTS:
            handled = await self.refunds.handle_refund_webhook(event)
            return WebhookResult(event.id, event.type, handled=handled)

        logger.info("payment_webhook_ignored", event_type=event.type, event_id=event.id)
        return WebhookResult(event.id, event.type, handled=False, detail="ignored")

    async def _on_payment(self, event: WebhookEvent) -> WebhookResult:
        entity = event.entity("payment")
        payment_ref = entity.get("id")
        amount = from_minor(entity.get("amount") or 0)
        notes = entity.get("notes") or {}

        async with self._uow_factory(readonly=True) as uow:
            existing = await uow.payment_repository.get_by_gateway_payment_id(payment_ref) if payment_ref else None
            order = None
            if notes.get("order_id"):
                order = await uow.order_repository.get_by_id(notes["order_id"])
            if order is None and entity.get("order_id"):
                order = await uow.order_repository.get_by_gateway_order_id(entity["order_id"])

        if existing is not None:
            logger.info("payment_capture_duplicate", order_id=existing.order_id, payment_ref=payment_ref)
            return WebhookResult(event.id, event.type, handled=True, detail="duplicate", order_id=existing.order_id)
        if order is None:
            logger.error("payment_capture_unmatched", payment_ref=payment_ref, gateway_order_id=entity.get("order_id"))
            return WebhookResult(event.id, event.type, handled=False, detail="unmatched")

        reason = self._reject_reason(order, amount)
        if reason is None and event.type == WEBHOOK_PAYMENT_AUTHORIZED:
            try:
                await self.gateway.capture(
                    CapturePayment(order_id=order.id, payment_ref=payment_ref, amount=amount, currency=self.currency)
                )
            except Exception as exc:
                # an uncaptured authorization is released by the gateway on its own
                logger.error("payment_capture_failed", order_id=order.id, payment_ref=payment_ref, error=str(exc))
                return WebhookResult(event.id, event.type, handled=False, detail="capture_failed", order_id=order.id)
            # the payment.captured event that follows is a duplicate of this one
        if reason is None:
            captured_at = _timestamp(entity.get("created_at")) or self.clock()
            try:
                outcome = await self.orders.capture_payment(
                    order.id, payment_ref=payment_ref, amount=amount, captured_at=captured_at
                )
            except InvalidStateException as exc:
                reason = f"order is {exc.actual}"
            except PaymentAlreadyExistsException:
                reason = "order already has a payment"
            else:
                return WebhookResult(event.id, event.type, handled=True, order_id=order.id, transition=outcome)

        if event.type == WEBHOOK_PAYMENT_AUTHORIZED:
            logger.warning("payment_authorization_rejected", order_id=order.id, payment_ref=payment_ref, reason=reason)
            return WebhookResult(event.id, event.type, handled=True, detail=reason, order_id=order.id)

        logger.warning("payment_capture_rejected", order_id=order.id, payment_ref=payment_ref, reason=reason)
        refund = await self.refunds.refund_stray_capture(
            order.id,
            payment_ref,
            amount,
            client_id=order.client_id,
            freelancer_id=order.freelancer_id,
            # an order that can still be paid keeps its payment row for the real capture
            record=not self._still_payable(order),
        )
        return WebhookResult(event.id, event.type, handled=True, detail=reason, order_id=order.id, refund=refund)

    def _still_payable(self, order: Order) -> bool:
        if order.status != OrderStatus.PENDING_PAYMENT:
            return False
        return order.payment_deadline is None or order.payment_deadline > self.clock()

    def _reject_reason(self, order: Order, amount: Decimal) -> Optional[str]:
        if order.status != OrderStatus.PENDING_PAYMENT:
            return f"order is {order.status.value}"
        if order.payment_deadline is not None and order.payment_deadline <= self.clock():
            return "payment deadline passed"
        if amount != order.total_amount:
            return f"amount {amount} does not match order total {order.total_amount}"
        return None

    async def aclose(self) -> None:
        # Best-effort close underlying resources
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()


def _timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)
