"""
Refund engine - returns escrowed money to the client.

Two triggers: a decline (full refund, nothing was worked on) and a cancellation
after capture (price minus the 4% processing fee; GST is never refunded). The
order has already reached its terminal status when this runs, so every gateway
failure is recorded on the payment row and reported back instead of raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional

from application.dtos.payments import RefundRequest, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.exceptions import (
    InvalidStateException,
    OrderNotFoundException,
    PaymentNotFoundException,
    RefundFailure,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Actor, Order, OrderStatus, require_admin
from domain.order.pricing import (
    calculate_full_refund,
    calculate_refund,
    from_minor,
    quantize,
)
from domain.payment.entity import Payment, PaymentStatus, RefundStatus
from shared.codes.payment_codes import WEBHOOK_REFUND_FAILED, WEBHOOK_REFUND_PROCESSED


logger = get_logger(__name__)


# refunds only ever follow a decline or a cancellation
REFUNDABLE_STATUSES = (OrderStatus.DECLINED, OrderStatus.CANCELLED)


class RefundKind(str, Enum):
    FULL = "full"
    CANCELLATION = "cancellation"


class RefundOutcomeStatus(str, Enum):
    PROCESSED = "processed"
    FAILED = "failed"
    NOOP = "noop"
    ALREADY_PROCESSED = "already_processed"


@dataclass
class RefundOutcome:
    order_id: str
    status: RefundOutcomeStatus
    amount: Optional[Decimal] = None
    refund_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != RefundOutcomeStatus.FAILED


def _stray_payment(
    order_id: str, payment_ref: str, amount: Decimal, client_id: str, freelancer_id: str
) -> Payment:
    # no escrow split: the whole amount goes back to the client
    return Payment(
        id=None,
        order_id=order_id,
        client_id=client_id,
        freelancer_id=freelancer_id,
        amount=amount,
        status=PaymentStatus.CAPTURED,
        gateway_payment_id=payment_ref,
        platform_fee=Decimal("0.00"),
        gst_amount=Decimal("0.00"),
        freelancer_amount=Decimal("0.00"),
    )


def refund_amount_for(kind: RefundKind, order: Order, payment: Payment) -> Decimal:
    if kind == RefundKind.FULL:
        return calculate_full_refund(payment.amount).refund_amount
    # the fee is computed on the price snapshotted at creation
    return calculate_refund(order.price).refund_amount


class RefundService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway: PaymentGateway,
        *,
        currency: str = "INR",
    ) -> None:
        self._uow_factory = uow_factory
        self.gateway = gateway
        self.currency = currency

    async def refund_for_decline(self, order: Order) -> RefundOutcome:
        return await self._issue(order, RefundKind.FULL)

    async def refund_for_cancellation(self, order: Order) -> RefundOutcome:
        return await self._issue(order, RefundKind.CANCELLATION)

    async def _issue(self, order: Order, kind: RefundKind) -> RefundOutcome:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_order_id(order.id)

        if payment is None or not payment.is_captured:
            # nothing was charged, so there is nothing to send back
            logger.info("refund_noop", order_id=order.id, kind=kind.value)
            return RefundOutcome(order.id, RefundOutcomeStatus.NOOP, reason="No captured payment")
        if payment.refund_processed:
            logger.info("refund_already_processed", order_id=order.id, refund_id=payment.refund_id)
            return RefundOutcome(
                order.id,
                RefundOutcomeStatus.ALREADY_PROCESSED,
                amount=payment.refund_amount,
                refund_id=payment.refund_id,
            )

        amount = refund_amount_for(kind, order, payment)
        return await self._call_gateway(payment, amount, kind.value)

    async def _call_gateway(self, payment: Payment, amount: Decimal, reason: str) -> RefundOutcome:
        order_id = payment.order_id
        logger.info(
            "refund_request",
            order_id=order_id,
            payment_ref=payment.gateway_payment_id,
            amount=str(amount),
            reason=reason,
        )
        try:
            result = await self.gateway.refund(
                RefundRequest(
                    order_id=order_id,
                    payment_ref=payment.gateway_payment_id,
                    amount=amount,
                    currency=self.currency,
                    reason=reason,
                    idempotency_key=f"refund:{order_id}",
                )
            )
        except Exception as exc:
            failure = RefundFailure(order_id, str(exc))
            logger.error(
                "refund_failed",
                order_id=order_id,
                amount=str(amount),
                gateway_error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._record_failure(order_id, failure.details["reason"], amount)
            return RefundOutcome(order_id, RefundOutcomeStatus.FAILED, amount=amount, reason=failure.message)

        if result.status == "failed":
            reason_text = f"Gateway rejected refund {result.refund_id}"
            logger.error("refund_failed", order_id=order_id, amount=str(amount), refund_id=result.refund_id)
            await self._record_failure(order_id, reason_text, amount)
            return RefundOutcome(order_id, RefundOutcomeStatus.FAILED, amount=amount, reason=reason_text)

        async with self._uow_factory() as uow:
            current = await uow.payment_repository.get_by_order_id(order_id)
            current.record_refund(result.refund_id, amount)
            await uow.payment_repository.update(current)
        logger.info("refund_processed", order_id=order_id, refund_id=result.refund_id, amount=str(amount))
        return RefundOutcome(
            order_id, RefundOutcomeStatus.PROCESSED, amount=amount, refund_id=result.refund_id
        )

    async def _record_failure(self, order_id: str, reason: str, amount: Decimal) -> None:
        async with self._uow_factory() as uow:
            current = await uow.payment_repository.get_by_order_id(order_id)
            if current is None:
                return
            current.mark_refund_failed(reason, amount)
            await uow.payment_repository.update(current)

    async def refund_stray_capture(
        self,
        order_id: str,
        payment_ref: str,
        amount: Decimal,
        *,
        client_id: str,
        freelancer_id: str,
        record: bool = True,
    ) -> RefundOutcome:
        """Give back a capture that arrived late or for an order that no longer takes money.

        With ``record=False`` the order can still be paid properly, so its one payment
        row is left free for the real capture and the refund is only logged.
        """
        if not record:
            logger.warning("refund_unrecorded_capture", order_id=order_id, payment_ref=payment_ref)
            return await self._refund_unrecorded(
                _stray_payment(order_id, payment_ref, amount, client_id, freelancer_id), amount
            )
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_order_id(order_id)
            if payment is None:
                payment = await uow.payment_repository.create(
                    _stray_payment(order_id, payment_ref, amount, client_id, freelancer_id)
                )
        if payment.gateway_payment_id != payment_ref:
            # the order's own payment stays untouched; refund the extra one directly
            logger.warning("refund_extra_capture", order_id=order_id, payment_ref=payment_ref)
            extra = _stray_payment(order_id, payment_ref, amount, client_id, freelancer_id)
            return await self._refund_unrecorded(extra, amount)
        if payment.refund_processed:
            return RefundOutcome(
                order_id, RefundOutcomeStatus.ALREADY_PROCESSED, amount=payment.refund_amount
            )
        return await self._call_gateway(payment, amount, "late_capture")

    async def _refund_unrecorded(self, payment: Payment, amount: Decimal) -> RefundOutcome:
        try:
            result = await self.gateway.refund(
                RefundRequest(
                    order_id=payment.order_id,
                    payment_ref=payment.gateway_payment_id,
                    amount=amount,
                    currency=self.currency,
                    reason="duplicate_capture",
                    idempotency_key=f"refund:{payment.gateway_payment_id}",
                )
            )
        except Exception as exc:
            logger.error(
                "refund_failed",
                order_id=payment.order_id,
                payment_ref=payment.gateway_payment_id,
                amount=str(amount),
                gateway_error=str(exc),
            )
            return RefundOutcome(payment.order_id, RefundOutcomeStatus.FAILED, amount=amount, reason=str(exc))
        logger.info("refund_processed", order_id=payment.order_id, refund_id=result.refund_id, amount=str(amount))
        return RefundOutcome(
            payment.order_id, RefundOutcomeStatus.PROCESSED, amount=amount, refund_id=result.refund_id
        )

    # ------------------------------------------------------------------
    # Operator tooling
    # ------------------------------------------------------------------
    async def list_failed_refunds(
        self, actor: Optional[Actor], *, skip: int = 0, limit: int = 100
    ) -> List[Payment]:
        require_admin(actor)
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payment_repository.list_failed_refunds(skip=skip, limit=limit)

    async def retry_refund(self, actor: Optional[Actor], order_id: str) -> RefundOutcome:
        require_admin(actor)
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            payment = await uow.payment_repository.get_by_order_id(order_id)
        if order.status not in REFUNDABLE_STATUSES:
            # a live order still owes the freelancer; its money stays in escrow
            raise InvalidStateException(order_id, REFUNDABLE_STATUSES, order.status)
        if payment is None:
            raise PaymentNotFoundException(order_id)
        kind = RefundKind.FULL if order.status == OrderStatus.DECLINED else RefundKind.CANCELLATION
        logger.info("refund_retry", order_id=order_id, operator_id=actor.id, kind=kind.value)
        if payment.refund_status == RefundStatus.FAILED and payment.refund_amount is not None:
            # same amount as the attempt that failed
            return await self._call_gateway(payment, payment.refund_amount, kind.value)
        return await self._issue(order, kind)

    async def handle_refund_webhook(self, event: WebhookEvent) -> bool:
        entity = event.entity("refund")
        refund_id = entity.get("id")
        payment_ref = entity.get("payment_id")
        async with self._uow_factory() as uow:
            payment = None
            if refund_id:
                payment = await uow.payment_repository.get_by_refund_id(refund_id)
            if payment is None and payment_ref:
                payment = await uow.payment_repository.get_by_gateway_payment_id(payment_ref)
            if payment is None:
                logger.warning("refund_webhook_unmatched", refund_id=refund_id, payment_ref=payment_ref)
                return False
            if event.type == WEBHOOK_REFUND_PROCESSED:
                amount = payment.refund_amount
                if entity.get("amount") is not None:
                    amount = from_minor(entity["amount"])
                payment.record_refund(refund_id, quantize(amount or payment.amount))
            elif event.type == WEBHOOK_REFUND_FAILED:
                payment.mark_refund_failed(entity.get("error_description") or "Refund failed at gateway")
                logger.error("refund_failed", order_id=payment.order_id, refund_id=refund_id, source="webhook")
            else:
                return False
            await uow.payment_repository.update(payment)
        logger.info("refund_webhook_applied", order_id=payment.order_id, event_type=event.type)
        return True

