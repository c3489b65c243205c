"""
Settlement engine - pays the freelancer out of escrow once an order completes.

The automatic path asks the gateway to transfer ``freelancer_amount`` to the
freelancer's linked payout account. Anything short of a successful transfer
(no linked account, gateway error, gateway down) parks the payment in the manual
payout queue, where an operator pays by bank/UPI and confirms with the external
transaction reference. The order's ``completed`` status is never touched here.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional

from application.dtos.payments import PayoutDestination, TransferRequest, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.exceptions import (
    InvalidStateException,
    MissingPayoutDetailsException,
    OrderNotFoundException,
    PaymentNotFoundException,
    SettlementFailure,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Actor, Order, OrderStatus, require_admin
from domain.order.pricing import payout_from_total
from domain.payment.entity import Payment, PayoutAccount
from shared.codes.payment_codes import WEBHOOK_TRANSFER_FAILED, WEBHOOK_TRANSFER_PROCESSED


logger = get_logger(__name__)


class SettlementStatus(str, Enum):
    TRANSFERRED = "transferred"
    PENDING_MANUAL = "pending_manual"
    ALREADY_TRANSFERRED = "already_transferred"
    NO_PAYMENT = "no_payment"
    REFUNDED = "refunded"


@dataclass
class SettlementOutcome:
    order_id: str
    status: SettlementStatus
    amount: Optional[Decimal] = None
    transfer_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (SettlementStatus.TRANSFERRED, SettlementStatus.ALREADY_TRANSFERRED)


@dataclass
class ManualPayoutEntry:
    """Everything an operator needs to pay a freelancer by hand."""

    order_id: str
    freelancer_id: str
    freelancer_name: Optional[str]
    account_holder_name: Optional[str]
    account_number: Optional[str]
    ifsc: Optional[str]
    upi_id: Optional[str]
    amount_paid: Decimal
    payout_amount: Decimal
    failure_reason: Optional[str]
    completed_at: Optional[datetime]
    missing_fields: list[str] = field(default_factory=list)

    @property
    def payout_details_complete(self) -> bool:
        return not self.missing_fields


class SettlementService:
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

    async def settle(self, order: Order) -> SettlementOutcome:
        """Attempt the automatic payout for a completed order."""
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_order_id(order.id)
            account = await uow.payout_account_repository.get_by_freelancer_id(order.freelancer_id)

        if payment is None:
            logger.error("settlement_no_payment", order_id=order.id)
            return SettlementOutcome(order.id, SettlementStatus.NO_PAYMENT, reason="No captured payment")
        if payment.transferred_to_freelancer:
            return SettlementOutcome(
                order.id,
                SettlementStatus.ALREADY_TRANSFERRED,
                amount=payment.freelancer_amount,
                transfer_id=payment.external_transfer_id,
            )
        return await self._transfer(payment, account)

    async def _transfer(self, payment: Payment, account: Optional[PayoutAccount]) -> SettlementOutcome:
        order_id = payment.order_id
        amount = payment.freelancer_amount
        if payment.refund_processed:
            # the client already has this money back
            logger.error("settlement_refunded_payment", order_id=order_id, refund_id=payment.refund_id)
            return SettlementOutcome(
                order_id, SettlementStatus.REFUNDED, reason="Payment was refunded to the client"
            )
        if account is None or not account.linked_account_id:
            reason = "Freelancer has no linked payout account"
            logger.warning("settlement_queued_manual", order_id=order_id, reason=reason)
            await self._queue_manual(order_id, reason)
            return SettlementOutcome(order_id, SettlementStatus.PENDING_MANUAL, amount=amount, reason=reason)

        logger.info(
            "settlement_transfer_request",
            order_id=order_id,
            freelancer_id=payment.freelancer_id,
            amount=str(amount),
        )
        try:
            result = await self.gateway.transfer(
                TransferRequest(
                    order_id=order_id,
                    destination=PayoutDestination(
                        freelancer_id=account.freelancer_id,
                        linked_account_id=account.linked_account_id,
                        account_holder_name=account.account_holder_name,
                        account_number=account.account_number,
                        ifsc=account.ifsc,
                        upi_id=account.upi_id,
                    ),
                    amount=amount,
                    currency=self.currency,
                    payment_ref=payment.gateway_payment_id,
                    idempotency_key=f"transfer:{order_id}",
                )
            )
        except Exception as exc:
            failure = SettlementFailure(order_id, str(exc))
            logger.error(
                "settlement_transfer_failed",
                order_id=order_id,
                amount=str(amount),
                gateway_error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._queue_manual(order_id, failure.details["reason"])
            return SettlementOutcome(
                order_id, SettlementStatus.PENDING_MANUAL, amount=amount, reason=failure.message
            )

        if result.status == "failed":
            reason = f"Gateway rejected transfer {result.transfer_id}"
            logger.error("settlement_transfer_failed", order_id=order_id, transfer_id=result.transfer_id)
            await self._queue_manual(order_id, reason)
            return SettlementOutcome(order_id, SettlementStatus.PENDING_MANUAL, amount=amount, reason=reason)

        async with self._uow_factory() as uow:
            current = await uow.payment_repository.get_by_order_id(order_id)
            current.mark_transferred(result.transfer_id)
            await uow.payment_repository.update(current)
        logger.info("settlement_transferred", order_id=order_id, transfer_id=result.transfer_id, amount=str(amount))
        return SettlementOutcome(
            order_id, SettlementStatus.TRANSFERRED, amount=amount, transfer_id=result.transfer_id
        )

    async def _queue_manual(self, order_id: str, reason: str) -> None:
        async with self._uow_factory() as uow:
            current = await uow.payment_repository.get_by_order_id(order_id)
            current.mark_pending_manual(reason)
            await uow.payment_repository.update(current)

    async def retry_pending_transfers(self, limit: int = 50) -> List[SettlementOutcome]:
        """Re-attempt automatic payouts for queued payments whose freelancer now has a linked account."""
        async with self._uow_factory(readonly=True) as uow:
            queued = await uow.payment_repository.list_pending_manual(limit=limit)
            accounts = {}
            for payment in queued:
                if payment.freelancer_id not in accounts:
                    accounts[payment.freelancer_id] = (
                        await uow.payout_account_repository.get_by_freelancer_id(payment.freelancer_id)
                    )

        outcomes = []
        for payment in queued:
            account = accounts.get(payment.freelancer_id)
            if account is None or not account.linked_account_id:
                continue
            outcomes.append(await self._transfer(payment, account))
        logger.info(
            "settlement_retry_finished",
            queued=len(queued),
            attempted=len(outcomes),
            transferred=sum(1 for o in outcomes if o.ok),
        )
        return outcomes

    # ------------------------------------------------------------------
    # Manual payout queue
    # ------------------------------------------------------------------
    async def list_manual_payouts(
        self, actor: Optional[Actor], *, skip: int = 0, limit: int = 100
    ) -> List[ManualPayoutEntry]:
        require_admin(actor)
        entries = []
        async with self._uow_factory(readonly=True) as uow:
            payments = await uow.payment_repository.list_pending_manual(skip=skip, limit=limit)
            for payment in payments:
                order = await uow.order_repository.get_by_id(payment.order_id)
                account = await uow.payout_account_repository.get_by_freelancer_id(payment.freelancer_id)
                account = account or PayoutAccount(freelancer_id=payment.freelancer_id)
                entries.append(
                    ManualPayoutEntry(
                        order_id=payment.order_id,
                        freelancer_id=payment.freelancer_id,
                        freelancer_name=account.full_name,
                        account_holder_name=account.account_holder_name,
                        account_number=account.account_number,
                        ifsc=account.ifsc,
                        upi_id=account.upi_id,
                        amount_paid=payment.amount,
                        payout_amount=payout_from_total(payment.amount),
                        failure_reason=payment.transfer_failure_reason,
                        completed_at=order.completed_at if order else None,
                        missing_fields=account.missing_fields(),
                    )
                )
        return entries

    async def confirm_manual_transfer(
        self, actor: Optional[Actor], order_id: str, transaction_ref: Optional[str] = None
    ) -> Payment:
        """Operator confirms a hand-made payout. Confirming twice is a no-op."""
        operator = require_admin(actor)
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            payment = await uow.payment_repository.get_by_order_id(order_id)
            if payment is None:
                raise PaymentNotFoundException(order_id)
            if payment.transferred_to_freelancer:
                logger.info(
                    "manual_transfer_already_confirmed",
                    order_id=order_id,
                    operator_id=operator.id,
                    external_transfer_id=payment.external_transfer_id,
                )
                return payment
            if order.status != OrderStatus.COMPLETED:
                raise InvalidStateException(order_id, [OrderStatus.COMPLETED], order.status)

            account = await uow.payout_account_repository.get_by_freelancer_id(payment.freelancer_id)
            account = account or PayoutAccount(freelancer_id=payment.freelancer_id)
            missing = account.missing_fields()
            if missing:
                raise MissingPayoutDetailsException(payment.freelancer_id, missing)

            payment.mark_transferred(transaction_ref)
            updated = await uow.payment_repository.update(payment)
        logger.info(
            "manual_transfer_confirmed",
            order_id=order_id,
            operator_id=operator.id,
            transaction_ref=transaction_ref,
            amount=str(updated.freelancer_amount),
        )
        return updated

    async def handle_transfer_webhook(self, event: WebhookEvent) -> bool:
        entity = event.entity("transfer")
        transfer_id = entity.get("id")
        notes = entity.get("notes") or {}
        async with self._uow_factory() as uow:
            payment = None
            if transfer_id:
                payment = await uow.payment_repository.get_by_external_transfer_id(transfer_id)
            if payment is None and notes.get("order_id"):
                payment = await uow.payment_repository.get_by_order_id(notes["order_id"])
            if payment is None:
                logger.warning("transfer_webhook_unmatched", transfer_id=transfer_id)
                return False
            if event.type == WEBHOOK_TRANSFER_PROCESSED:
                payment.mark_transferred(transfer_id)
            elif event.type == WEBHOOK_TRANSFER_FAILED:
                reason = (entity.get("error") or {}).get("description") or "Transfer failed at gateway"
                if payment.transferred_to_freelancer:
                    # transferred never reverts; an operator has to reconcile with the gateway
                    logger.error(
                        "transfer_failed_after_confirmation",
                        order_id=payment.order_id,
                        transfer_id=transfer_id,
                        reason=reason,
                    )
                    return False
                payment.mark_pending_manual(reason)
                logger.error("settlement_transfer_failed", order_id=payment.order_id, transfer_id=transfer_id)
            else:
                return False
            await uow.payment_repository.update(payment)
        logger.info("transfer_webhook_applied", order_id=payment.order_id, event_type=event.type)
        return True
