from decimal import Decimal

import pytest

from application.services.refund_service import RefundOutcomeStatus
from domain.common.exceptions import InvalidStateException, UnauthorizedException
from domain.order.entity import OrderStatus
from domain.payment.entity import PaymentStatus, RefundStatus
from infrastructure.external.payments.exceptions import PaymentRecoverableError

from tests.conftest import ADMIN, CLIENT, FREELANCER


@pytest.mark.asyncio
async def test_decline_without_payment_is_a_noop_refund(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_ACCEPTANCE)

    outcome = await services.orders.decline(FREELANCER, order_id, reason="Fully booked")

    assert outcome.order.status == OrderStatus.DECLINED
    assert outcome.order.cancellation_reason == "Fully booked"
    assert outcome.refund.status == RefundOutcomeStatus.NOOP
    assert outcome.effect("refund").ok
    assert services.gateway.calls_to("refund") == []
    assert services.notifier.types_for(CLIENT.id) == ["order_declined"]


@pytest.mark.asyncio
async def test_cancel_after_capture_refunds_price_minus_fee(services, make_order):
    order_id = await make_order(OrderStatus.IN_PROGRESS)

    outcome = await services.orders.cancel(CLIENT, order_id, reason="Changed plans")

    assert outcome.order.status == OrderStatus.CANCELLED
    assert outcome.refund.status == RefundOutcomeStatus.PROCESSED
    assert outcome.refund.amount == Decimal("9600.00")
    request = services.gateway.calls_to("refund")[0]
    assert request.amount == Decimal("9600.00")
    assert request.idempotency_key == f"refund:{order_id}"
    assert request.reason == "cancellation"

    payment = services.store.payments[order_id]
    assert payment.status == PaymentStatus.REFUNDED
    assert payment.refund_status == RefundStatus.PROCESSED
    assert payment.refund_amount == Decimal("9600.00")
    # the client is out the fee plus the GST collected at capture
    assert payment.amount - payment.refund_amount == Decimal("652.00")
    assert services.notifier.types_for(FREELANCER.id)[-1] == "order_cancelled"


@pytest.mark.asyncio
async def test_cancel_before_payment_has_no_refund_step(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_PAYMENT)

    outcome = await services.orders.cancel(CLIENT, order_id)

    assert outcome.order.status == OrderStatus.CANCELLED
    assert outcome.effect("refund") is None
    assert services.gateway.calls_to("refund") == []


@pytest.mark.asyncio
async def test_refund_gateway_failure_keeps_the_cancellation(services, make_order):
    order_id = await make_order(OrderStatus.ACCEPTED)
    services.gateway.failures["refund"] = PaymentRecoverableError("razorpay answered 503", provider="razorpay")

    outcome = await services.orders.cancel(CLIENT, order_id)

    assert outcome.order.status == OrderStatus.CANCELLED
    assert services.store.orders[order_id].status == OrderStatus.CANCELLED
    assert outcome.refund.status == RefundOutcomeStatus.FAILED
    assert outcome.effect("refund").ok is False
    payment = services.store.payments[order_id]
    assert payment.refund_status == RefundStatus.FAILED
    assert payment.refund_amount == Decimal("9600.00")
    assert "503" in payment.refund_failure_reason


@pytest.mark.asyncio
async def test_gateway_reported_refund_failure_is_recorded(services, make_order):
    order_id = await make_order(OrderStatus.ACCEPTED)
    services.gateway.statuses["refund"] = "failed"

    outcome = await services.orders.cancel(CLIENT, order_id)

    assert outcome.refund.status == RefundOutcomeStatus.FAILED
    assert services.store.payments[order_id].refund_status == RefundStatus.FAILED


@pytest.mark.asyncio
async def test_operator_retries_failed_refund(services, make_order):
    order_id = await make_order(OrderStatus.ACCEPTED)
    services.gateway.failures["refund"] = PaymentRecoverableError("timeout", provider="razorpay")
    await services.orders.cancel(CLIENT, order_id)

    failed = await services.refunds.list_failed_refunds(ADMIN)
    assert [p.order_id for p in failed] == [order_id]
    with pytest.raises(UnauthorizedException):
        await services.refunds.list_failed_refunds(CLIENT)

    del services.gateway.failures["refund"]
    outcome = await services.refunds.retry_refund(ADMIN, order_id)
    assert outcome.status == RefundOutcomeStatus.PROCESSED
    assert outcome.amount == Decimal("9600.00")
    assert await services.refunds.list_failed_refunds(ADMIN) == []

    again = await services.refunds.retry_refund(ADMIN, order_id)
    assert again.status == RefundOutcomeStatus.ALREADY_PROCESSED
    assert len(services.gateway.calls_to("refund")) == 2


@pytest.mark.asyncio
async def test_stray_capture_is_refunded_in_full(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_ACCEPTANCE)
    order = services.store.orders[order_id]
    await services.refunds.refund_stray_capture(
        order_id, "pay_stray", Decimal("10252.00"), client_id=order.client_id, freelancer_id=order.freelancer_id
    )
    request = services.gateway.calls_to("refund")[0]
    assert request.amount == Decimal("10252.00")
    assert request.reason == "late_capture"
    assert services.store.payments[order_id].refund_status == RefundStatus.PROCESSED


@pytest.mark.asyncio
async def test_decline_refund_returns_the_whole_capture(services, make_order):
    order_id = await make_order(OrderStatus.ACCEPTED)
    order = services.store.orders[order_id]

    outcome = await services.refunds.refund_for_decline(order)

    assert outcome.status == RefundOutcomeStatus.PROCESSED
    assert outcome.amount == Decimal("10252.00")
    assert services.gateway.calls_to("refund")[0].reason == "full"


@pytest.mark.asyncio
async def test_operator_cannot_refund_a_live_order(services, make_order):
    order_id = await make_order(OrderStatus.IN_PROGRESS)

    with pytest.raises(InvalidStateException) as exc_info:
        await services.refunds.retry_refund(ADMIN, order_id)

    assert exc_info.value.actual == "in_progress"
    assert exc_info.value.expected == ["cancelled", "declined"]
    assert services.gateway.calls_to("refund") == []
    assert services.store.payments[order_id].refund_status == RefundStatus.NONE
