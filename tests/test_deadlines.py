from datetime import timedelta

import pytest

from domain.common.exceptions import DomainValidationException
from domain.order.entity import OrderStatus

from tests.conftest import CLIENT, FREELANCER


@pytest.mark.asyncio
async def test_nothing_expires_inside_the_windows(services, make_order):
    await make_order(OrderStatus.PENDING_ACCEPTANCE)
    await make_order(OrderStatus.PENDING_PAYMENT)
    services.clock.advance(hours=47)

    summary = await services.deadlines.expire_overdue()

    assert summary.declined == [] and summary.cancelled == [] and summary.skipped == []


@pytest.mark.asyncio
async def test_overdue_orders_are_declined_or_cancelled(services, make_order):
    unanswered = await make_order(OrderStatus.PENDING_ACCEPTANCE)
    unpaid = await make_order(OrderStatus.PENDING_PAYMENT)
    paid = await make_order(OrderStatus.ACCEPTED)
    services.clock.advance(hours=48, minutes=1)

    summary = await services.deadlines.expire_overdue()

    assert summary.declined == [unanswered]
    assert summary.cancelled == [unpaid]
    declined = services.store.orders[unanswered]
    assert declined.status == OrderStatus.DECLINED
    assert "acceptance deadline" in declined.cancellation_reason
    cancelled = services.store.orders[unpaid]
    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.cancelled_at == services.clock()
    assert services.store.orders[paid].status == OrderStatus.ACCEPTED
    # both parties hear about an expired payment window
    assert services.notifier.types_for(CLIENT.id).count("order_cancelled") == 1
    assert services.notifier.types_for(FREELANCER.id).count("order_cancelled") == 1


@pytest.mark.asyncio
async def test_expiry_loses_to_a_concurrent_accept(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_ACCEPTANCE)
    services.clock.advance(hours=49)
    services.store.before_transition = lambda oid: services.store.force_status(oid, OrderStatus.PENDING_PAYMENT)

    summary = await services.deadlines.expire_overdue()

    assert summary.skipped == [order_id]
    assert summary.declined == []
    assert services.store.orders[order_id].status == OrderStatus.PENDING_PAYMENT


@pytest.mark.asyncio
async def test_expire_acceptance_rejects_an_early_call(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_ACCEPTANCE)
    with pytest.raises(DomainValidationException):
        await services.orders.expire_acceptance(order_id, now=services.clock() + timedelta(hours=1))
    assert services.store.orders[order_id].status == OrderStatus.PENDING_ACCEPTANCE
