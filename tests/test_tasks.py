import pytest

from domain.order.entity import OrderStatus
from infrastructure.tasks.config.beat import CELERY_BEAT_SCHEDULE
from infrastructure.tasks.tasks.orders import _expire_overdue, _retry_pending_transfers

from tests.conftest import FREELANCER


def test_beat_schedule_names_registered_jobs():
    tasks = {entry["task"] for entry in CELERY_BEAT_SCHEDULE.values()}
    assert tasks == {"orders.expire_overdue", "payments.retry_pending_transfers"}


@pytest.mark.asyncio
async def test_expiry_job_reports_order_ids(services, make_order):
    unanswered = await make_order(OrderStatus.PENDING_ACCEPTANCE)
    services.clock.advance(hours=49)

    result = await _expire_overdue(services)

    assert result == {"declined": [unanswered], "cancelled": [], "skipped": []}


@pytest.mark.asyncio
async def test_transfer_retry_job_pays_out_once_account_is_linked(services, make_order):
    account = services.store.accounts[FREELANCER.id]
    account.linked_account_id = None
    order_id = await make_order(OrderStatus.COMPLETED)
    assert services.store.payments[order_id].transferred_to_freelancer is False

    skipped = await _retry_pending_transfers(services, 10)
    assert skipped == {"attempted": 0, "transferred": []}

    account.linked_account_id = "acc_late"
    result = await _retry_pending_transfers(services, 10)

    assert result == {"attempted": 1, "transferred": [order_id]}
    assert services.store.payments[order_id].transferred_to_freelancer is True
