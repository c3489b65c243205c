"""Periodic order lifecycle jobs: deadline expiry and payout retries."""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)


async def _expire_overdue(container) -> dict:
    summary = await container.deadlines.expire_overdue()
    return {
        "declined": summary.declined,
        "cancelled": summary.cancelled,
        "skipped": summary.skipped,
    }


async def _retry_pending_transfers(container, limit: int) -> dict:
    outcomes = await container.settlement.retry_pending_transfers(limit=limit)
    return {
        "attempted": len(outcomes),
        "transferred": [o.order_id for o in outcomes if o.ok],
    }


@shared_task(name="orders.expire_overdue", bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def expire_overdue_orders(self) -> dict:
    """Decline unanswered orders and cancel unpaid ones whose deadline has passed."""
    try:
        result = self.run_async(_expire_overdue)
    except Exception as exc:
        raise self.retry(exc=exc)
    logger.info(
        "expire_overdue_finished",
        declined=len(result["declined"]),
        cancelled=len(result["cancelled"]),
        skipped=len(result["skipped"]),
    )
    return result


@shared_task(name="payments.retry_pending_transfers", bind=True, base=BaseTask, max_retries=3, default_retry_delay=60)
def retry_pending_transfers(self, limit: int = 50) -> dict:
    try:
        result = self.run_async(lambda container: _retry_pending_transfers(container, limit))
    except Exception as exc:
        raise self.retry(exc=exc)
    logger.info("retry_pending_transfers_finished", **result)
    return result
