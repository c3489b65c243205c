"""Celery beat schedule.

Deadlines are enforced by polling; the interval bounds how late an order can
expire past its deadline.
"""
from __future__ import annotations

from core.settings import order_settings

CELERY_BEAT_SCHEDULE = {
    "expire-overdue-orders": {
        "task": "orders.expire_overdue",
        "schedule": order_settings.expiry_interval_seconds,
    },
    "retry-pending-transfers": {
        "task": "payments.retry_pending_transfers",
        "schedule": order_settings.transfer_retry_interval_seconds,
        "kwargs": {"limit": 50},
    },
}
