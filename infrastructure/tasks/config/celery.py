"""Celery application for the periodic order jobs"""
from __future__ import annotations

import os

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger
from .beat import CELERY_BEAT_SCHEDULE

logger = get_logger(__name__)

TASK_PACKAGES = ("infrastructure.tasks.tasks",)

celery_app = Celery("escrow_orders")

celery_app.conf.update(
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # a job killed mid-run is redelivered; every job tolerates a second run
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="orders",
    task_queues=(
        Queue("orders"),
        Queue("payouts"),
    ),
    task_routes={
        "orders.*": {"queue": "orders"},
        "payments.*": {"queue": "payouts"},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
    # importing the package registers every job module
    imports=TASK_PACKAGES,
)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=sender.conf.broker_url,
        queues=[q.name for q in sender.conf.task_queues],
        schedule=sorted(sender.conf.beat_schedule),
    )
