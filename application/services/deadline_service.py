"""
Deadline expiry - the scheduled trigger for the acceptance and payment windows.

Runs from Celery beat. Orders whose window has elapsed are driven through the
system decline/cancel edges with the same conditional write as any other
transition, so a freelancer accepting (or a capture landing) at the same moment
wins or loses cleanly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from application.services.order_service import OrderService
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException, InvalidStateException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus, utcnow


logger = get_logger(__name__)


@dataclass
class ExpirySummary:
    declined: List[str] = field(default_factory=list)
    cancelled: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class DeadlineService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        orders: OrderService,
        *,
        batch_size: int = 100,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self.orders = orders
        self.batch_size = batch_size
        self.clock = clock

    async def expire_overdue(self, now: Optional[datetime] = None) -> ExpirySummary:
        now = now or self.clock()
        async with self._uow_factory(readonly=True) as uow:
            unanswered = await uow.order_repository.list_overdue(
                OrderStatus.PENDING_ACCEPTANCE, now, limit=self.batch_size
            )
            unpaid = await uow.order_repository.list_overdue(
                OrderStatus.PENDING_PAYMENT, now, limit=self.batch_size
            )

        summary = ExpirySummary()
        for order in unanswered:
            if await self._expire(order.id, self.orders.expire_acceptance, now):
                summary.declined.append(order.id)
            else:
                summary.skipped.append(order.id)
        for order in unpaid:
            if await self._expire(order.id, self.orders.expire_payment, now):
                summary.cancelled.append(order.id)
            else:
                summary.skipped.append(order.id)

        logger.info(
            "order_deadlines_expired",
            declined=len(summary.declined),
            cancelled=len(summary.cancelled),
            skipped=len(summary.skipped),
        )
        return summary

    async def _expire(self, order_id: str, transition, now: datetime) -> bool:
        try:
            await transition(order_id, now=now)
        except (InvalidStateException, DomainValidationException) as exc:
            # someone moved the order first; nothing left to expire
            logger.info("order_expiry_skipped", order_id=order_id, reason=exc.message)
            return False
        return True
