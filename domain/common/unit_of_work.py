"""Unit of Work 抽象"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.order.repository import (
    DeliveryHistoryRepository,
    OrderRepository,
    ServicePlanRepository,
)
from domain.payment.repository import PaymentRepository, PayoutAccountRepository


class AbstractUnitOfWork(ABC):
    """应用层使用的事务边界"""

    order_repository: OrderRepository
    delivery_history_repository: DeliveryHistoryRepository
    service_plan_repository: ServicePlanRepository
    payment_repository: PaymentRepository
    payout_account_repository: PayoutAccountRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.order_repository = None  # type: ignore[assignment]
        self.delivery_history_repository = None  # type: ignore[assignment]
        self.service_plan_repository = None  # type: ignore[assignment]
        self.payment_repository = None  # type: ignore[assignment]
        self.payout_account_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 仅在可写且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
