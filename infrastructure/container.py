"""Composition root: wires the application services to the infrastructure adapters.

Used by the HTTP dependencies and by the Celery tasks so both run the same graph.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from application.ports.payment_gateway import PaymentGateway
from application.services.deadline_service import DeadlineService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundService
from application.services.settlement_service import SettlementService
from core.settings import order_settings, payment_settings
from infrastructure.adapters.collaboration import (
    SQLAlchemyChatAdapter,
    SQLAlchemyNotificationAdapter,
    SQLAlchemyStatsAdapter,
)
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.storage import get_storage
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@dataclass
class ServiceContainer:
    gateway: PaymentGateway
    orders: OrderService
    payments: PaymentService
    refunds: RefundService
    settlement: SettlementService
    deadlines: DeadlineService

    async def aclose(self) -> None:
        await self.payments.aclose()


def build_container(gateway: Optional[PaymentGateway] = None) -> ServiceContainer:
    gateway = gateway or get_payment_gateway()
    currency = payment_settings.currency
    uow_factory = SQLAlchemyUnitOfWork

    refunds = RefundService(uow_factory, gateway, currency=currency)
    settlement = SettlementService(uow_factory, gateway, currency=currency)
    orders = OrderService(
        uow_factory,
        refunds=refunds,
        settlement=settlement,
        chat=SQLAlchemyChatAdapter(),
        notifier=SQLAlchemyNotificationAdapter(),
        stats=SQLAlchemyStatsAdapter(),
        storage=get_storage(),
        config=order_settings,
    )
    payments = PaymentService(
        uow_factory,
        gateway,
        orders=orders,
        settlement=settlement,
        refunds=refunds,
        currency=currency,
    )
    deadlines = DeadlineService(uow_factory, orders, batch_size=order_settings.expiry_batch_size)
    return ServiceContainer(
        gateway=gateway,
        orders=orders,
        payments=payments,
        refunds=refunds,
        settlement=settlement,
        deadlines=deadlines,
    )
