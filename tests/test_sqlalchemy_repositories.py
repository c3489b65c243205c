"""Conditional writes against a real database (SQLite through aiosqlite)."""
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from application.services.order_service import OrderService
from application.services.refund_service import RefundService
from application.services.settlement_service import SettlementService, SettlementStatus
from domain.common.exceptions import (
    InvalidStateException,
    PaymentAlreadyExistsException,
    RevisionQuotaExceededException,
)
from domain.order.entity import DeliveryStatus, OrderStatus, PlanTier
from domain.payment.entity import Payment, PaymentStatus
from infrastructure.models import (
    Base,
    OrderModel,
    ProfileModel,
    ServicePlanModel,
    ServicePlanTierModel,
)
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

from tests.conftest import (
    CLIENT,
    FREELANCER,
    PLAN_ID,
    FakeClock,
    RecordingChat,
    RecordingNotifier,
    RecordingStats,
    StubGateway,
)


async def _setup(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    async with factory() as session:
        session.add(ServicePlanModel(id=PLAN_ID, freelancer_id=FREELANCER.id, title="Logo design"))
        session.add(
            ServicePlanTierModel(
                service_plan_id=PLAN_ID, tier="standard", price=Decimal("10000.00"), delivery_days=5, revisions=2
            )
        )
        session.add(
            ProfileModel(
                id=FREELANCER.id,
                full_name="Asha Rao",
                role="freelancer",
                account_holder_name="Asha Rao",
                account_number="50100012345678",
                ifsc="HDFC0001234",
                linked_account_id="acc_freelancer1",
            )
        )
        await session.commit()

    def uow_factory(**kwargs):
        return SQLAlchemyUnitOfWork(session_factory=factory, **kwargs)

    gateway = StubGateway()
    refunds = RefundService(uow_factory, gateway)
    settlement = SettlementService(uow_factory, gateway)
    orders = OrderService(
        uow_factory,
        refunds=refunds,
        settlement=settlement,
        chat=RecordingChat(),
        notifier=RecordingNotifier(),
        stats=RecordingStats(),
        clock=FakeClock(),
    )
    return engine, factory, uow_factory, orders


@pytest.mark.asyncio
async def test_lifecycle_against_database(tmp_path):
    engine, factory, uow_factory, orders = await _setup(tmp_path)
    try:
        created = await orders.create_order(CLIENT, service_plan_id=PLAN_ID, plan_tier=PlanTier.STANDARD)
        order_id = created.order.id
        assert created.order.total_amount == Decimal("10252.00")

        await orders.accept(FREELANCER, order_id)
        await orders.capture_payment(order_id, payment_ref="pay_db_1", amount=Decimal("10252.00"))
        await orders.start_work(FREELANCER, order_id)
        await orders.submit_delivery(FREELANCER, order_id, files=["deliveries/v1/logo.zip"])
        await orders.request_revision(CLIENT, order_id, message="Darker blue")
        await orders.submit_delivery(FREELANCER, order_id, files=["deliveries/v2/logo.zip"])
        await orders.request_revision(CLIENT, order_id, message="Thicker font")
        await orders.submit_delivery(FREELANCER, order_id, files=["deliveries/v3/logo.zip"])

        with pytest.raises(RevisionQuotaExceededException):
            await orders.request_revision(CLIENT, order_id, message="One more")

        completed = await orders.complete(CLIENT, order_id)
        assert completed.settlement.status == SettlementStatus.TRANSFERRED

        async with factory() as session:
            row = (await session.execute(select(OrderModel).where(OrderModel.id == order_id))).scalar_one()
            assert row.status == "completed"
            assert row.revisions_used == 2
            assert row.delivery_files == ["deliveries/v3/logo.zip"]

        view = await orders.get_order(CLIENT, order_id)
        assert [h.version for h in view.delivery_history] == [1, 2, 3, 4, 5]
        assert view.delivery_history[-1].status == DeliveryStatus.APPROVED

        async with uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_order_id(order_id)
        assert payment.transferred_to_freelancer is True
        assert payment.freelancer_amount == Decimal("8600.00")
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_conditional_update_rejects_stale_expected_status(tmp_path):
    engine, factory, uow_factory, orders = await _setup(tmp_path)
    try:
        order_id = (await orders.create_order(CLIENT, service_plan_id=PLAN_ID, plan_tier=PlanTier.STANDARD)).order.id

        with pytest.raises(InvalidStateException) as exc_info:
            async with uow_factory() as uow:
                await uow.order_repository.transition(
                    order_id, expected=[OrderStatus.PENDING_PAYMENT], target=OrderStatus.ACCEPTED
                )
        assert exc_info.value.actual == "pending_acceptance"

        async with uow_factory() as uow:
            updated = await uow.order_repository.transition(
                order_id,
                expected=[OrderStatus.PENDING_ACCEPTANCE],
                target=OrderStatus.DECLINED,
                changes={"cancellation_reason": "busy"},
            )
        assert updated.status == OrderStatus.DECLINED
        assert updated.cancellation_reason == "busy"

        # the second of two racing writers loses
        with pytest.raises(InvalidStateException):
            async with uow_factory() as uow:
                await uow.order_repository.transition(
                    order_id, expected=[OrderStatus.PENDING_ACCEPTANCE], target=OrderStatus.PENDING_PAYMENT
                )
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_one_payment_per_order(tmp_path):
    engine, factory, uow_factory, orders = await _setup(tmp_path)
    try:
        order = (await orders.create_order(CLIENT, service_plan_id=PLAN_ID, plan_tier=PlanTier.STANDARD)).order

        def payment(ref):
            return Payment(
                id=None,
                order_id=order.id,
                client_id=order.client_id,
                freelancer_id=order.freelancer_id,
                amount=order.total_amount,
                status=PaymentStatus.CAPTURED,
                gateway_payment_id=ref,
                platform_fee=order.platform_commission,
                gst_amount=order.gst_amount,
                freelancer_amount=order.freelancer_amount,
            )

        async with uow_factory() as uow:
            saved = await uow.payment_repository.create(payment("pay_a"))
        assert saved.id is not None

        with pytest.raises(PaymentAlreadyExistsException):
            async with uow_factory() as uow:
                await uow.payment_repository.create(payment("pay_b"))

        async with uow_factory(readonly=True) as uow:
            stored = await uow.payment_repository.get_by_gateway_payment_id("pay_a")
            missing = await uow.payment_repository.get_by_gateway_payment_id("pay_b")
        assert stored.order_id == order.id
        assert missing is None
    finally:
        await engine.dispose()
