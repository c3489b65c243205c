"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.

Also provides an in-memory unit of work whose ``transition`` honours the same
conditional-write contract as the SQLAlchemy repository, plus stub gateway and
collaborators that record every call.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import copy
import dataclasses
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

import pytest

from application.dtos.payments import (
    CaptureResult,
    CheckoutSession,
    RefundResult,
    TransferResult,
    WebhookEvent,
)
from application.ports.storage import PresignedURL
from application.services.deadline_service import DeadlineService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundService
from application.services.settlement_service import SettlementService
from core.settings import OrderSettings
from domain.common.exceptions import (
    InvalidStateException,
    OrderNotFoundException,
    PaymentAlreadyExistsException,
    PaymentNotFoundException,
    RevisionQuotaExceededException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import (
    Actor,
    ActorRole,
    OrderStatus,
    PlanTerms,
    PlanTier,
    ServicePlan,
)
from domain.order.repository import (
    DeliveryHistoryRepository,
    OrderRepository,
    ServicePlanRepository,
)
from domain.payment.entity import PayoutAccount, RefundStatus
from domain.payment.repository import PaymentRepository, PayoutAccountRepository


CLIENT = Actor("client-1", ActorRole.CLIENT)
FREELANCER = Actor("freelancer-1", ActorRole.FREELANCER)
OTHER_CLIENT = Actor("client-2", ActorRole.CLIENT)
ADMIN = Actor("ops-1", ActorRole.ADMIN)

PLAN_ID = "plan-1"
START = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ---------------------------------------------------------------------------
# In-memory persistence
# ---------------------------------------------------------------------------
@dataclass
class InMemoryStore:
    orders: dict = field(default_factory=dict)
    history: dict = field(default_factory=dict)
    payments: dict = field(default_factory=dict)
    plans: dict = field(default_factory=dict)
    accounts: dict = field(default_factory=dict)
    # runs between the service's read and the conditional write; simulates a racing writer
    before_transition: Optional[Callable[[str], None]] = None
    # writes made by "another transaction"; they survive a rollback of ours
    forced: dict = field(default_factory=dict)
    _next_id: int = 0

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def snapshot(self) -> tuple:
        return copy.deepcopy((self.orders, self.history, self.payments))

    def restore(self, snap: tuple) -> None:
        self.orders, self.history, self.payments = snap
        for order_id, status in self.forced.items():
            self.orders[order_id] = dataclasses.replace(self.orders[order_id], status=status)
        self.forced.clear()

    def force_status(self, order_id: str, status: OrderStatus) -> None:
        self.orders[order_id] = dataclasses.replace(self.orders[order_id], status=status)
        self.forced[order_id] = status


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, order):
        self.store.orders[order.id] = copy.deepcopy(order)
        return copy.deepcopy(order)

    async def get_by_id(self, order_id):
        order = self.store.orders.get(order_id)
        return copy.deepcopy(order) if order else None

    async def get_by_gateway_order_id(self, gateway_order_id):
        for order in self.store.orders.values():
            if order.gateway_order_id == gateway_order_id:
                return copy.deepcopy(order)
        return None

    async def transition(self, order_id, *, expected, target, changes=None, max_revisions_guard=False):
        if self.store.before_transition is not None:
            hook, self.store.before_transition = self.store.before_transition, None
            hook(order_id)
        order = self.store.orders.get(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        expected = set(expected)
        if order.status not in expected:
            raise InvalidStateException(order_id, expected, order.status)
        if max_revisions_guard and order.revisions_used >= order.revisions_allowed:
            raise RevisionQuotaExceededException(order.revisions_allowed, order.revisions_used)
        updated = dataclasses.replace(order, status=target, **copy.deepcopy(changes or {}))
        if max_revisions_guard:
            updated.revisions_used += 1
        self.store.orders[order_id] = updated
        return copy.deepcopy(updated)

    async def set_gateway_order_id(self, order_id, gateway_order_id):
        order = self.store.orders.get(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        if order.status != OrderStatus.PENDING_PAYMENT:
            raise InvalidStateException(order_id, [OrderStatus.PENDING_PAYMENT], order.status)
        order.gateway_order_id = gateway_order_id

    async def list_for_party(self, *, client_id=None, freelancer_id=None, status=None, skip=0, limit=100):
        rows = [
            o for o in self.store.orders.values()
            if (client_id is None or o.client_id == client_id)
            and (freelancer_id is None or o.freelancer_id == freelancer_id)
            and (status is None or o.status == status)
        ]
        rows.sort(key=lambda o: o.created_at, reverse=True)
        return [copy.deepcopy(o) for o in rows[skip:skip + limit]]

    async def list_overdue(self, status, now, limit=100):
        attr = "accept_deadline" if status == OrderStatus.PENDING_ACCEPTANCE else "payment_deadline"
        rows = [
            o for o in self.store.orders.values()
            if o.status == status and getattr(o, attr) is not None and getattr(o, attr) <= now
        ]
        return [copy.deepcopy(o) for o in rows[:limit]]


class InMemoryDeliveryHistoryRepository(DeliveryHistoryRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def append(self, entry):
        rows = self.store.history.setdefault(entry.order_id, [])
        saved = dataclasses.replace(entry, id=self.store.next_id(), version=len(rows) + 1)
        rows.append(saved)
        return copy.deepcopy(saved)

    async def list_by_order(self, order_id):
        return copy.deepcopy(self.store.history.get(order_id, []))


class InMemoryServicePlanRepository(ServicePlanRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_id(self, plan_id):
        return self.store.plans.get(plan_id)


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    def _find(self, **criteria):
        for payment in self.store.payments.values():
            if all(getattr(payment, k) == v for k, v in criteria.items()):
                return copy.deepcopy(payment)
        return None

    async def create(self, payment):
        if payment.order_id in self.store.payments or (
            payment.gateway_payment_id and self._find(gateway_payment_id=payment.gateway_payment_id)
        ):
            raise PaymentAlreadyExistsException(payment.order_id)
        saved = dataclasses.replace(payment, id=self.store.next_id())
        self.store.payments[payment.order_id] = saved
        return copy.deepcopy(saved)

    async def get_by_order_id(self, order_id):
        payment = self.store.payments.get(order_id)
        return copy.deepcopy(payment) if payment else None

    async def get_by_gateway_payment_id(self, gateway_payment_id):
        return self._find(gateway_payment_id=gateway_payment_id)

    async def get_by_external_transfer_id(self, external_transfer_id):
        return self._find(external_transfer_id=external_transfer_id)

    async def get_by_refund_id(self, refund_id):
        return self._find(refund_id=refund_id)

    async def update(self, payment):
        if payment.order_id not in self.store.payments:
            raise PaymentNotFoundException(payment.order_id)
        self.store.payments[payment.order_id] = copy.deepcopy(payment)
        return copy.deepcopy(payment)

    async def list_pending_manual(self, skip=0, limit=100):
        rows = [
            p for p in self.store.payments.values()
            if p.transfer_pending_manual
            and not p.transferred_to_freelancer
            and p.refund_status != RefundStatus.PROCESSED
        ]
        return [copy.deepcopy(p) for p in rows[skip:skip + limit]]

    async def list_failed_refunds(self, skip=0, limit=100):
        rows = [p for p in self.store.payments.values() if p.refund_status == RefundStatus.FAILED]
        return [copy.deepcopy(p) for p in rows[skip:skip + limit]]


class InMemoryPayoutAccountRepository(PayoutAccountRepository):
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_freelancer_id(self, freelancer_id):
        account = self.store.accounts.get(freelancer_id)
        return copy.deepcopy(account) if account else None


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, store: InMemoryStore, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self.store = store
        self._snapshot = None

    async def __aenter__(self):
        self._snapshot = self.store.snapshot()
        self.order_repository = InMemoryOrderRepository(self.store)
        self.delivery_history_repository = InMemoryDeliveryHistoryRepository(self.store)
        self.service_plan_repository = InMemoryServicePlanRepository(self.store)
        self.payment_repository = InMemoryPaymentRepository(self.store)
        self.payout_account_repository = InMemoryPayoutAccountRepository(self.store)
        return self

    async def commit(self):
        self.store.forced.clear()
        self._committed = True

    async def rollback(self):
        if self._snapshot is not None:
            self.store.restore(self._snapshot)
        self._committed = False


# ---------------------------------------------------------------------------
# Stub gateway and collaborators
# ---------------------------------------------------------------------------
class StubGateway:
    provider = "razorpay"

    def __init__(self):
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, Exception] = {}
        self.statuses: dict[str, str] = {}
        self._seq = 0

    def _record(self, method: str, req: Any) -> None:
        self.calls.append((method, req))
        if method in self.failures:
            raise self.failures[method]

    def calls_to(self, method: str) -> list:
        return [req for name, req in self.calls if name == method]

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_{self._seq}"

    async def create_checkout(self, req):
        self._record("create_checkout", req)
        return CheckoutSession(
            gateway_order_id=self._next("order"),
            amount=req.amount,
            currency=req.currency,
            provider=self.provider,
            order_id=req.order_id,
        )

    async def capture(self, req):
        self._record("capture", req)
        return CaptureResult(payment_ref=req.payment_ref, status="captured", provider=self.provider, amount=req.amount)

    async def transfer(self, req):
        self._record("transfer", req)
        return TransferResult(
            transfer_id=self._next("trf"),
            status=self.statuses.get("transfer", "processed"),
            provider=self.provider,
        )

    async def refund(self, req):
        self._record("refund", req)
        return RefundResult(
            refund_id=self._next("rfnd"),
            status=self.statuses.get("refund", "processed"),
            provider=self.provider,
            payment_ref=req.payment_ref,
        )

    def parse_webhook(self, headers, body):
        data = json.loads(body)
        return WebhookEvent(id=data.get("id") or "evt", type=data["event"], provider=self.provider, data=data)


class RecordingChat:
    def __init__(self):
        self.rooms: list[tuple] = []
        self.closures: list[tuple] = []
        self.fail = False

    async def create_room(self, order_id, client_id, freelancer_id):
        if self.fail:
            raise RuntimeError("chat service unavailable")
        self.rooms.append((order_id, client_id, freelancer_id))
        return f"room-{order_id}"

    async def schedule_closure(self, order_id, delay):
        self.closures.append((order_id, delay))


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple] = []
        self.fail = False

    async def notify(self, user_id, event_type, context=None):
        if self.fail:
            raise RuntimeError("notification service unavailable")
        self.sent.append((user_id, event_type, context or {}))

    def types_for(self, user_id: str) -> list[str]:
        return [t for uid, t, _ in self.sent if uid == user_id]


class RecordingStats:
    def __init__(self):
        self.earnings: list[tuple] = []
        self.spend: list[tuple] = []

    async def increment_freelancer_earnings(self, freelancer_id, amount):
        self.earnings.append((freelancer_id, amount))

    async def increment_client_spend(self, client_id, amount):
        self.spend.append((client_id, amount))


class StubStorage:
    def __init__(self):
        self.requests: list[dict] = []

    async def generate_presigned_url(self, key, expires_in=3600, method="GET", response_content_disposition=None):
        self.requests.append(
            {"key": key, "expires_in": expires_in, "method": method, "disposition": response_content_disposition}
        )
        return PresignedURL(url=f"https://files.example.test/{key}?sig=abc", method=method, expires_in=expires_in)


@dataclass
class Services:
    store: InMemoryStore
    clock: FakeClock
    gateway: StubGateway
    chat: RecordingChat
    notifier: RecordingNotifier
    stats: RecordingStats
    storage: StubStorage
    orders: OrderService
    payments: PaymentService
    refunds: RefundService
    settlement: SettlementService
    deadlines: DeadlineService


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def store():
    s = InMemoryStore()
    s.plans[PLAN_ID] = ServicePlan(
        id=PLAN_ID,
        freelancer_id=FREELANCER.id,
        title="Logo design",
        tiers={
            PlanTier.BASIC: PlanTerms(price=Decimal("2500.00"), delivery_days=3, revisions=1),
            PlanTier.STANDARD: PlanTerms(price=Decimal("10000.00"), delivery_days=5, revisions=2),
            PlanTier.PREMIUM: PlanTerms(price=Decimal("25000.00"), delivery_days=7, revisions=5),
        },
    )
    s.accounts[FREELANCER.id] = PayoutAccount(
        freelancer_id=FREELANCER.id,
        full_name="Asha Rao",
        account_holder_name="Asha Rao",
        account_number="50100012345678",
        ifsc="HDFC0001234",
        linked_account_id="acc_freelancer1",
    )
    return s


@pytest.fixture
def services(store):
    clock = FakeClock()
    gateway = StubGateway()
    chat, notifier, stats, storage = RecordingChat(), RecordingNotifier(), RecordingStats(), StubStorage()

    def uow_factory(**kwargs):
        return InMemoryUnitOfWork(store, **kwargs)

    refunds = RefundService(uow_factory, gateway)
    settlement = SettlementService(uow_factory, gateway)
    orders = OrderService(
        uow_factory,
        refunds=refunds,
        settlement=settlement,
        chat=chat,
        notifier=notifier,
        stats=stats,
        storage=storage,
        config=OrderSettings(),
        clock=clock,
    )
    payments = PaymentService(
        uow_factory, gateway, orders=orders, settlement=settlement, refunds=refunds, clock=clock
    )
    deadlines = DeadlineService(uow_factory, orders, clock=clock)
    return Services(
        store=store,
        clock=clock,
        gateway=gateway,
        chat=chat,
        notifier=notifier,
        stats=stats,
        storage=storage,
        orders=orders,
        payments=payments,
        refunds=refunds,
        settlement=settlement,
        deadlines=deadlines,
    )


_PATH = [
    OrderStatus.PENDING_ACCEPTANCE,
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.ACCEPTED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
]


@pytest.fixture
def make_order(services):
    """Drive a fresh order along the happy path up to ``status``; returns the order id."""

    async def _make(status: OrderStatus = OrderStatus.PENDING_ACCEPTANCE, tier: PlanTier = PlanTier.STANDARD) -> str:
        outcome = await services.orders.create_order(CLIENT, service_plan_id=PLAN_ID, plan_tier=tier)
        order = outcome.order
        target = _PATH.index(status)
        if target >= 1:
            await services.orders.accept(FREELANCER, order.id)
        if target >= 2:
            await services.orders.capture_payment(
                order.id, payment_ref=f"pay_{order.id[:8]}", amount=order.total_amount
            )
        if target >= 3:
            await services.orders.start_work(FREELANCER, order.id)
        if target >= 4:
            await services.orders.submit_delivery(FREELANCER, order.id, files=["deliveries/v1/logo.zip"])
        if target >= 5:
            await services.orders.complete(CLIENT, order.id)
        return order.id

    return _make
