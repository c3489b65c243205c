"""
Order repository implementations - SQLAlchemy data access for orders, delivery
history and service plans
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import (
    InvalidStateException,
    OrderNotFoundException,
    RevisionQuotaExceededException,
)
from domain.order.entity import (
    DeliveryHistory,
    DeliveryStatus,
    Order,
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
from infrastructure.models.order import (
    DeliveryHistoryModel,
    OrderModel,
    ServicePlanModel,
    ServicePlanTierModel,
)


logger = get_logger(__name__)

_DEADLINE_COLUMNS = {
    OrderStatus.PENDING_ACCEPTANCE: OrderModel.accept_deadline,
    OrderStatus.PENDING_PAYMENT: OrderModel.payment_deadline,
}


class SQLAlchemyOrderRepository(OrderRepository):
    """Order repository backed by SQLAlchemy"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            client_id=model.client_id,
            freelancer_id=model.freelancer_id,
            service_plan_id=model.service_plan_id,
            plan_tier=PlanTier(model.plan_tier),
            status=OrderStatus(model.status),
            price=Decimal(str(model.price)),
            total_amount=Decimal(str(model.total_amount)),
            platform_commission=Decimal(str(model.platform_commission)),
            gst_amount=Decimal(str(model.gst_amount)),
            delivery_days=model.delivery_days,
            revisions_allowed=model.revisions_allowed,
            revisions_used=model.revisions_used,
            requirements=model.requirements or "",
            requirement_files=list(model.requirement_files or []),
            requirement_links=list(model.requirement_links or []),
            delivery_files=list(model.delivery_files or []),
            delivery_links=list(model.delivery_links or []),
            delivery_message=model.delivery_message,
            accept_deadline=model.accept_deadline,
            payment_deadline=model.payment_deadline,
            gateway_order_id=model.gateway_order_id,
            cancellation_reason=model.cancellation_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
            delivered_at=model.delivered_at,
            completed_at=model.completed_at,
            cancelled_at=model.cancelled_at,
        )

    def _to_model(self, entity: Order) -> OrderModel:
        return OrderModel(
            id=entity.id,
            client_id=entity.client_id,
            freelancer_id=entity.freelancer_id,
            service_plan_id=entity.service_plan_id,
            plan_tier=entity.plan_tier.value,
            status=entity.status.value,
            price=entity.price,
            total_amount=entity.total_amount,
            platform_commission=entity.platform_commission,
            gst_amount=entity.gst_amount,
            delivery_days=entity.delivery_days,
            revisions_allowed=entity.revisions_allowed,
            revisions_used=entity.revisions_used,
            requirements=entity.requirements,
            requirement_files=list(entity.requirement_files),
            requirement_links=list(entity.requirement_links),
            delivery_files=list(entity.delivery_files),
            delivery_links=list(entity.delivery_links),
            delivery_message=entity.delivery_message,
            accept_deadline=entity.accept_deadline,
            payment_deadline=entity.payment_deadline,
            gateway_order_id=entity.gateway_order_id,
            cancellation_reason=entity.cancellation_reason,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            delivered_at=entity.delivered_at,
            completed_at=entity.completed_at,
            cancelled_at=entity.cancelled_at,
        )

    async def _fetch(self, order_id: str) -> Optional[OrderModel]:
        # populate_existing: a conditional UPDATE bypasses the identity map
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, order: Order) -> Order:
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        db_order = await self._fetch(order_id)
        return self._to_entity(db_order) if db_order else None

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.gateway_order_id == gateway_order_id)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def transition(
        self,
        order_id: str,
        *,
        expected: Iterable[OrderStatus],
        target: OrderStatus,
        changes: Optional[dict[str, Any]] = None,
        max_revisions_guard: bool = False,
    ) -> Order:
        """
        UPDATE orders SET status=:target, ... WHERE id=:id AND status IN (:expected)

        Zero matched rows means another writer got there first (or the quota ran out);
        the row is re-read to report what it actually holds.
        """
        expected_values = [getattr(s, "value", s) for s in expected]
        values: dict[str, Any] = dict(changes or {})
        values["status"] = target.value

        stmt = update(OrderModel).where(
            OrderModel.id == order_id,
            OrderModel.status.in_(expected_values),
        )
        if max_revisions_guard:
            stmt = stmt.where(OrderModel.revisions_used < OrderModel.revisions_allowed)
            values["revisions_used"] = OrderModel.revisions_used + 1

        result = await self.session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            current = await self._fetch(order_id)
            if current is None:
                raise OrderNotFoundException(order_id)
            if max_revisions_guard and current.status in expected_values:
                raise RevisionQuotaExceededException(current.revisions_allowed, current.revisions_used)
            logger.warning(
                "order_transition_conflict",
                order_id=order_id,
                expected=expected_values,
                actual=current.status,
                target=target.value,
            )
            raise InvalidStateException(order_id, expected_values, current.status)

        db_order = await self._fetch(order_id)
        logger.info(
            "order_status_changed",
            order_id=order_id,
            from_status=expected_values,
            to_status=target.value,
        )
        return self._to_entity(db_order)

    async def set_gateway_order_id(self, order_id: str, gateway_order_id: str) -> None:
        result = await self.session.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.status == OrderStatus.PENDING_PAYMENT.value,
            )
            .values(gateway_order_id=gateway_order_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self._fetch(order_id)
            if current is None:
                raise OrderNotFoundException(order_id)
            raise InvalidStateException(order_id, [OrderStatus.PENDING_PAYMENT], current.status)

    async def list_for_party(
        self,
        *,
        client_id: Optional[str] = None,
        freelancer_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Order]:
        query = select(OrderModel)
        if client_id is not None:
            query = query.where(OrderModel.client_id == client_id)
        if freelancer_id is not None:
            query = query.where(OrderModel.freelancer_id == freelancer_id)
        if status is not None:
            query = query.where(OrderModel.status == status.value)

        query = query.order_by(OrderModel.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(o) for o in result.scalars().all()]

    async def list_overdue(self, status: OrderStatus, now: datetime, limit: int = 100) -> List[Order]:
        deadline = _DEADLINE_COLUMNS.get(status)
        if deadline is None:
            return []
        result = await self.session.execute(
            select(OrderModel)
            .where(
                OrderModel.status == status.value,
                deadline.is_not(None),
                deadline <= now,
            )
            .order_by(deadline.asc())
            .limit(limit)
        )
        return [self._to_entity(o) for o in result.scalars().all()]


class SQLAlchemyDeliveryHistoryRepository(DeliveryHistoryRepository):
    """Append-only delivery history; versions are 1-based per order"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: DeliveryHistoryModel) -> DeliveryHistory:
        return DeliveryHistory(
            id=model.id,
            order_id=model.order_id,
            version=model.version,
            status=DeliveryStatus(model.status),
            message=model.message,
            delivery_files=list(model.delivery_files or []),
            delivery_links=list(model.delivery_links or []),
            revision_message=model.revision_message,
            created_at=model.created_at,
        )

    async def append(self, entry: DeliveryHistory) -> DeliveryHistory:
        # The order row was just updated in this transaction, which serialises
        # appenders for the same order; uq_delivery_history_order_version backs it up.
        result = await self.session.execute(
            select(func.coalesce(func.max(DeliveryHistoryModel.version), 0)).where(
                DeliveryHistoryModel.order_id == entry.order_id
            )
        )
        version = int(result.scalar_one()) + 1

        db_entry = DeliveryHistoryModel(
            order_id=entry.order_id,
            version=version,
            status=entry.status.value,
            message=entry.message,
            delivery_files=list(entry.delivery_files),
            delivery_links=list(entry.delivery_links),
            revision_message=entry.revision_message,
            created_at=entry.created_at,
        )
        self.session.add(db_entry)
        await self.session.flush()
        await self.session.refresh(db_entry)
        return self._to_entity(db_entry)

    async def list_by_order(self, order_id: str) -> List[DeliveryHistory]:
        result = await self.session.execute(
            select(DeliveryHistoryModel)
            .where(DeliveryHistoryModel.order_id == order_id)
            .order_by(DeliveryHistoryModel.version.asc())
        )
        return [self._to_entity(e) for e in result.scalars().all()]


class SQLAlchemyServicePlanRepository(ServicePlanRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, plan_id: str) -> Optional[ServicePlan]:
        result = await self.session.execute(
            select(ServicePlanModel).where(ServicePlanModel.id == plan_id)
        )
        plan = result.scalar_one_or_none()
        if plan is None:
            return None

        tiers_result = await self.session.execute(
            select(ServicePlanTierModel).where(ServicePlanTierModel.service_plan_id == plan_id)
        )
        tiers = {}
        for row in tiers_result.scalars().all():
            try:
                tier = PlanTier(row.tier)
            except ValueError:
                logger.warning("service_plan_unknown_tier", plan_id=plan_id, tier=row.tier)
                continue
            tiers[tier] = PlanTerms(
                price=Decimal(str(row.price)),
                delivery_days=row.delivery_days,
                revisions=row.revisions,
            )
        return ServicePlan(
            id=plan.id,
            freelancer_id=plan.freelancer_id,
            title=plan.title,
            tiers=tiers,
        )
