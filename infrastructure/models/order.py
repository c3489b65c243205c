"""
Order database models - SQLAlchemy ORM mapping
Note: infrastructure detail, the business rules live in domain.order
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON,
    Index, ForeignKey, UniqueConstraint, CheckConstraint
)

from .base import Base, utcnow


class ServicePlanModel(Base):
    """A freelancer's listing; prices live per tier in service_plan_tiers"""
    __tablename__ = "service_plans"

    id = Column(String(36), primary_key=True)
    freelancer_id = Column(String(36), nullable=False, index=True, comment="owning freelancer")
    title = Column(String(200), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class ServicePlanTierModel(Base):
    __tablename__ = "service_plan_tiers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_plan_id = Column(
        String(36), ForeignKey("service_plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tier = Column(String(20), nullable=False, comment="basic/standard/premium")
    price = Column(Numeric(precision=12, scale=2), nullable=False)
    delivery_days = Column(Integer, nullable=False)
    revisions = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("service_plan_id", "tier", name="uq_service_plan_tiers_plan_tier"),
    )


class OrderModel(Base):
    """
    Order table mapping.

    ``status`` only changes through the conditional UPDATE in
    SQLAlchemyOrderRepository.transition.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    client_id = Column(String(36), nullable=False, index=True)
    freelancer_id = Column(String(36), nullable=False, index=True)
    service_plan_id = Column(String(36), ForeignKey("service_plans.id"), nullable=False)
    plan_tier = Column(String(20), nullable=False)
    status = Column(String(30), nullable=False, index=True, default="pending_acceptance")

    # Financial snapshot, written once at creation
    price = Column(Numeric(precision=12, scale=2), nullable=False)
    total_amount = Column(Numeric(precision=12, scale=2), nullable=False)
    platform_commission = Column(Numeric(precision=12, scale=2), nullable=False)
    gst_amount = Column(Numeric(precision=12, scale=2), nullable=False)

    delivery_days = Column(Integer, nullable=False)
    revisions_allowed = Column(Integer, nullable=False, default=0)
    revisions_used = Column(Integer, nullable=False, default=0)

    requirements = Column(Text, nullable=False, default="")
    requirement_files = Column(JSON, nullable=False, default=list)
    requirement_links = Column(JSON, nullable=False, default=list)
    delivery_files = Column(JSON, nullable=False, default=list)
    delivery_links = Column(JSON, nullable=False, default=list)
    delivery_message = Column(Text, nullable=True)

    accept_deadline = Column(DateTime(timezone=True), nullable=True)
    payment_deadline = Column(DateTime(timezone=True), nullable=True)
    gateway_order_id = Column(String(100), nullable=True, unique=True, comment="gateway checkout order id")
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("revisions_used <= revisions_allowed", name="ck_orders_revision_quota"),
        Index("ix_orders_status_accept_deadline", "status", "accept_deadline"),
        Index("ix_orders_status_payment_deadline", "status", "payment_deadline"),
    )

    def __repr__(self):
        return f"<OrderModel(id='{self.id}', status='{self.status}', total={self.total_amount})>"


class DeliveryHistoryModel(Base):
    """Append-only; rows are never updated"""
    __tablename__ = "delivery_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    status = Column(String(30), nullable=False, comment="delivered/revision_requested")
    message = Column(Text, nullable=True)
    delivery_files = Column(JSON, nullable=False, default=list)
    delivery_links = Column(JSON, nullable=False, default=list)
    revision_message = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("order_id", "version", name="uq_delivery_history_order_version"),
    )
