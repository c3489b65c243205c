"""
Payment database model - SQLAlchemy ORM mapping
Note: infrastructure detail, not the domain model
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, Boolean,
    Index, ForeignKey, CheckConstraint
)

from .base import Base, utcnow


class PaymentModel(Base):
    """
    Escrow payment table mapping

    No business logic here; rules live in domain.payment.entity.Payment
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)

    order_id = Column(String(36), ForeignKey("orders.id"), unique=True, index=True, nullable=False)
    client_id = Column(String(36), nullable=False, index=True)
    freelancer_id = Column(String(36), nullable=False, index=True)

    amount = Column(Numeric(precision=12, scale=2), nullable=False, comment="captured total")
    status = Column(String(20), nullable=False, default="captured", index=True, comment="captured/refunded/failed")
    gateway_payment_id = Column(String(100), nullable=True, unique=True)
    platform_fee = Column(Numeric(precision=12, scale=2), nullable=False, default=0)
    gst_amount = Column(Numeric(precision=12, scale=2), nullable=False, default=0)
    freelancer_amount = Column(Numeric(precision=12, scale=2), nullable=False, default=0)

    # Payout
    transferred_to_freelancer = Column(Boolean, nullable=False, default=False)
    transfer_pending_manual = Column(Boolean, nullable=False, default=False, index=True)
    external_transfer_id = Column(String(200), nullable=True, index=True)
    transfer_failure_reason = Column(Text, nullable=True)
    transferred_at = Column(DateTime(timezone=True), nullable=True)

    # Refund
    refund_status = Column(String(20), nullable=False, default="none", index=True, comment="none/processed/failed")
    refund_amount = Column(Numeric(precision=12, scale=2), nullable=True)
    refund_id = Column(String(100), nullable=True, index=True)
    refund_failure_reason = Column(Text, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    captured_at = Column(DateTime(timezone=True), nullable=True)
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

    __table_args__ = (
        CheckConstraint(
            "NOT (transferred_to_freelancer AND transfer_pending_manual)",
            name="ck_payments_single_payout_state",
        ),
        Index("ix_payments_manual_queue", "transfer_pending_manual", "transferred_to_freelancer"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, order_id='{self.order_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
