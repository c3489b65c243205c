"""
Profile, chat room and notification tables the lifecycle writes into.

Profiles are owned by the account service; this side reads payout details and
bumps the lifetime counters.
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Text, JSON, Boolean, ForeignKey
)

from .base import Base, utcnow


class ProfileModel(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, comment="user id")
    full_name = Column(String(200), nullable=True)
    role = Column(String(20), nullable=False, default="client")

    # Payout details (freelancers)
    account_holder_name = Column(String(200), nullable=True)
    account_number = Column(String(34), nullable=True)
    ifsc = Column(String(11), nullable=True)
    upi_id = Column(String(100), nullable=True)
    linked_account_id = Column(String(100), nullable=True, comment="gateway route account")

    # Lifetime counters
    total_earnings = Column(Numeric(precision=14, scale=2), nullable=False, default=0)
    total_spent = Column(Numeric(precision=14, scale=2), nullable=False, default=0)
    completed_orders = Column(Integer, nullable=False, default=0)

    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class ChatRoomModel(Base):
    __tablename__ = "chat_rooms"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, unique=True)
    client_id = Column(String(36), nullable=False)
    freelancer_id = Column(String(36), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    closes_at = Column(DateTime(timezone=True), nullable=True, comment="read-only after this instant")
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    context = Column(JSON, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
