"""SQLAlchemy adapters for the chat, notification and profile-stats ports.

Each call runs in its own short session: these run after the order transition
has committed and must not share its transaction.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from application.ports.collaborators import ChatPort, NotificationPort, StatsPort
from core.logging_config import get_logger
from infrastructure.database import AsyncSessionLocal
from infrastructure.models.profile import ChatRoomModel, NotificationModel, ProfileModel


logger = get_logger(__name__)

NOTIFICATION_TEMPLATES: dict[str, tuple[str, str]] = {
    "order_created": ("New order received", "A client placed a new order on your service."),
    "order_accepted": ("Order accepted", "Your order was accepted. Complete the payment to start work."),
    "order_declined": ("Order declined", "Your order was declined."),
    "order_payment_completed": ("Payment received", "Payment of Rs {amount} was received for the order."),
    "order_in_progress": ("Work started", "The freelancer started working on your order."),
    "order_delivered": ("Order delivered", "The freelancer delivered your order. Please review it."),
    "order_revision_requested": ("Revision requested", "The client requested a revision."),
    "order_completed": ("Order completed", "The order has been completed."),
    "order_cancelled": ("Order cancelled", "The order has been cancelled."),
}


class _SessionScoped:
    def __init__(self, session_factory: Callable[[], AsyncSession] = AsyncSessionLocal):
        self._session_factory = session_factory


class SQLAlchemyChatAdapter(_SessionScoped, ChatPort):
    async def create_room(self, order_id: str, client_id: str, freelancer_id: str) -> str:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(ChatRoomModel).where(ChatRoomModel.order_id == order_id)
                )
                room = result.scalar_one_or_none()
                if room is None:
                    room = ChatRoomModel(
                        order_id=order_id,
                        client_id=client_id,
                        freelancer_id=freelancer_id,
                        is_active=True,
                    )
                    session.add(room)
                    await session.flush()
                    logger.info("chat_room_created", order_id=order_id, room_id=room.id)
                room_id = str(room.id)
        return room_id

    async def schedule_closure(self, order_id: str, delay: timedelta) -> None:
        closes_at = datetime.now(timezone.utc) + delay
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ChatRoomModel)
                    .where(ChatRoomModel.order_id == order_id)
                    .values(closes_at=closes_at)
                )
        if result.rowcount == 0:
            logger.warning("chat_room_missing", order_id=order_id)
            return
        logger.info("chat_room_closure_scheduled", order_id=order_id, closes_at=closes_at)


class SQLAlchemyNotificationAdapter(_SessionScoped, NotificationPort):
    async def notify(
        self, user_id: str, event_type: str, context: Optional[dict[str, Any]] = None
    ) -> None:
        context = dict(context or {})
        title, template = NOTIFICATION_TEMPLATES.get(event_type, (event_type.replace("_", " ").capitalize(), ""))
        message = template.format(amount=context.get("amount", "")) if template else ""
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    NotificationModel(
                        user_id=user_id,
                        type=event_type,
                        title=title,
                        message=message,
                        context=context,
                    )
                )
        logger.info("notification_created", user_id=user_id, type=event_type, order_id=context.get("order_id"))


class SQLAlchemyStatsAdapter(_SessionScoped, StatsPort):
    async def increment_freelancer_earnings(self, freelancer_id: str, amount: Decimal) -> None:
        await self._bump(
            freelancer_id,
            total_earnings=ProfileModel.total_earnings + amount,
            completed_orders=ProfileModel.completed_orders + 1,
        )

    async def increment_client_spend(self, client_id: str, amount: Decimal) -> None:
        await self._bump(client_id, total_spent=ProfileModel.total_spent + amount)

    async def _bump(self, profile_id: str, **values) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ProfileModel).where(ProfileModel.id == profile_id).values(**values)
                )
        if result.rowcount == 0:
            logger.warning("profile_missing_for_stats", profile_id=profile_id)
