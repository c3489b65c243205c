"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import (
    DeliveryHistoryModel,
    OrderModel,
    ServicePlanModel,
    ServicePlanTierModel,
)
from .payment import PaymentModel
from .profile import ChatRoomModel, NotificationModel, ProfileModel

__all__ = [
    "Base",
    "metadata",
    "ServicePlanModel",
    "ServicePlanTierModel",
    "OrderModel",
    "DeliveryHistoryModel",
    "PaymentModel",
    "ProfileModel",
    "ChatRoomModel",
    "NotificationModel",
]
