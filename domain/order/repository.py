"""
Order repository interfaces - what the lifecycle needs from storage, not how.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, List, Optional

from .entity import DeliveryHistory, Order, OrderStatus, ServicePlan


class OrderRepository(ABC):
    """Order persistence boundary.

    ``transition`` is the only way status changes: it must apply the status guard and
    the write as one atomic conditional update and raise InvalidStateException (with
    the actual status) when no row matched.
    """

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """Insert a new order"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """Fetch one order"""
        pass

    @abstractmethod
    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        """Match a gateway checkout order back to our order"""
        pass

    @abstractmethod
    async def transition(
        self,
        order_id: str,
        *,
        expected: Iterable[OrderStatus],
        target: OrderStatus,
        changes: Optional[dict[str, Any]] = None,
        max_revisions_guard: bool = False,
    ) -> Order:
        """Conditionally move ``order_id`` from one of ``expected`` to ``target``.

        ``max_revisions_guard`` adds ``revisions_used < revisions_allowed`` to the
        condition and increments ``revisions_used`` in the same statement.
        """
        pass

    @abstractmethod
    async def set_gateway_order_id(self, order_id: str, gateway_order_id: str) -> None:
        """Attach the gateway checkout reference (pending_payment only)"""
        pass

    @abstractmethod
    async def list_for_party(
        self,
        *,
        client_id: Optional[str] = None,
        freelancer_id: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Order]:
        """Orders filtered by side; no party filter means all orders"""
        pass

    @abstractmethod
    async def list_overdue(self, status: OrderStatus, now: datetime, limit: int = 100) -> List[Order]:
        """Orders whose deadline for ``status`` has elapsed"""
        pass


class DeliveryHistoryRepository(ABC):
    """Append-only delivery history"""

    @abstractmethod
    async def append(self, entry: DeliveryHistory) -> DeliveryHistory:
        """Insert the next version; ``entry.version`` is assigned by the repository"""
        pass

    @abstractmethod
    async def list_by_order(self, order_id: str) -> List[DeliveryHistory]:
        """All versions, ascending"""
        pass


class ServicePlanRepository(ABC):
    @abstractmethod
    async def get_by_id(self, plan_id: str) -> Optional[ServicePlan]:
        pass
