"""
Payment repository interfaces.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Payment, PayoutAccount


class PaymentRepository(ABC):
    """Escrow payment persistence - one row per order"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def get_by_gateway_payment_id(self, gateway_payment_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def get_by_external_transfer_id(self, external_transfer_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def get_by_refund_id(self, refund_id: str) -> Optional[Payment]:
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        pass

    @abstractmethod
    async def list_pending_manual(self, skip: int = 0, limit: int = 100) -> List[Payment]:
        """Payments of completed orders whose payout still has to be done by hand"""
        pass

    @abstractmethod
    async def list_failed_refunds(self, skip: int = 0, limit: int = 100) -> List[Payment]:
        pass


class PayoutAccountRepository(ABC):
    @abstractmethod
    async def get_by_freelancer_id(self, freelancer_id: str) -> Optional[PayoutAccount]:
        pass
