"""
Payment repository implementation - SQLAlchemy data access for escrow payments
and freelancer payout details
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import PaymentAlreadyExistsException, PaymentNotFoundException
from domain.payment.entity import Payment, PaymentStatus, PayoutAccount, RefundStatus
from domain.payment.repository import PaymentRepository, PayoutAccountRepository
from infrastructure.models.payment import PaymentModel
from infrastructure.models.profile import ProfileModel


logger = get_logger(__name__)


def _dec(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


class SQLAlchemyPaymentRepository(PaymentRepository):
    """Payment repository backed by SQLAlchemy"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """Map the database row to the domain entity"""
        return Payment(
            id=model.id,
            order_id=model.order_id,
            client_id=model.client_id,
            freelancer_id=model.freelancer_id,
            amount=_dec(model.amount),
            status=PaymentStatus(model.status),
            gateway_payment_id=model.gateway_payment_id,
            platform_fee=_dec(model.platform_fee) or Decimal("0"),
            gst_amount=_dec(model.gst_amount) or Decimal("0"),
            freelancer_amount=_dec(model.freelancer_amount) or Decimal("0"),
            transferred_to_freelancer=bool(model.transferred_to_freelancer),
            transfer_pending_manual=bool(model.transfer_pending_manual),
            external_transfer_id=model.external_transfer_id,
            transfer_failure_reason=model.transfer_failure_reason,
            transferred_at=model.transferred_at,
            refund_status=RefundStatus(model.refund_status),
            refund_amount=_dec(model.refund_amount),
            refund_id=model.refund_id,
            refund_failure_reason=model.refund_failure_reason,
            refunded_at=model.refunded_at,
            captured_at=model.captured_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """Map the domain entity to a new database row"""
        return PaymentModel(
            id=entity.id,
            order_id=entity.order_id,
            client_id=entity.client_id,
            freelancer_id=entity.freelancer_id,
            amount=entity.amount,
            status=entity.status.value,
            gateway_payment_id=entity.gateway_payment_id,
            platform_fee=entity.platform_fee,
            gst_amount=entity.gst_amount,
            freelancer_amount=entity.freelancer_amount,
            transferred_to_freelancer=entity.transferred_to_freelancer,
            transfer_pending_manual=entity.transfer_pending_manual,
            external_transfer_id=entity.external_transfer_id,
            transfer_failure_reason=entity.transfer_failure_reason,
            transferred_at=entity.transferred_at,
            refund_status=entity.refund_status.value,
            refund_amount=entity.refund_amount,
            refund_id=entity.refund_id,
            refund_failure_reason=entity.refund_failure_reason,
            refunded_at=entity.refunded_at,
            captured_at=entity.captured_at,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )

    async def _one(self, *criteria) -> Optional[Payment]:
        result = await self.session.execute(select(PaymentModel).where(*criteria))
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def create(self, payment: Payment) -> Payment:
        """Insert the payment row; one per order"""
        try:
            db_payment = self._to_model(payment)
            self.session.add(db_payment)
            await self.session.flush()
            await self.session.refresh(db_payment)
        except IntegrityError as e:
            logger.warning(
                "create_payment_conflict",
                order_id=payment.order_id,
                gateway_payment_id=payment.gateway_payment_id,
                error=str(e.orig) if e.orig else str(e),
            )
            raise PaymentAlreadyExistsException(payment.order_id) from e

        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            amount=str(db_payment.amount),
            status=db_payment.status,
        )
        return self._to_entity(db_payment)

    async def get_by_order_id(self, order_id: str) -> Optional[Payment]:
        return await self._one(PaymentModel.order_id == order_id)

    async def get_by_gateway_payment_id(self, gateway_payment_id: str) -> Optional[Payment]:
        return await self._one(PaymentModel.gateway_payment_id == gateway_payment_id)

    async def get_by_external_transfer_id(self, external_transfer_id: str) -> Optional[Payment]:
        return await self._one(PaymentModel.external_transfer_id == external_transfer_id)

    async def get_by_refund_id(self, refund_id: str) -> Optional[Payment]:
        return await self._one(PaymentModel.refund_id == refund_id)

    async def update(self, payment: Payment) -> Payment:
        """Persist the mutable payout/refund bookkeeping"""
        result = await self.session.execute(
            select(PaymentModel).where(PaymentModel.order_id == payment.order_id)
        )
        db_payment = result.scalar_one_or_none()
        if not db_payment:
            raise PaymentNotFoundException(payment.order_id)

        db_payment.status = payment.status.value
        db_payment.transferred_to_freelancer = payment.transferred_to_freelancer
        db_payment.transfer_pending_manual = payment.transfer_pending_manual
        db_payment.external_transfer_id = payment.external_transfer_id
        db_payment.transfer_failure_reason = payment.transfer_failure_reason
        db_payment.transferred_at = payment.transferred_at
        db_payment.refund_status = payment.refund_status.value
        db_payment.refund_amount = payment.refund_amount
        db_payment.refund_id = payment.refund_id
        db_payment.refund_failure_reason = payment.refund_failure_reason
        db_payment.refunded_at = payment.refunded_at
        if payment.updated_at is not None:
            db_payment.updated_at = payment.updated_at

        await self.session.flush()
        await self.session.refresh(db_payment)

        logger.info(
            "payment_updated",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            status=db_payment.status,
            transferred=db_payment.transferred_to_freelancer,
            pending_manual=db_payment.transfer_pending_manual,
            refund_status=db_payment.refund_status,
        )
        return self._to_entity(db_payment)

    async def list_pending_manual(self, skip: int = 0, limit: int = 100) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.transfer_pending_manual.is_(True),
                PaymentModel.transferred_to_freelancer.is_(False),
                PaymentModel.refund_status != RefundStatus.PROCESSED.value,
            )
            .order_by(PaymentModel.created_at.asc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def list_failed_refunds(self, skip: int = 0, limit: int = 100) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.refund_status == RefundStatus.FAILED.value)
            .order_by(PaymentModel.updated_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]


class SQLAlchemyPayoutAccountRepository(PayoutAccountRepository):
    """Reads payout details off the freelancer's profile row"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_freelancer_id(self, freelancer_id: str) -> Optional[PayoutAccount]:
        result = await self.session.execute(
            select(ProfileModel).where(ProfileModel.id == freelancer_id)
        )
        profile = result.scalar_one_or_none()
        if profile is None:
            return None
        return PayoutAccount(
            freelancer_id=profile.id,
            full_name=profile.full_name,
            account_holder_name=profile.account_holder_name,
            account_number=profile.account_number,
            ifsc=profile.ifsc,
            upi_id=profile.upi_id,
            linked_account_id=profile.linked_account_id,
        )
