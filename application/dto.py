"""
Data transfer objects - application layer <-> presentation layer
"""
from pydantic import BaseModel, Field, field_validator, model_serializer
from typing import Optional, Literal
from datetime import datetime, timezone
from decimal import Decimal
from core.config import settings


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


def _strip_refs(values: list[str]) -> list[str]:
    return [v.strip() for v in values if v and v.strip()]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
class CreateOrderDTO(DTOBase):
    service_plan_id: str = Field(..., min_length=1)
    plan_tier: Literal["basic", "standard", "premium"]
    requirements: str = Field(default="", max_length=5000)
    requirement_files: list[str] = Field(default_factory=list, max_length=20)
    requirement_links: list[str] = Field(default_factory=list, max_length=20)

    @field_validator("requirement_files", "requirement_links")
    @classmethod
    def _clean(cls, v: list[str]) -> list[str]:
        return _strip_refs(v)


class ReasonDTO(DTOBase):
    """Optional reason for decline/cancel."""

    reason: Optional[str] = Field(default=None, max_length=1000)


class SubmitDeliveryDTO(DTOBase):
    message: Optional[str] = Field(default=None, max_length=5000)
    delivery_files: list[str] = Field(default_factory=list, max_length=20)
    delivery_links: list[str] = Field(default_factory=list, max_length=20)


class RevisionRequestDTO(DTOBase):
    message: str = Field(..., min_length=1, max_length=5000)


class ConfirmTransferDTO(DTOBase):
    transaction_ref: Optional[str] = Field(default=None, max_length=200)


class PaginationParams(DTOBase):
    """Page/size query params; derives skip/limit"""
    page: int = Field(1, ge=1, description="1-based page number")
    size: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="page size",
    )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------
class OrderResponseDTO(DTOBase):
    id: str
    client_id: str
    freelancer_id: str
    service_plan_id: str
    plan_tier: str
    status: str
    price: Decimal
    total_amount: Decimal
    platform_commission: Decimal
    gst_amount: Decimal
    delivery_days: int
    revisions_allowed: int
    revisions_used: int
    revisions_remaining: int
    requirements: str
    requirement_files: list[str]
    requirement_links: list[str]
    delivery_files: list[str]
    delivery_links: list[str]
    delivery_message: Optional[str]
    accept_deadline: Optional[datetime]
    payment_deadline: Optional[datetime]
    cancellation_reason: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    delivered_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]


class DeliveryHistoryDTO(DTOBase):
    version: int
    status: str
    message: Optional[str]
    delivery_files: list[str]
    delivery_links: list[str]
    revision_message: Optional[str]
    created_at: Optional[datetime]


class OrderDetailDTO(DTOBase):
    order: OrderResponseDTO
    delivery_history: list[DeliveryHistoryDTO]
    viewer_role: str


class SideEffectDTO(DTOBase):
    name: str
    ok: bool
    error: Optional[str] = None


class RefundOutcomeDTO(DTOBase):
    status: str
    amount: Optional[Decimal] = None
    refund_id: Optional[str] = None
    reason: Optional[str] = None


class SettlementOutcomeDTO(DTOBase):
    status: str
    amount: Optional[Decimal] = None
    transfer_id: Optional[str] = None
    reason: Optional[str] = None


class TransitionResultDTO(DTOBase):
    order: OrderResponseDTO
    side_effects: list[SideEffectDTO] = Field(default_factory=list)
    refund: Optional[RefundOutcomeDTO] = None
    settlement: Optional[SettlementOutcomeDTO] = None


class DownloadURLDTO(DTOBase):
    url: str
    expires_in: int


class ManualPayoutDTO(DTOBase):
    order_id: str
    freelancer_id: str
    freelancer_name: Optional[str]
    account_holder_name: Optional[str]
    account_number: Optional[str]
    ifsc: Optional[str]
    upi_id: Optional[str]
    amount_paid: Decimal
    payout_amount: Decimal
    failure_reason: Optional[str]
    completed_at: Optional[datetime]
    payout_details_complete: bool
    missing_fields: list[str] = Field(default_factory=list)


class FailedRefundDTO(DTOBase):
    order_id: str
    client_id: str
    gateway_payment_id: Optional[str]
    amount_paid: Decimal
    refund_amount: Optional[Decimal]
    failure_reason: Optional[str]


class PaymentStateDTO(DTOBase):
    order_id: str
    status: str
    amount: Decimal
    freelancer_amount: Decimal
    transferred_to_freelancer: bool
    transfer_pending_manual: bool
    external_transfer_id: Optional[str]
    transferred_at: Optional[datetime]
    refund_status: str


# ---------------------------------------------------------------------------
# Entity -> DTO
# ---------------------------------------------------------------------------
def order_to_dto(order) -> OrderResponseDTO:
    return OrderResponseDTO(
        id=order.id,
        client_id=order.client_id,
        freelancer_id=order.freelancer_id,
        service_plan_id=order.service_plan_id,
        plan_tier=order.plan_tier.value,
        status=order.status.value,
        price=order.price,
        total_amount=order.total_amount,
        platform_commission=order.platform_commission,
        gst_amount=order.gst_amount,
        delivery_days=order.delivery_days,
        revisions_allowed=order.revisions_allowed,
        revisions_used=order.revisions_used,
        revisions_remaining=order.revisions_remaining,
        requirements=order.requirements,
        requirement_files=list(order.requirement_files),
        requirement_links=list(order.requirement_links),
        delivery_files=list(order.delivery_files),
        delivery_links=list(order.delivery_links),
        delivery_message=order.delivery_message,
        accept_deadline=order.accept_deadline,
        payment_deadline=order.payment_deadline,
        cancellation_reason=order.cancellation_reason,
        created_at=order.created_at,
        updated_at=order.updated_at,
        delivered_at=order.delivered_at,
        completed_at=order.completed_at,
        cancelled_at=order.cancelled_at,
    )


def history_to_dto(entry) -> DeliveryHistoryDTO:
    return DeliveryHistoryDTO(
        version=entry.version,
        status=entry.status.value,
        message=entry.message,
        delivery_files=list(entry.delivery_files),
        delivery_links=list(entry.delivery_links),
        revision_message=entry.revision_message,
        created_at=entry.created_at,
    )


def refund_to_dto(outcome) -> Optional[RefundOutcomeDTO]:
    if outcome is None:
        return None
    return RefundOutcomeDTO(
        status=outcome.status.value,
        amount=outcome.amount,
        refund_id=outcome.refund_id,
        reason=outcome.reason,
    )


def settlement_to_dto(outcome) -> Optional[SettlementOutcomeDTO]:
    if outcome is None:
        return None
    return SettlementOutcomeDTO(
        status=outcome.status.value,
        amount=outcome.amount,
        transfer_id=outcome.transfer_id,
        reason=outcome.reason,
    )


def transition_to_dto(outcome) -> TransitionResultDTO:
    """Status after the committed write, plus how each side effect went."""
    return TransitionResultDTO(
        order=order_to_dto(outcome.order),
        side_effects=[SideEffectDTO(name=r.name, ok=r.ok, error=r.error) for r in outcome.side_effects],
        refund=refund_to_dto(outcome.refund),
        settlement=settlement_to_dto(outcome.settlement),
    )


def payment_to_dto(payment) -> PaymentStateDTO:
    return PaymentStateDTO(
        order_id=payment.order_id,
        status=payment.status.value,
        amount=payment.amount,
        freelancer_amount=payment.freelancer_amount,
        transferred_to_freelancer=payment.transferred_to_freelancer,
        transfer_pending_manual=payment.transfer_pending_manual,
        external_transfer_id=payment.external_transfer_id,
        transferred_at=payment.transferred_at,
        refund_status=payment.refund_status.value,
    )
