"""
Escrow payment aggregate - one captured payment per order.

The payment row carries the financial snapshot taken at capture and the bookkeeping
for the two ways money leaves escrow: the freelancer payout and the client refund.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    CAPTURED = "captured"
    REFUNDED = "refunded"
    FAILED = "failed"


class RefundStatus(str, Enum):
    NONE = "none"
    PROCESSED = "processed"
    FAILED = "failed"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Payment:
    """
    Payment aggregate root.

    Business rules:
    1. amount equals the order's total at capture
    2. transferred_to_freelancer and transfer_pending_manual are never both true
    3. transferred_to_freelancer never reverts
    4. a processed refund is never repeated
    """

    id: Optional[int]
    order_id: str
    client_id: str
    freelancer_id: str
    amount: Decimal
    status: PaymentStatus
    gateway_payment_id: Optional[str]
    platform_fee: Decimal
    gst_amount: Decimal
    freelancer_amount: Decimal

    transferred_to_freelancer: bool = False
    transfer_pending_manual: bool = False
    external_transfer_id: Optional[str] = None
    transfer_failure_reason: Optional[str] = None
    transferred_at: Optional[datetime] = None

    refund_status: RefundStatus = RefundStatus.NONE
    refund_amount: Optional[Decimal] = None
    refund_id: Optional[str] = None
    refund_failure_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None

    captured_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount is None or self.amount < 0:
            raise DomainValidationException(f"Invalid payment amount: {self.amount}", field="amount")
        self.transferred_at = _ensure_utc(self.transferred_at)
        self.refunded_at = _ensure_utc(self.refunded_at)
        self.captured_at = _ensure_utc(self.captured_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    @property
    def is_captured(self) -> bool:
        return self.status == PaymentStatus.CAPTURED and bool(self.gateway_payment_id)

    @property
    def refund_processed(self) -> bool:
        return self.refund_status == RefundStatus.PROCESSED

    @property
    def awaiting_payout(self) -> bool:
        return not self.transferred_to_freelancer and self.refund_status != RefundStatus.PROCESSED

    def mark_transferred(self, external_transfer_id: Optional[str]) -> bool:
        """Returns False when the payout was already recorded."""
        if self.transferred_to_freelancer:
            return False
        if self.refund_processed:
            raise DomainValidationException(
                "Payment was refunded to the client; it cannot be paid out", field="refund_status"
            )
        now = datetime.now(timezone.utc)
        self.transferred_to_freelancer = True
        self.transfer_pending_manual = False
        self.external_transfer_id = external_transfer_id
        self.transfer_failure_reason = None
        self.transferred_at = now
        self.updated_at = now
        return True

    def mark_pending_manual(self, reason: str) -> None:
        if self.transferred_to_freelancer:
            return
        self.transfer_pending_manual = True
        self.transfer_failure_reason = reason
        self.updated_at = datetime.now(timezone.utc)

    def record_refund(self, refund_id: Optional[str], amount: Decimal) -> None:
        if self.refund_processed:
            return
        now = datetime.now(timezone.utc)
        self.status = PaymentStatus.REFUNDED
        self.refund_status = RefundStatus.PROCESSED
        self.refund_id = refund_id
        self.refund_amount = amount
        self.refund_failure_reason = None
        self.refunded_at = now
        self.updated_at = now

    def mark_refund_failed(self, reason: str, amount: Optional[Decimal] = None) -> None:
        if self.refund_processed:
            return
        self.refund_status = RefundStatus.FAILED
        self.refund_failure_reason = reason
        if amount is not None:
            self.refund_amount = amount
        self.updated_at = datetime.now(timezone.utc)


@dataclass
class PayoutAccount:
    """Where a freelancer's payout goes: a gateway linked account, a bank account or UPI."""

    freelancer_id: str
    full_name: Optional[str] = None
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    ifsc: Optional[str] = None
    upi_id: Optional[str] = None
    linked_account_id: Optional[str] = None

    def missing_fields(self) -> list[str]:
        if self.upi_id:
            return []
        required = {
            "account_holder_name": self.account_holder_name,
            "account_number": self.account_number,
            "ifsc": self.ifsc,
        }
        missing = [name for name, value in required.items() if not value]
        if len(missing) == len(required):
            # nothing at all on file: either set satisfies the requirement
            missing.append("upi_id")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()
