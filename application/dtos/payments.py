"""
Payment gateway DTOs (Pydantic v2) used at application boundaries.

Amounts are rupees as ``Decimal``; gateway adapters convert to paise.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.types import condecimal

# Currencies the escrow flow settles in (extend as needed)
ISO_4217 = {"INR"}


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class CreateCheckout(BaseModel):
    """Gateway-side order the client pays against."""

    order_id: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="INR")
    notes: Optional[dict[str, str]] = None

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return _validate_currency(v)


class CheckoutSession(BaseModel):
    gateway_order_id: str
    amount: Decimal
    currency: str
    provider: str
    key_id: Optional[str] = None
    order_id: Optional[str] = None


class CapturePayment(BaseModel):
    order_id: str
    payment_ref: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="INR")

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return _validate_currency(v)


class CaptureResult(BaseModel):
    payment_ref: str
    status: str
    provider: str
    amount: Optional[Decimal] = None


class PayoutDestination(BaseModel):
    """Recipient details; a linked gateway account is preferred over bank/UPI."""

    freelancer_id: str
    linked_account_id: Optional[str] = None
    account_holder_name: Optional[str] = None
    account_number: Optional[str] = None
    ifsc: Optional[str] = None
    upi_id: Optional[str] = None


class TransferRequest(BaseModel):
    order_id: str
    destination: PayoutDestination
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="INR")
    payment_ref: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return _validate_currency(v)


class TransferResult(BaseModel):
    transfer_id: str
    status: str
    provider: str


class RefundRequest(BaseModel):
    order_id: str
    payment_ref: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="INR")
    reason: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return _validate_currency(v)


class RefundResult(BaseModel):
    refund_id: str
    status: str
    provider: str
    payment_ref: Optional[str] = None


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]
    # raw fields for traceability (optional)
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def entity(self, name: str) -> dict[str, Any]:
        """``payload.<name>.entity`` of a gateway event, or ``{}``."""
        payload = self.data.get("payload") or {}
        return (payload.get(name) or {}).get("entity") or {}
