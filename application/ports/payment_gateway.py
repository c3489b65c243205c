"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import (
    CapturePayment,
    CaptureResult,
    CheckoutSession,
    CreateCheckout,
    RefundRequest,
    RefundResult,
    TransferRequest,
    TransferResult,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the escrow flow.

    Failures surface as BusinessException subclasses; callers in the settlement
    and refund paths record them instead of propagating.
    """

    provider: str

    async def create_checkout(self, req: CreateCheckout) -> CheckoutSession: ...

    async def capture(self, req: CapturePayment) -> CaptureResult: ...

    async def transfer(self, req: TransferRequest) -> TransferResult: ...

    async def refund(self, req: RefundRequest) -> RefundResult: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...
