"""
Razorpay adapter over the REST API (https://razorpay.com/docs/api/).

- Basic auth with key_id / key_secret
- Amounts are integer paise
- Payouts use Route transfers from the captured payment to the freelancer's
  linked account
- Webhooks are signed with HMAC-SHA256 of the raw body in ``X-Razorpay-Signature``
"""
from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Optional

import httpx

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
from core.settings import payment_settings
from domain.order.pricing import from_minor, to_minor
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentSignatureError,
)

SIGNATURE_HEADER = "X-Razorpay-Signature"
EVENT_ID_HEADER = "X-Razorpay-Event-Id"


def _header(headers: dict[str, Any], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


class RazorpayClient(BasePaymentClient):
    provider = "razorpay"

    def __init__(
        self,
        *,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        cfg = payment_settings.razorpay
        self._key_id = key_id or cfg.key_id
        key_secret = key_secret or cfg.key_secret
        if not (self._key_id and key_secret):
            raise RuntimeError("PAYMENT__RAZORPAY__KEY_ID / KEY_SECRET not configured")
        self._webhook_secret = webhook_secret or cfg.webhook_secret
        super().__init__(
            base_url=cfg.base_url,
            auth=(self._key_id, key_secret),
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )

    async def create_checkout(self, req: CreateCheckout) -> CheckoutSession:  # type: ignore[override]
        notes = dict(req.notes or {})
        notes.setdefault("order_id", req.order_id)
        body = {
            "amount": to_minor(req.amount),
            "currency": req.currency,
            "receipt": req.order_id[:40],
            "notes": notes,
        }
        data = await self._request("POST", "/orders", json=body)
        self._log("gateway_checkout_created", order_id=req.order_id, gateway_order_id=data.get("id"))
        return CheckoutSession(
            gateway_order_id=str(data["id"]),
            amount=from_minor(data.get("amount", body["amount"])),
            currency=str(data.get("currency", req.currency)),
            provider=self.provider,
            key_id=self._key_id,
            order_id=req.order_id,
        )

    async def capture(self, req: CapturePayment) -> CaptureResult:  # type: ignore[override]
        data = await self._request(
            "POST",
            f"/payments/{req.payment_ref}/capture",
            json={"amount": to_minor(req.amount), "currency": req.currency},
        )
        status = self._map_status(str(data.get("status", "")))
        self._log("gateway_payment_captured", order_id=req.order_id, payment_ref=req.payment_ref, status=status)
        return CaptureResult(
            payment_ref=str(data.get("id", req.payment_ref)),
            status=status,
            provider=self.provider,
            amount=from_minor(data["amount"]) if "amount" in data else None,
        )

    async def transfer(self, req: TransferRequest) -> TransferResult:  # type: ignore[override]
        account = req.destination.linked_account_id
        if not account:
            raise PaymentProviderError(
                "Route transfer needs a linked account",
                provider=self.provider,
                details={"freelancer_id": req.destination.freelancer_id},
            )
        item = {
            "account": account,
            "amount": to_minor(req.amount),
            "currency": req.currency,
            "notes": {"order_id": req.order_id, "idempotency_key": req.idempotency_key or ""},
        }
        if req.payment_ref:
            data = await self._request(
                "POST", f"/payments/{req.payment_ref}/transfers", json={"transfers": [item]}
            )
            items = data.get("items") or []
            transfer = items[0] if items else {}
        else:
            transfer = await self._request("POST", "/transfers", json=item)

        if not transfer.get("id"):
            raise PaymentProviderError("Transfer response had no id", provider=self.provider)
        status = self._map_status(str(transfer.get("status", "processed")))
        self._log("gateway_transfer_created", order_id=req.order_id, transfer_id=transfer["id"], status=status)
        return TransferResult(transfer_id=str(transfer["id"]), status=status, provider=self.provider)

    async def refund(self, req: RefundRequest) -> RefundResult:  # type: ignore[override]
        body = {
            "amount": to_minor(req.amount),
            "speed": "normal",
            "notes": {"order_id": req.order_id, "reason": req.reason or ""},
        }
        if req.idempotency_key:
            body["receipt"] = req.idempotency_key[:40]
        data = await self._request("POST", f"/payments/{req.payment_ref}/refund", json=body)
        status = self._map_status(str(data.get("status", "")))
        self._log("gateway_refund_created", order_id=req.order_id, refund_id=data.get("id"), status=status)
        return RefundResult(
            refund_id=str(data["id"]),
            status=status,
            provider=self.provider,
            payment_ref=str(data.get("payment_id") or req.payment_ref),
        )

    def verify_signature(self, body: bytes, signature: Optional[str]) -> None:
        if not self._webhook_secret:
            raise PaymentSignatureError("Missing PAYMENT__RAZORPAY__WEBHOOK_SECRET", provider=self.provider)
        if not signature:
            raise PaymentSignatureError(f"Missing {SIGNATURE_HEADER} header", provider=self.provider)
        expected = hmac.new(self._webhook_secret.encode(), body, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected, signature):
            raise PaymentSignatureError("Webhook signature mismatch", provider=self.provider)

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        self.verify_signature(body, _header(headers, SIGNATURE_HEADER))
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise PaymentSignatureError("Webhook body is not JSON", provider=self.provider) from exc

        event_id = _header(headers, EVENT_ID_HEADER) or event.get("id") or ""
        if not event_id:
            # Older deliveries carry no id; derive a stable one from the body
            event_id = hashlib.sha256(body).hexdigest()
        return WebhookEvent(
            id=str(event_id),
            type=str(event.get("event", "")),
            provider=self.provider,
            data=event,
            raw_headers=headers,
            raw_body=body,
        )
