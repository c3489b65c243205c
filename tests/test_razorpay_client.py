import base64
import hashlib
import hmac
import json
from decimal import Decimal

import httpx
import pytest

from application.dtos.payments import (
    CapturePayment,
    CreateCheckout,
    PayoutDestination,
    RefundRequest,
    TransferRequest,
)
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRateLimitedError,
    PaymentRecoverableError,
    PaymentSignatureError,
    PaymentTimeoutError,
)
from infrastructure.external.payments.razorpay_client import RazorpayClient


class Recorder:
    """MockTransport handler answering from a path -> (status, body) table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes[(request.method, request.url.path)]
        return httpx.Response(status, json=body)

    def body(self, index=-1):
        return json.loads(self.requests[index].content)


def make_client(routes, webhook_secret="whsec_test"):
    recorder = Recorder(routes)
    client = RazorpayClient(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        webhook_secret=webhook_secret,
        transport=httpx.MockTransport(recorder),
    )
    return client, recorder


@pytest.mark.asyncio
async def test_create_checkout_posts_paise_and_order_note():
    client, rec = make_client({("POST", "/v1/orders"): (200, {"id": "order_Abc", "amount": 1025200, "currency": "INR"})})

    session = await client.create_checkout(CreateCheckout(order_id="o-1", amount=Decimal("10252.00")))

    assert session.gateway_order_id == "order_Abc"
    assert session.amount == Decimal("10252.00")
    assert session.key_id == "rzp_test_key"
    assert rec.body() == {"amount": 1025200, "currency": "INR", "receipt": "o-1", "notes": {"order_id": "o-1"}}
    expected_auth = base64.b64encode(b"rzp_test_key:rzp_test_secret").decode()
    assert rec.requests[0].headers["authorization"] == f"Basic {expected_auth}"
    await client.aclose()


@pytest.mark.asyncio
async def test_capture_uses_payment_path():
    client, rec = make_client(
        {("POST", "/v1/payments/pay_1/capture"): (200, {"id": "pay_1", "status": "captured", "amount": 1025200})}
    )

    result = await client.capture(CapturePayment(order_id="o-1", payment_ref="pay_1", amount=Decimal("10252.00")))

    assert result.status == "captured"
    assert result.amount == Decimal("10252.00")
    assert rec.body() == {"amount": 1025200, "currency": "INR"}


@pytest.mark.asyncio
async def test_transfer_from_captured_payment_to_linked_account():
    client, rec = make_client(
        {
            ("POST", "/v1/payments/pay_1/transfers"): (
                200,
                {"entity": "collection", "count": 1, "items": [{"id": "trf_1", "status": "processed"}]},
            )
        }
    )

    result = await client.transfer(
        TransferRequest(
            order_id="o-1",
            destination=PayoutDestination(freelancer_id="f-1", linked_account_id="acc_1"),
            amount=Decimal("8600.00"),
            payment_ref="pay_1",
            idempotency_key="transfer:o-1",
        )
    )

    assert result.transfer_id == "trf_1"
    assert result.status == "processed"
    item = rec.body()["transfers"][0]
    assert item["account"] == "acc_1"
    assert item["amount"] == 860000
    assert item["notes"]["order_id"] == "o-1"


@pytest.mark.asyncio
async def test_transfer_without_linked_account_fails_before_calling_gateway():
    client, rec = make_client({})
    with pytest.raises(PaymentProviderError):
        await client.transfer(
            TransferRequest(
                order_id="o-1",
                destination=PayoutDestination(freelancer_id="f-1", upi_id="asha@okhdfc"),
                amount=Decimal("8600.00"),
            )
        )
    assert rec.requests == []


@pytest.mark.asyncio
async def test_refund_posts_amount_and_receipt():
    client, rec = make_client(
        {("POST", "/v1/payments/pay_1/refund"): (200, {"id": "rfnd_1", "status": "processed", "payment_id": "pay_1"})}
    )

    result = await client.refund(
        RefundRequest(
            order_id="o-1",
            payment_ref="pay_1",
            amount=Decimal("9600.00"),
            reason="cancellation",
            idempotency_key="refund:o-1",
        )
    )

    assert result.refund_id == "rfnd_1"
    assert result.status == "processed"
    body = rec.body()
    assert body["amount"] == 960000
    assert body["receipt"] == "refund:o-1"
    assert body["notes"] == {"order_id": "o-1", "reason": "cancellation"}


@pytest.mark.asyncio
async def test_client_errors_map_to_provider_error():
    client, rec = make_client(
        {
            ("POST", "/v1/payments/pay_1/refund"): (
                400,
                {"error": {"code": "BAD_REQUEST_ERROR", "description": "The refund amount exceeds the payment"}},
            )
        }
    )

    with pytest.raises(PaymentProviderError) as exc_info:
        await client.refund(RefundRequest(order_id="o-1", payment_ref="pay_1", amount=Decimal("99999.00")))

    assert exc_info.value.message == "The refund amount exceeds the payment"
    assert exc_info.value.details["provider_code"] == "BAD_REQUEST_ERROR"
    assert exc_info.value.details["http_status"] == 400
    assert len(rec.requests) == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_recoverable():
    client, rec = make_client({("POST", "/v1/payments/pay_1/refund"): (503, {"error": {"description": "down"}})})

    with pytest.raises(PaymentRecoverableError):
        await client.refund(RefundRequest(order_id="o-1", payment_ref="pay_1", amount=Decimal("10.00")))

    assert len(rec.requests) == 3


@pytest.mark.asyncio
async def test_rate_limit_and_timeout_are_recoverable():
    client, rec = make_client({("POST", "/v1/payments/pay_1/refund"): (429, {"error": {"description": "slow down"}})})
    with pytest.raises(PaymentRateLimitedError) as exc_info:
        await client.refund(RefundRequest(order_id="o-1", payment_ref="pay_1", amount=Decimal("10.00")))
    assert exc_info.value.retryable is True

    attempts = []

    def hang(request):
        attempts.append(request)
        raise httpx.ReadTimeout("read timed out", request=request)

    slow = RazorpayClient(key_id="k", key_secret="s", transport=httpx.MockTransport(hang))
    with pytest.raises(PaymentTimeoutError):
        await slow.capture(CapturePayment(order_id="o-1", payment_ref="pay_1", amount=Decimal("10.00")))
    assert len(attempts) == 3


def test_webhook_signature_checks():
    client, _ = make_client({})
    body = json.dumps({"event": "payment.captured", "payload": {}}).encode()
    signature = hmac.new(b"whsec_test", body, hashlib.sha256).hexdigest()

    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({}, body)
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({"X-Razorpay-Signature": signature}, body + b" ")

    event = client.parse_webhook({"X-Razorpay-Signature": signature}, body)
    assert event.type == "payment.captured"
    assert event.provider == "razorpay"
    # no id header or field: derived from the body
    assert event.id == hashlib.sha256(body).hexdigest()


def test_webhook_secret_is_required():
    client, _ = make_client({}, webhook_secret=None)
    with pytest.raises(PaymentSignatureError):
        client.parse_webhook({"X-Razorpay-Signature": "abc"}, b"{}")
