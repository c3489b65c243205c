"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# Gateway→internal status mapping for payment, transfer and refund entities
PROVIDER_STATUS_TO_INTERNAL = {
    "razorpay": {
        # payment.status
        "created": "pending",
        "authorized": "pending",
        "captured": "captured",
        "refunded": "refunded",
        "failed": "failed",
        # transfer.status
        "pending": "pending",
        "processed": "processed",
        "reversed": "failed",
        # refund.status
        "processing": "pending",
    },
}

# Webhook event names the engine reacts to
WEBHOOK_PAYMENT_AUTHORIZED = "payment.authorized"
WEBHOOK_PAYMENT_CAPTURED = "payment.captured"
WEBHOOK_PAYMENT_FAILED = "payment.failed"
WEBHOOK_TRANSFER_PROCESSED = "transfer.processed"
WEBHOOK_TRANSFER_FAILED = "transfer.failed"
WEBHOOK_REFUND_PROCESSED = "refund.processed"
WEBHOOK_REFUND_FAILED = "refund.failed"

WEBHOOK_TRANSFER_EVENTS = frozenset({WEBHOOK_TRANSFER_PROCESSED, WEBHOOK_TRANSFER_FAILED})
WEBHOOK_REFUND_EVENTS = frozenset({WEBHOOK_REFUND_PROCESSED, WEBHOOK_REFUND_FAILED})
