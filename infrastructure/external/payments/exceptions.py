"""
Gateway failures as BusinessException variants.

Recoverable errors are retried by the HTTP layer and, once retries run out,
leave the money movement in a state the retry jobs pick up again.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentGatewayError(BusinessException):
    code: PaymentCode = PaymentCode.PROVIDER_ERROR
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        merged = {"provider": provider, "provider_code": provider_code, **(details or {})}
        super().__init__(
            code=type(self).code,
            message=message,
            error_type=type(self).__name__,
            details=merged,
        )
        self.provider = provider


class PaymentProviderError(PaymentGatewayError):
    """The gateway rejected the request; sending it again will not help."""


class PaymentRecoverableError(PaymentGatewayError):
    code = PaymentCode.PROVIDER_RECOVERABLE
    retryable = True


class PaymentTimeoutError(PaymentRecoverableError):
    code = PaymentCode.TIMEOUT


class PaymentRateLimitedError(PaymentRecoverableError):
    code = PaymentCode.RATE_LIMITED


class PaymentSignatureError(PaymentGatewayError):
    """Webhook body failed HMAC verification or no secret is configured."""

    code = PaymentCode.SIGNATURE_ERROR

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(message, provider=provider, details=details)
        self.details.pop("provider_code", None)
