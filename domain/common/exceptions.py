"""Domain-level business exceptions shared by domain and infrastructure.

The core layer only maps these to transport responses; the domain never imports
the core layer back.
"""
from __future__ import annotations

from typing import Iterable, Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base class for business exceptions"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.PARAM_VALIDATION_ERROR,
        error_type: str = "ValidationError",
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
        format_params: dict | None = None,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            field=field,
            message_key=message_key or "validation.domain",
            format_params=format_params,
        )


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------
class UnauthenticatedException(BusinessException):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            code=BusinessCode.UNAUTHENTICATED,
            message=message,
            error_type="Unauthenticated",
            message_key="auth.unauthenticated",
        )


class UnauthorizedException(BusinessException):
    """Caller is authenticated but is not the party the operation requires."""

    def __init__(self, message: str = "You are not allowed to perform this action", *, required: Optional[str] = None):
        details = {"required_party": required} if required else None
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="Unauthorized",
            details=details,
            message_key="auth.unauthorized",
        )


# ---------------------------------------------------------------------------
# Order lifecycle
# ---------------------------------------------------------------------------
class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details={"order_id": order_id},
            message_key="order.not_found",
        )


class ServicePlanNotFoundException(BusinessException):
    def __init__(self, plan_id: str, tier: Optional[str] = None):
        details = {"service_plan_id": plan_id}
        if tier:
            details["plan_tier"] = tier
        super().__init__(
            code=BusinessCode.SERVICE_PLAN_NOT_FOUND,
            message="Service plan not found",
            error_type="ServicePlanNotFound",
            details=details,
            message_key="service_plan.not_found",
        )


class InvalidStateException(BusinessException):
    """Status guard failed; carries the actual status so the UI can refresh."""

    def __init__(self, order_id: str, expected: Iterable, actual):
        expected_list = sorted(getattr(s, "value", s) for s in expected)
        actual = getattr(actual, "value", actual)
        self.expected = expected_list
        self.actual = actual
        super().__init__(
            code=BusinessCode.ORDER_INVALID_STATE,
            message=(
                f"Order is {actual or 'unknown'}; this action requires "
                f"{' or '.join(expected_list)}"
            ),
            error_type="InvalidState",
            details={"order_id": order_id, "expected": expected_list, "actual": actual},
            field="status",
            message_key="order.invalid_state",
        )


class RevisionQuotaExceededException(DomainValidationException):
    def __init__(self, revisions_allowed: int, revisions_used: int):
        super().__init__(
            f"No revisions remaining ({revisions_used} of {revisions_allowed} used)",
            code=BusinessCode.REVISION_QUOTA_EXCEEDED,
            error_type="RevisionQuotaExceeded",
            field="revisions_used",
            details={"revisions_allowed": revisions_allowed, "revisions_used": revisions_used},
            message_key="order.revision.quota_exceeded",
        )


class EmptyDeliveryException(DomainValidationException):
    def __init__(self):
        super().__init__(
            "A delivery needs at least one file or link",
            code=BusinessCode.EMPTY_DELIVERY,
            error_type="EmptyDelivery",
            field="delivery_files",
            message_key="order.delivery.empty",
        )


class FileNotInOrderException(BusinessException):
    def __init__(self, order_id: str, file_ref: str):
        super().__init__(
            code=BusinessCode.FILE_NOT_IN_ORDER,
            message="File is not attached to this order",
            error_type="FileNotInOrder",
            details={"order_id": order_id, "file": file_ref},
            message_key="order.file.not_found",
        )


# ---------------------------------------------------------------------------
# Escrow / money movement
# ---------------------------------------------------------------------------
class PaymentNotFoundException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.PAYMENT_NOT_FOUND,
            message="No captured payment for this order",
            error_type="PaymentNotFound",
            details={"order_id": order_id},
            message_key="payment.not_found",
        )


class MissingPayoutDetailsException(DomainValidationException):
    def __init__(self, freelancer_id: str, missing: list[str]):
        super().__init__(
            "Freelancer must add bank or UPI details before payout",
            code=BusinessCode.PAYOUT_DETAILS_MISSING,
            error_type="MissingPayoutDetails",
            details={"freelancer_id": freelancer_id, "missing": missing},
            message_key="payout.details.missing",
        )


class SettlementFailure(BusinessException):
    """Recorded on the payment, never raised out of a lifecycle transition."""

    def __init__(self, order_id: str, reason: str):
        super().__init__(
            code=BusinessCode.SETTLEMENT_FAILED,
            message=f"Payout transfer failed: {reason}",
            error_type="SettlementFailure",
            details={"order_id": order_id, "reason": reason},
            message_key="payout.transfer.failed",
        )


class RefundFailure(BusinessException):
    """Recorded on the payment, never raised out of a lifecycle transition."""

    def __init__(self, order_id: str, reason: str):
        super().__init__(
            code=BusinessCode.REFUND_FAILED,
            message=f"Refund failed: {reason}",
            error_type="RefundFailure",
            details={"order_id": order_id, "reason": reason},
            message_key="payment.refund.failed",
        )


class PaymentAlreadyExistsException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.PAYMENT_ALREADY_EXISTS,
            message="A payment is already recorded for this order",
            error_type="PaymentAlreadyExists",
            details={"order_id": order_id},
            message_key="payment.already_exists",
        )
