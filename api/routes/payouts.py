"""Operator routes for the manual payout queue and failed refunds."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from api.dependencies import get_current_actor, get_refund_service, get_settlement_service
from application.dto import (
    ConfirmTransferDTO,
    FailedRefundDTO,
    ManualPayoutDTO,
    PaginationParams,
    PaymentStateDTO,
    RefundOutcomeDTO,
    payment_to_dto,
    refund_to_dto,
)
from application.services.refund_service import RefundService
from application.services.settlement_service import SettlementService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.order.entity import Actor


router = APIRouter(prefix="/payouts", tags=["Payouts"])


@router.get("/manual", summary="Manual payout queue", response_model=ApiResponse[PaginatedData[ManualPayoutDTO]])
async def list_manual_payouts(
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    """
    Completed orders whose automatic transfer did not go through.

    Each entry carries the freelancer's bank/UPI details and the payout amount, so
    an operator can pay by hand and then confirm.
    """
    entries = await service.list_manual_payouts(actor, skip=pagination.skip, limit=pagination.limit)
    items = [
        ManualPayoutDTO(
            order_id=e.order_id,
            freelancer_id=e.freelancer_id,
            freelancer_name=e.freelancer_name,
            account_holder_name=e.account_holder_name,
            account_number=e.account_number,
            ifsc=e.ifsc,
            upi_id=e.upi_id,
            amount_paid=e.amount_paid,
            payout_amount=e.payout_amount,
            failure_reason=e.failure_reason,
            completed_at=e.completed_at,
            payout_details_complete=e.payout_details_complete,
            missing_fields=e.missing_fields,
        )
        for e in entries
    ]
    return paginated_response(items=items, skip=pagination.skip, limit=pagination.limit)


@router.post("/{order_id}/confirm", summary="Confirm manual transfer", response_model=ApiResponse[PaymentStateDTO])
async def confirm_manual_transfer(
    order_id: str,
    payload: Optional[ConfirmTransferDTO] = None,
    actor: Actor = Depends(get_current_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    payment = await service.confirm_manual_transfer(
        actor, order_id, payload.transaction_ref if payload else None
    )
    return success_response(data=payment_to_dto(payment), message="Transfer confirmed")


@router.get("/refunds/failed", summary="Failed refunds", response_model=ApiResponse[PaginatedData[FailedRefundDTO]])
async def list_failed_refunds(
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_actor),
    service: RefundService = Depends(get_refund_service),
):
    payments = await service.list_failed_refunds(actor, skip=pagination.skip, limit=pagination.limit)
    items = [
        FailedRefundDTO(
            order_id=p.order_id,
            client_id=p.client_id,
            gateway_payment_id=p.gateway_payment_id,
            amount_paid=p.amount,
            refund_amount=p.refund_amount,
            failure_reason=p.refund_failure_reason,
        )
        for p in payments
    ]
    return paginated_response(items=items, skip=pagination.skip, limit=pagination.limit)


@router.post("/refunds/{order_id}/retry", summary="Retry refund", response_model=ApiResponse[RefundOutcomeDTO])
async def retry_refund(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    service: RefundService = Depends(get_refund_service),
):
    outcome = await service.retry_refund(actor, order_id)
    message = "Refund processed" if outcome.ok else "Refund failed"
    return success_response(data=refund_to_dto(outcome), message=message)
