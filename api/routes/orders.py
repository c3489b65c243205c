"""Order lifecycle routes.

Thin layer: resolve the actor, call OrderService, present the committed state.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_actor, get_order_service, get_payment_service
from application.dto import (
    CreateOrderDTO,
    DownloadURLDTO,
    OrderDetailDTO,
    OrderResponseDTO,
    PaginationParams,
    ReasonDTO,
    RevisionRequestDTO,
    SubmitDeliveryDTO,
    TransitionResultDTO,
    history_to_dto,
    order_to_dto,
    transition_to_dto,
)
from application.dtos.payments import CheckoutSession
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.order.entity import Actor, OrderStatus, PlanTier


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", summary="Place an order", response_model=ApiResponse[TransitionResultDTO])
async def create_order(
    payload: CreateOrderDTO,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    """
    Client places an order against a freelancer's service plan tier.

    Price, delivery days and revisions are copied from the tier; commission, GST and
    the total are computed once here and never recomputed.
    """
    outcome = await service.create_order(
        actor,
        service_plan_id=payload.service_plan_id,
        plan_tier=PlanTier(payload.plan_tier),
        requirements=payload.requirements,
        requirement_files=payload.requirement_files,
        requirement_links=payload.requirement_links,
    )
    return success_response(data=transition_to_dto(outcome), message="Order created")


@router.get("", summary="List my orders", response_model=ApiResponse[PaginatedData[OrderResponseDTO]])
async def list_orders(
    pagination: PaginationParams = Depends(),
    status: Optional[OrderStatus] = Query(default=None),
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.list_orders(actor, status=status, skip=pagination.skip, limit=pagination.limit)
    return paginated_response(
        items=[order_to_dto(o) for o in orders],
        skip=pagination.skip,
        limit=pagination.limit,
    )


@router.get("/{order_id}", summary="Order detail", response_model=ApiResponse[OrderDetailDTO])
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    view = await service.get_order(actor, order_id)
    return success_response(
        data=OrderDetailDTO(
            order=order_to_dto(view.order),
            delivery_history=[history_to_dto(e) for e in view.delivery_history],
            viewer_role=view.viewer_role,
        )
    )


@router.post("/{order_id}/accept", summary="Accept order", response_model=ApiResponse[TransitionResultDTO])
async def accept_order(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    outcome = await service.accept(actor, order_id)
    return success_response(data=transition_to_dto(outcome), message="Order accepted")


@router.post("/{order_id}/decline", summary="Decline order", response_model=ApiResponse[TransitionResultDTO])
async def decline_order(
    order_id: str,
    payload: Optional[ReasonDTO] = None,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    outcome = await service.decline(actor, order_id, payload.reason if payload else None)
    return success_response(data=transition_to_dto(outcome), message="Order declined")


@router.post("/{order_id}/checkout", summary="Open payment checkout", response_model=ApiResponse[CheckoutSession])
async def create_checkout(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    """Gateway order the client pays against; reused while the order awaits payment."""
    session = await service.create_checkout(actor, order_id)
    return success_response(data=session)


@router.post("/{order_id}/start", summary="Start work", response_model=ApiResponse[TransitionResultDTO])
async def start_work(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    outcome = await service.start_work(actor, order_id)
    return success_response(data=transition_to_dto(outcome), message="Work started")


@router.post("/{order_id}/deliveries", summary="Submit delivery", response_model=ApiResponse[TransitionResultDTO])
async def submit_delivery(
    order_id: str,
    payload: SubmitDeliveryDTO,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    """At least one of message, files or links is required."""
    outcome = await service.submit_delivery(
        actor,
        order_id,
        message=payload.message,
        files=payload.delivery_files,
        links=payload.delivery_links,
    )
    return success_response(data=transition_to_dto(outcome), message="Delivery submitted")


@router.post("/{order_id}/revisions", summary="Request revision", response_model=ApiResponse[TransitionResultDTO])
async def request_revision(
    order_id: str,
    payload: RevisionRequestDTO,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    outcome = await service.request_revision(actor, order_id, message=payload.message)
    return success_response(data=transition_to_dto(outcome), message="Revision requested")


@router.post("/{order_id}/complete", summary="Approve delivery", response_model=ApiResponse[TransitionResultDTO])
async def complete_order(
    order_id: str,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    """
    Client approves the latest delivery.

    The order is completed even if the payout to the freelancer fails; the
    ``settlement`` block then reports ``pending_manual``.
    """
    outcome = await service.complete(actor, order_id)
    return success_response(data=transition_to_dto(outcome), message="Order completed")


@router.post("/{order_id}/cancel", summary="Cancel order", response_model=ApiResponse[TransitionResultDTO])
async def cancel_order(
    order_id: str,
    payload: Optional[ReasonDTO] = None,
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    outcome = await service.cancel(actor, order_id, payload.reason if payload else None)
    return success_response(data=transition_to_dto(outcome), message="Order cancelled")


@router.get("/{order_id}/files/download-url", summary="Attachment download URL", response_model=ApiResponse[DownloadURLDTO])
async def get_download_url(
    order_id: str,
    key: str = Query(..., min_length=1, description="Attachment key referenced by the order"),
    actor: Actor = Depends(get_current_actor),
    service: OrderService = Depends(get_order_service),
):
    signed = await service.get_delivery_download_url(actor, order_id, key)
    return success_response(data=DownloadURLDTO(url=signed.url, expires_in=signed.expires_in))
