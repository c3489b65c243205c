from datetime import timedelta
from decimal import Decimal

import pytest

from domain.common.exceptions import (
    DomainValidationException,
    EmptyDeliveryException,
    FileNotInOrderException,
    InvalidStateException,
    RevisionQuotaExceededException,
    ServicePlanNotFoundException,
    UnauthenticatedException,
    UnauthorizedException,
)
from domain.order.entity import DeliveryStatus, OrderStatus, PlanTier
from domain.payment.entity import PaymentStatus

from tests.conftest import ADMIN, CLIENT, FREELANCER, OTHER_CLIENT, PLAN_ID, START


@pytest.mark.asyncio
async def test_create_order_snapshots_plan_terms(services):
    outcome = await services.orders.create_order(
        CLIENT,
        service_plan_id=PLAN_ID,
        plan_tier=PlanTier.STANDARD,
        requirements="Minimal logo, blue palette",
        requirement_files=["briefs/brand.pdf", "  "],
    )
    order = outcome.order
    assert order.status == OrderStatus.PENDING_ACCEPTANCE
    assert order.freelancer_id == FREELANCER.id
    assert order.price == Decimal("10000.00")
    assert order.total_amount == Decimal("10252.00")
    assert order.platform_commission == Decimal("1400.00")
    assert order.gst_amount == Decimal("252.00")
    assert order.revisions_allowed == 2
    assert order.delivery_days == 5
    assert order.requirement_files == ["briefs/brand.pdf"]
    assert order.accept_deadline == START + timedelta(hours=48)
    assert services.notifier.types_for(FREELANCER.id) == ["order_created"]

    # later plan edits never reach the order
    services.store.plans[PLAN_ID].tiers.clear()
    stored = services.store.orders[order.id]
    assert stored.price == Decimal("10000.00")


@pytest.mark.asyncio
async def test_create_order_requires_client_and_known_plan(services):
    with pytest.raises(UnauthenticatedException):
        await services.orders.create_order(None, service_plan_id=PLAN_ID, plan_tier=PlanTier.BASIC)
    with pytest.raises(UnauthorizedException):
        await services.orders.create_order(FREELANCER, service_plan_id=PLAN_ID, plan_tier=PlanTier.BASIC)
    with pytest.raises(ServicePlanNotFoundException):
        await services.orders.create_order(CLIENT, service_plan_id="nope", plan_tier=PlanTier.BASIC)


@pytest.mark.asyncio
async def test_happy_path_to_completion(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_ACCEPTANCE)

    accepted = await services.orders.accept(FREELANCER, order_id)
    assert accepted.order.status == OrderStatus.PENDING_PAYMENT
    assert accepted.order.payment_deadline == START + timedelta(hours=48)

    captured = await services.orders.capture_payment(
        order_id, payment_ref="pay_happy", amount=Decimal("10252.00")
    )
    assert captured.order.status == OrderStatus.ACCEPTED
    assert captured.effect("chat.create_room").ok
    assert services.chat.rooms == [(order_id, CLIENT.id, FREELANCER.id)]
    payment = services.store.payments[order_id]
    assert payment.status == PaymentStatus.CAPTURED
    assert payment.freelancer_amount == Decimal("8600.00")

    started = await services.orders.start_work(FREELANCER, order_id)
    assert started.order.status == OrderStatus.IN_PROGRESS

    delivered = await services.orders.submit_delivery(
        FREELANCER, order_id, message="First cut", links=["https://figma.example/file/1"]
    )
    assert delivered.order.status == OrderStatus.DELIVERED
    assert delivered.history.version == 1
    assert delivered.order.delivered_at is not None

    completed = await services.orders.complete(CLIENT, order_id)
    assert completed.order.status == OrderStatus.COMPLETED
    assert completed.order.completed_at is not None
    assert [r.name for r in completed.side_effects[:4]] == [
        "stats.freelancer_earnings",
        "stats.client_spend",
        "chat.schedule_closure",
        "settlement",
    ]
    assert services.stats.earnings == [(FREELANCER.id, Decimal("8600.00"))]
    assert services.stats.spend == [(CLIENT.id, Decimal("10252.00"))]
    assert services.chat.closures == [(order_id, timedelta(hours=24))]
    assert completed.settlement.ok


@pytest.mark.asyncio
async def test_only_the_right_party_drives_each_edge(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_ACCEPTANCE)
    with pytest.raises(UnauthorizedException):
        await services.orders.accept(CLIENT, order_id)
    with pytest.raises(UnauthorizedException):
        await services.orders.accept(ADMIN, order_id)
    with pytest.raises(UnauthorizedException):
        await services.orders.cancel(OTHER_CLIENT, order_id)
    assert services.store.orders[order_id].status == OrderStatus.PENDING_ACCEPTANCE


@pytest.mark.asyncio
async def test_edges_outside_the_graph_are_invalid_state(services, make_order):
    order_id = await make_order(OrderStatus.DELIVERED)
    with pytest.raises(InvalidStateException) as exc_info:
        await services.orders.start_work(FREELANCER, order_id)
    assert exc_info.value.actual == "delivered"
    assert exc_info.value.expected == ["accepted"]

    with pytest.raises(InvalidStateException):
        await services.orders.cancel(CLIENT, order_id)

    await services.orders.complete(CLIENT, order_id)
    with pytest.raises(InvalidStateException):
        await services.orders.complete(CLIENT, order_id)
    with pytest.raises(InvalidStateException):
        await services.orders.request_revision(CLIENT, order_id, message="one more")


@pytest.mark.asyncio
async def test_revision_quota_is_enforced(services, make_order):
    order_id = await make_order(OrderStatus.DELIVERED)

    first = await services.orders.request_revision(CLIENT, order_id, message="Darker blue please")
    assert first.order.status == OrderStatus.REVISION_REQUESTED
    assert first.order.revisions_used == 1
    assert first.history.status == DeliveryStatus.REVISION_REQUESTED
    assert first.history.revision_message == "Darker blue please"
    await services.orders.submit_delivery(FREELANCER, order_id, files=["deliveries/v2/logo.zip"])

    second = await services.orders.request_revision(CLIENT, order_id, message="Thicker font")
    assert second.order.revisions_used == 2
    assert second.order.revisions_remaining == 0
    await services.orders.submit_delivery(FREELANCER, order_id, files=["deliveries/v3/logo.zip"])

    with pytest.raises(RevisionQuotaExceededException):
        await services.orders.request_revision(CLIENT, order_id, message="One more tweak")
    order = services.store.orders[order_id]
    assert order.status == OrderStatus.DELIVERED
    assert order.revisions_used == 2


@pytest.mark.asyncio
async def test_revision_message_is_required(services, make_order):
    order_id = await make_order(OrderStatus.DELIVERED)
    with pytest.raises(DomainValidationException):
        await services.orders.request_revision(CLIENT, order_id, message="   ")
    assert services.store.orders[order_id].revisions_used == 0


@pytest.mark.asyncio
async def test_empty_delivery_is_rejected(services, make_order):
    order_id = await make_order(OrderStatus.IN_PROGRESS)
    with pytest.raises(EmptyDeliveryException):
        await services.orders.submit_delivery(FREELANCER, order_id, message="done", files=[" "], links=[])
    assert services.store.orders[order_id].status == OrderStatus.IN_PROGRESS
    assert services.store.history.get(order_id) is None


@pytest.mark.asyncio
async def test_delivery_history_versions_and_approval(services, make_order):
    order_id = await make_order(OrderStatus.DELIVERED)
    await services.orders.request_revision(CLIENT, order_id, message="Swap the icon")
    services.clock.advance(hours=5)
    await services.orders.submit_delivery(FREELANCER, order_id, files=["deliveries/v2/logo.zip"])
    await services.orders.complete(CLIENT, order_id)

    view = await services.orders.get_order(CLIENT, order_id)
    assert [h.version for h in view.delivery_history] == [1, 2, 3]
    assert [h.status for h in view.delivery_history] == [
        DeliveryStatus.DELIVERED,
        DeliveryStatus.REVISION_REQUESTED,
        DeliveryStatus.APPROVED,
    ]
    assert view.viewer_role == "client"
    # first delivered_at is kept across resubmissions
    assert view.order.delivered_at == START


@pytest.mark.asyncio
async def test_side_effect_failure_does_not_undo_the_transition(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_PAYMENT)
    services.chat.fail = True
    services.notifier.fail = True

    outcome = await services.orders.capture_payment(
        order_id, payment_ref="pay_chat_down", amount=Decimal("10252.00")
    )

    assert outcome.order.status == OrderStatus.ACCEPTED
    assert services.store.orders[order_id].status == OrderStatus.ACCEPTED
    room = outcome.effect("chat.create_room")
    assert room.ok is False and "chat service unavailable" in room.error
    assert all(not r.ok for r in outcome.side_effects if r.name.startswith("notify."))


@pytest.mark.asyncio
async def test_concurrent_transition_surfaces_invalid_state(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_ACCEPTANCE)
    # the client cancels between the freelancer's read and write
    services.store.before_transition = lambda oid: services.store.force_status(oid, OrderStatus.CANCELLED)

    with pytest.raises(InvalidStateException) as exc_info:
        await services.orders.accept(FREELANCER, order_id)
    assert exc_info.value.actual == "cancelled"
    assert services.store.orders[order_id].status == OrderStatus.CANCELLED


@pytest.mark.asyncio
async def test_visibility_and_listing(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_ACCEPTANCE)
    await make_order(OrderStatus.PENDING_PAYMENT, tier=PlanTier.BASIC)

    with pytest.raises(UnauthorizedException):
        await services.orders.get_order(OTHER_CLIENT, order_id)
    admin_view = await services.orders.get_order(ADMIN, order_id)
    assert admin_view.viewer_role == "admin"

    assert len(await services.orders.list_orders(CLIENT)) == 2
    assert len(await services.orders.list_orders(FREELANCER, status=OrderStatus.PENDING_PAYMENT)) == 1
    assert await services.orders.list_orders(OTHER_CLIENT) == []
    assert len(await services.orders.list_orders(ADMIN)) == 2


@pytest.mark.asyncio
async def test_download_url_only_for_order_files(services, make_order):
    order_id = await make_order(OrderStatus.DELIVERED)

    url = await services.orders.get_delivery_download_url(CLIENT, order_id, "deliveries/v1/logo.zip")
    assert url.url.startswith("https://files.example.test/deliveries/v1/logo.zip")
    assert url.expires_in == 3600
    assert services.storage.requests[0]["disposition"] == 'attachment; filename="logo.zip"'

    with pytest.raises(FileNotInOrderException):
        await services.orders.get_delivery_download_url(CLIENT, order_id, "deliveries/other/secret.zip")
    with pytest.raises(UnauthorizedException):
        await services.orders.get_delivery_download_url(OTHER_CLIENT, order_id, "deliveries/v1/logo.zip")


@pytest.mark.asyncio
async def test_transition_retries_when_order_moved_to_another_legal_source(services, make_order):
    order_id = await make_order(OrderStatus.PENDING_ACCEPTANCE)
    # the freelancer accepts while the client's cancel is in flight
    services.store.before_transition = lambda oid: services.store.force_status(oid, OrderStatus.PENDING_PAYMENT)

    outcome = await services.orders.cancel(CLIENT, order_id, reason="Found someone else")

    assert outcome.order.status == OrderStatus.CANCELLED
    assert outcome.order.cancellation_reason == "Found someone else"
    assert outcome.effect("refund") is None
