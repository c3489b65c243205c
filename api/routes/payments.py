"""
Payments API routes.

Gateway webhook intake only. Signature checks and event dispatch live in
PaymentService; this layer hands over the raw body untouched.
"""
from __future__ import annotations

import ipaddress

from fastapi import APIRouter, Depends, HTTPException, Request

from api.dependencies import get_payment_service
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import success_response
from core.settings import payment_settings


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


def _ip_permitted(remote_ip: str, allowlist: list[str]) -> bool:
    """Exact IPs or CIDR ranges; an unparsable address is never permitted."""
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        if "/" in entry:
            try:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            except ValueError:
                logger.warning("webhook_allowlist_entry_invalid", entry=entry)
        elif remote_ip == entry:
            return True
    return False


@router.post("/webhooks/{provider}", summary="Gateway webhook")
async def payments_webhook(
    provider: str,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    if provider.lower() != service.gateway.provider:
        raise HTTPException(status_code=404, detail=f"Unknown payment provider: {provider}")

    # Optional IP allowlist
    allowlist = payment_settings.webhook.ip_allowlist or []
    if allowlist and request.client and request.client.host:
        if not _ip_permitted(request.client.host, allowlist):
            logger.warning("webhook_ip_not_allowed", provider=provider, remote_ip=request.client.host)
            raise HTTPException(status_code=403, detail="Webhook source not allowed")

    ct = (request.headers.get("content-type") or "").lower()
    if "application/json" not in ct:
        logger.warning("webhook_content_type_unsupported", provider=provider, content_type=ct)
        return success_response(message="Unsupported content type; expected application/json")

    # signature is computed over the exact bytes
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    result = await service.handle_webhook(headers, raw_body)

    # 200 acknowledges receipt; unhandled events are not retried by the gateway
    return success_response(
        data={
            "id": result.event_id,
            "type": result.event_type,
            "handled": result.handled,
            "detail": result.detail,
            "order_id": result.order_id,
        },
        message="Webhook received",
    )
