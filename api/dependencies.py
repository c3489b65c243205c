"""
API dependencies - bearer authentication and service wiring
"""
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from core.config import settings
from domain.common.exceptions import UnauthenticatedException
from domain.order.entity import Actor, ActorRole
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundService
from application.services.settlement_service import SettlementService
from infrastructure.container import ServiceContainer

# Tokens are issued by the marketplace auth service
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)

# system is reserved for jobs and webhooks
_TOKEN_ROLES = {ActorRole.CLIENT.value, ActorRole.FREELANCER.value, ActorRole.ADMIN.value}


def decode_actor(token: str) -> Actor:
    """Resolve the caller from a signed bearer token (``sub`` + ``role`` claims)."""
    options = {"require": ["sub", "exp"], "verify_aud": settings.JWT_AUDIENCE is not None}
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedException("Token has expired")
    except jwt.PyJWTError:
        raise UnauthenticatedException("Invalid authentication credentials")

    subject = str(payload.get("sub") or "").strip()
    role = payload.get("role")
    if not subject or role not in _TOKEN_ROLES:
        raise UnauthenticatedException("Invalid authentication credentials")
    return Actor(id=subject, role=ActorRole(role))


async def get_current_actor(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Actor:
    if bearer_token is None or not bearer_token.credentials:
        raise UnauthenticatedException("Authentication credentials were not provided")
    actor = decode_actor(bearer_token.credentials)
    structlog.contextvars.bind_contextvars(user_id=actor.id, role=actor.role.value)
    return actor


def get_container(request: Request) -> ServiceContainer:
    """Service graph built once in the application lifespan."""
    return request.app.state.container


def get_order_service(container: ServiceContainer = Depends(get_container)) -> OrderService:
    return container.orders


def get_payment_service(container: ServiceContainer = Depends(get_container)) -> PaymentService:
    return container.payments


def get_settlement_service(container: ServiceContainer = Depends(get_container)) -> SettlementService:
    return container.settlement


def get_refund_service(container: ServiceContainer = Depends(get_container)) -> RefundService:
    return container.refunds
