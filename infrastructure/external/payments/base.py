"""
Base payment client implementing shared concerns: http, retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
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
from application.ports.payment_gateway import PaymentGateway
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRateLimitedError,
    PaymentRecoverableError,
    PaymentTimeoutError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        base_url: str = "",
        auth: Optional[httpx.Auth | tuple[str, str]] = None,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._transport = transport
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                auth=self._auth,
                timeout=self.timeouts,
                transport=self._transport,
            )
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(
                (httpx.TimeoutException, httpx.TransportError, PaymentRecoverableError)
            ),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        """One JSON call with retries; non-2xx answers become payment exceptions."""

        async def call() -> dict[str, Any]:
            async with self.client() as http:
                resp = await http.request(method, path, json=json, headers=headers)
            if resp.status_code in RETRY_STATUS_CODES:
                error_cls = PaymentRateLimitedError if resp.status_code == 429 else PaymentRecoverableError
                raise error_cls(
                    f"{self.provider} answered {resp.status_code}",
                    provider=self.provider,
                    provider_code=str(resp.status_code),
                )
            if resp.status_code >= 400:
                code, description = self._error_of(resp)
                raise PaymentProviderError(
                    description or f"{self.provider} answered {resp.status_code}",
                    provider=self.provider,
                    provider_code=code,
                    details={"http_status": resp.status_code, "path": path},
                )
            return resp.json()

        try:
            return await self._retry(call)
        except httpx.TimeoutException as exc:
            raise PaymentTimeoutError(
                f"{self.provider} timed out", provider=self.provider, details={"path": path}
            ) from exc
        except httpx.TransportError as exc:
            raise PaymentRecoverableError(
                f"{self.provider} unreachable: {exc.__class__.__name__}",
                provider=self.provider,
                details={"path": path},
            ) from exc

    def _error_of(self, resp: httpx.Response) -> tuple[Optional[str], Optional[str]]:
        try:
            body = resp.json()
        except ValueError:
            return None, resp.text[:200] or None
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return error.get("code"), error.get("description")
        return None, None

    # Default implementations raise to force override where needed
    async def create_checkout(self, req: CreateCheckout) -> CheckoutSession:  # type: ignore[override]
        raise NotImplementedError

    async def capture(self, req: CapturePayment) -> CaptureResult:  # type: ignore[override]
        raise NotImplementedError

    async def transfer(self, req: TransferRequest) -> TransferResult:  # type: ignore[override]
        raise NotImplementedError

    async def refund(self, req: RefundRequest) -> RefundResult:  # type: ignore[override]
        raise NotImplementedError

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
