"""
Payment and order lifecycle settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so the gateway and workers can load it alone.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks


class RazorpaySettings(BaseModel):
    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    base_url: str = "https://api.razorpay.com/v1"


class PaymentSettings(BaseSettings):
    default_provider: str = "razorpay"
    currency: str = "INR"
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)

    razorpay: RazorpaySettings = Field(default_factory=RazorpaySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


class OrderSettings(BaseSettings):
    """Lifecycle windows, in hours unless noted."""

    accept_window_hours: int = 48
    payment_window_hours: int = 48
    chat_close_delay_hours: int = 24
    download_url_ttl_seconds: int = 3600
    expiry_batch_size: int = 100
    expiry_interval_seconds: int = 300
    transfer_retry_interval_seconds: int = 1800

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ORDERS__",
        case_sensitive=False,
        extra="allow",
    )


payment_settings = PaymentSettings()
order_settings = OrderSettings()
