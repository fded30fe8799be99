"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials are loaded in
one place, e.g. RAZORPAY__KEY_SECRET or RECONCILIATION__STALE_AFTER_SECONDS.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 5.0
    write: float = 5.0
    total: float = 10.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class ReconciliationSettings(BaseModel):
    # Open payments older than this are checked against the gateway
    stale_after_seconds: int = 2 * 60 * 60
    interval_seconds: int = 15 * 60
    batch_size: int = 100


class RazorpaySettings(BaseModel):
    key_id: Optional[str] = None
    key_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_base: str = "https://api.razorpay.com/v1"
    checkout_name: str = "HackFest Registration"


class CashfreeSettings(BaseModel):
    app_id: Optional[str] = None
    secret_key: Optional[str] = None
    environment: str = "sandbox"  # sandbox | production
    api_version: str = "2023-08-01"
    return_url: Optional[str] = None
    notify_url: Optional[str] = None

    @property
    def api_base(self) -> str:
        if self.environment.lower() in {"prod", "production", "live"}:
            return "https://api.cashfree.com/pg"
        return "https://sandbox.cashfree.com/pg"


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="razorpay")
    default_currency: str = Field(default="INR")
    # A pending attempt younger than this is handed back instead of creating a new order
    order_reuse_seconds: int = Field(default=30 * 60)
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)

    razorpay: RazorpaySettings = Field(default_factory=RazorpaySettings)
    cashfree: CashfreeSettings = Field(default_factory=CashfreeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
