"""
Uniform interface over UPI payment providers.

Adapters never raise across this boundary: every provider or transport
failure comes back as ``GatewayResponse(success=False, error=...)``.
"""
import enum
import hashlib
import hmac
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field


class GatewayProvider(str, enum.Enum):
    RAZORPAY = "razorpay"
    PAYU = "payu"
    PHONEPE = "phonepe"
    GPAY = "gpay"
    MOCK = "mock"


class GatewayConfig(BaseModel):
    merchant_id: str = ""
    api_key: str = ""
    api_secret: str = ""
    webhook_secret: str = ""
    base_url: Optional[str] = None
    is_test_mode: bool = True
    timeout_minutes: int = Field(default=15, ge=1, le=30)
    max_retries: int = Field(default=3, ge=1, le=5)


class GatewayResponse(BaseModel):
    success: bool
    status: Optional[str] = None  # pending | success | failed, status checks only
    data: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: dict[str, Any], status: Optional[str] = None) -> "GatewayResponse":
        return cls(success=True, data=data, status=status)

    @classmethod
    def fail(cls, error: str) -> "GatewayResponse":
        return cls(success=False, error=error)


def compute_signature(secret: str, payload: bytes) -> str:
    """Hex HMAC-SHA256 of the raw payload bytes."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes, signature: Optional[str]) -> bool:
    if not secret or not signature:
        return False
    expected = compute_signature(secret, payload)
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))


class GatewayAdapter(ABC):
    provider: GatewayProvider

    def __init__(self, config: GatewayConfig):
        self.config = config

    @abstractmethod
    async def initiate_payment(
        self,
        amount: Decimal,
        currency: str,
        vpa: str,
        order_id: str,
    ) -> GatewayResponse:
        """Create a payment intent.

        ``data`` carries ``payment_id``, ``qr_code``, ``deep_link``,
        ``intent_url`` and ``expires_at`` on success.
        """

    @abstractmethod
    async def check_payment_status(self, payment_id: str) -> GatewayResponse:
        """Read the remote status. Safe to call repeatedly."""

    @abstractmethod
    async def validate_webhook(self, payload: bytes, signature: str) -> bool:
        """Constant-time check of a webhook signature over the raw body."""

    @abstractmethod
    async def initiate_refund(
        self,
        transaction_id: str,
        amount: Decimal,
        reason: str,
    ) -> GatewayResponse:
        """Ask the provider to refund. ``data`` carries ``refund_id`` and ``status``."""

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
