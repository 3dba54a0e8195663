import asyncio
import logging
import random
import time
import uuid
from decimal import Decimal
from typing import Optional

from app.config import settings
from app.gateways.base import (
    GatewayAdapter,
    GatewayConfig,
    GatewayProvider,
    GatewayResponse,
    verify_signature,
)
from app.utils.currency import format_amount
from app.utils.date_utils import minutes_from_now
from app.utils.upi import build_upi_uri

logger = logging.getLogger(__name__)

MOCK_STATUSES = ("pending", "success", "failed")


def _synthetic_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class MockGateway(GatewayAdapter):
    """Simulated provider for development and tests."""

    provider = GatewayProvider.MOCK

    def __init__(
        self,
        config: GatewayConfig,
        latency: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(config)
        self.latency = settings.MOCK_GATEWAY_LATENCY_SECONDS if latency is None else latency
        self.rng = rng or random.Random()

    async def _simulate_latency(self, factor: float = 1.0) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency * factor)

    async def initiate_payment(self, amount: Decimal, currency: str, vpa: str, order_id: str) -> GatewayResponse:
        await self._simulate_latency()

        payment_id = _synthetic_id("mock")
        upi_uri = build_upi_uri(
            payee_vpa=settings.UPI_PAYEE_VPA,
            payee_name=settings.UPI_PAYEE_NAME,
            reference=order_id,
            amount=amount,
            currency=currency,
        )
        return GatewayResponse.ok({
            "payment_id": payment_id,
            "qr_code": upi_uri,
            "deep_link": upi_uri,
            "intent_url": upi_uri,
            "expires_at": minutes_from_now(self.config.timeout_minutes),
        })

    async def check_payment_status(self, payment_id: str) -> GatewayResponse:
        await self._simulate_latency(0.5)

        status = self.rng.choice(MOCK_STATUSES)
        return GatewayResponse.ok(
            {
                "payment_id": payment_id,
                "status": status,
                "merchant_id": self.config.merchant_id,
                "bank_reference": _synthetic_id("bank_ref") if status == "success" else None,
            },
            status=status,
        )

    async def validate_webhook(self, payload: bytes, signature: str) -> bool:
        return verify_signature(self.config.webhook_secret, payload, signature)

    async def initiate_refund(self, transaction_id: str, amount: Decimal, reason: str) -> GatewayResponse:
        await self._simulate_latency()

        refund_id = _synthetic_id("refund")
        logger.debug("Mock refund %s issued for %s", refund_id, transaction_id)
        return GatewayResponse.ok({
            "refund_id": refund_id,
            "transaction_id": transaction_id,
            "amount": format_amount(amount),
            "status": "pending",
            "reason": reason,
        })


def build_mock_gateway(
    timeout_minutes: Optional[int] = None,
    latency: Optional[float] = None,
) -> MockGateway:
    """Mock adapter configured from the environment fallback credentials."""
    config = GatewayConfig(
        merchant_id=settings.UPI_MERCHANT_ID,
        api_key=settings.UPI_API_KEY,
        api_secret=settings.UPI_API_SECRET,
        webhook_secret=settings.UPI_WEBHOOK_SECRET,
        base_url=settings.UPI_GATEWAY_URL,
        is_test_mode=True,
        timeout_minutes=timeout_minutes or settings.PAYMENT_WINDOW_MINUTES,
    )
    return MockGateway(config, latency=latency)
