import logging
from decimal import Decimal
from typing import Any, Optional

import httpx

from app.config import settings
from app.gateways.base import (
    GatewayAdapter,
    GatewayConfig,
    GatewayProvider,
    GatewayResponse,
    verify_signature,
)
from app.utils.currency import to_minor_units, from_minor_units
from app.utils.date_utils import minutes_from_now
from app.utils.upi import build_upi_uri

logger = logging.getLogger(__name__)


class RazorpayGateway(GatewayAdapter):
    """Razorpay REST API over httpx.

    The Razorpay order id is the gateway transaction id: payment status and
    refunds are resolved through the payments attached to that order.
    """

    provider = GatewayProvider.RAZORPAY

    def __init__(
        self,
        config: GatewayConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(config)
        self.client = httpx.AsyncClient(
            base_url=config.base_url or settings.RAZORPAY_BASE_URL,
            auth=(config.api_key, config.api_secret),
            timeout=timeout or settings.GATEWAY_TIMEOUT_SECONDS,
            transport=transport or httpx.AsyncHTTPTransport(retries=config.max_retries),
        )

    async def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        response = await self.client.request(method, path, **kwargs)
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _describe_error(exc: Exception) -> str:
        if isinstance(exc, httpx.HTTPStatusError):
            try:
                description = exc.response.json().get("error", {}).get("description")
            except ValueError:
                description = None
            return description or f"HTTP {exc.response.status_code}"
        return str(exc) or exc.__class__.__name__

    async def initiate_payment(self, amount: Decimal, currency: str, vpa: str, order_id: str) -> GatewayResponse:
        try:
            order = await self._request(
                "POST",
                "/orders",
                json={
                    "amount": to_minor_units(amount),
                    "currency": currency,
                    "receipt": order_id,
                    "payment_capture": 1,
                    "notes": {"vpa": vpa},
                },
            )
            razorpay_order_id = order["id"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("Razorpay order creation failed for %s: %s", order_id, self._describe_error(e))
            return GatewayResponse.fail(f"Payment initiation failed: {self._describe_error(e)}")

        upi_uri = build_upi_uri(
            payee_vpa=settings.UPI_PAYEE_VPA,
            payee_name=settings.UPI_PAYEE_NAME,
            reference=razorpay_order_id,
            amount=amount,
            currency=currency,
        )
        return GatewayResponse.ok({
            "payment_id": razorpay_order_id,
            "qr_code": upi_uri,
            "deep_link": upi_uri,
            "intent_url": upi_uri,
            "expires_at": minutes_from_now(self.config.timeout_minutes),
        })

    async def _order_payments(self, razorpay_order_id: str) -> list[dict[str, Any]]:
        body = await self._request("GET", f"/orders/{razorpay_order_id}/payments")
        return body.get("items", [])

    async def check_payment_status(self, payment_id: str) -> GatewayResponse:
        try:
            payments = await self._order_payments(payment_id)
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("Razorpay status check failed for %s: %s", payment_id, self._describe_error(e))
            return GatewayResponse.fail(f"Status check failed: {self._describe_error(e)}")

        states = [p.get("status") for p in payments]
        if "captured" in states:
            status = "success"
        elif states and all(s == "failed" for s in states):
            status = "failed"
        else:
            status = "pending"

        return GatewayResponse.ok(
            {
                "order_id": payment_id,
                "payments": [
                    {
                        "id": p.get("id"),
                        "status": p.get("status"),
                        "method": p.get("method"),
                        "amount": str(from_minor_units(p.get("amount", 0))),
                        "rrn": (p.get("acquirer_data") or {}).get("rrn"),
                    }
                    for p in payments
                ],
            },
            status=status,
        )

    async def validate_webhook(self, payload: bytes, signature: str) -> bool:
        return verify_signature(self.config.webhook_secret, payload, signature)

    async def initiate_refund(self, transaction_id: str, amount: Decimal, reason: str) -> GatewayResponse:
        try:
            payments = await self._order_payments(transaction_id)
            captured = next((p for p in payments if p.get("status") == "captured"), None)
            if captured is None:
                return GatewayResponse.fail("Refund initiation failed: no captured payment for order")

            refund = await self._request(
                "POST",
                f"/payments/{captured['id']}/refund",
                json={"amount": to_minor_units(amount), "notes": {"reason": reason}},
            )
            refund_id = refund["id"]
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("Razorpay refund failed for %s: %s", transaction_id, self._describe_error(e))
            return GatewayResponse.fail(f"Refund initiation failed: {self._describe_error(e)}")

        return GatewayResponse.ok({
            "refund_id": refund_id,
            "transaction_id": transaction_id,
            "payment_id": captured["id"],
            "amount": str(from_minor_units(refund.get("amount", 0))),
            "status": refund.get("status", "pending"),
            "reason": reason,
        })

    async def aclose(self) -> None:
        await self.client.aclose()
